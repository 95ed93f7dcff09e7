"""Core data types shared across the classifier, resolver and snapshot store."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .errors import SnapshotDecodeError


class GradeSource(str, Enum):
    """Provenance of a resolved score."""
    ASSIGNMENT = "assignment"   # sentinel assignment, point scale (e.g. 0-4)
    ENROLLMENT = "enrollment"   # enrollment total, percentage 0-100


class PageContext(str, Enum):
    """Consumer surface requesting a snapshot; selects refresh policy."""
    DASHBOARD = "dashboard"
    ALL_GRADES = "allGrades"
    COURSE_GRADES = "courseGrades"


@dataclass(frozen=True)
class RatingLevel:
    """One level of a standards-based rating scale."""
    description: str
    points: float


DEFAULT_RATING_SCALE: tuple[RatingLevel, ...] = (
    RatingLevel("Exemplary", 4),
    RatingLevel("Beyond Target", 3.5),
    RatingLevel("Target", 3),
    RatingLevel("Approaching Target", 2.5),
    RatingLevel("Developing", 2),
    RatingLevel("Beginning", 1.5),
    RatingLevel("Needs Partial Support", 1),
    RatingLevel("Needs Full Support", 0.5),
    RatingLevel("No Evidence", 0),
)


@dataclass(frozen=True)
class Course:
    """A course row to be populated."""
    id: str
    name: str

    @classmethod
    def from_dict(cls, d: dict) -> "Course":
        return cls(id=str(d["id"]), name=d.get("name") or "")


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class RawGrade:
    """Resolver output, also the value held in the short-lived raw cache."""
    value: float
    source: GradeSource
    letter_grade: str | None = None
    cached_at: int = field(default_factory=now_ms)


@dataclass(frozen=True)
class CourseSnapshot:
    """Classified grade record for one course.

    Frozen: a snapshot is replaced wholesale, never edited in place.
    """
    course_id: str
    course_name: str
    is_standards_based: bool
    score: float | None
    letter_grade: str | None
    grade_source: GradeSource
    timestamp: int = field(default_factory=now_ms)

    def to_dict(self) -> dict[str, Any]:
        """Stored (camelCase) form."""
        return {
            "courseId": self.course_id,
            "courseName": self.course_name,
            "isStandardsBased": self.is_standards_based,
            "score": self.score,
            "letterGrade": self.letter_grade,
            "gradeSource": self.grade_source.value,
            "timestamp": self.timestamp,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_dict(cls, d: dict) -> "CourseSnapshot":
        """Decode the stored form.  Wrongly typed fields are rejected, not coerced."""
        is_standards_based = d.get("isStandardsBased")
        if not isinstance(is_standards_based, bool):
            raise SnapshotDecodeError(
                f"isStandardsBased must be a boolean, got {is_standards_based!r}"
            )
        score = d.get("score")
        if score is not None and (isinstance(score, bool) or not isinstance(score, (int, float))):
            raise SnapshotDecodeError(f"score must be a number or null, got {score!r}")
        letter_grade = d.get("letterGrade")
        if letter_grade is not None and not isinstance(letter_grade, str):
            raise SnapshotDecodeError(
                f"letterGrade must be a string or null, got {letter_grade!r}"
            )

        try:
            return cls(
                course_id=str(d["courseId"]),
                course_name=d.get("courseName") or "",
                is_standards_based=is_standards_based,
                score=score,
                letter_grade=letter_grade,
                grade_source=GradeSource(d["gradeSource"]),
                timestamp=int(d.get("timestamp") or 0),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise SnapshotDecodeError(f"Invalid snapshot record: {e}") from e

    @classmethod
    def from_json(cls, raw: str) -> "CourseSnapshot":
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise SnapshotDecodeError(f"Snapshot is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise SnapshotDecodeError("Snapshot is not a JSON object")
        return cls.from_dict(data)
