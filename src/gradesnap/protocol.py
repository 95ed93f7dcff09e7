"""Typed views over remote grading API responses.

The remote API returns loosely shaped JSON.  These dataclasses pin down the
handful of fields the resolver and classifier read; anything missing or of the
wrong type becomes ``None`` here so business logic never probes raw dicts.
"""

from dataclasses import dataclass
from typing import Any, Optional

STUDENT_ENROLLMENT_TYPES = ("StudentEnrollment", "student")

# Enrollment score fields in priority order.
SCORE_FIELDS = (
    "computed_current_score",
    "calculated_current_score",
    "computed_final_score",
    "calculated_final_score",
)
GRADE_FIELDS = (
    "computed_current_grade",
    "calculated_current_grade",
    "computed_final_grade",
    "calculated_final_grade",
)


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _text(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def _first(values) -> Any:
    for v in values:
        if v is not None:
            return v
    return None


@dataclass
class Assignment:
    """An assignment row from the assignments search endpoint."""
    id: str
    name: str

    @classmethod
    def from_dict(cls, d: dict) -> "Assignment":
        return cls(id=str(d.get("id", "")), name=d.get("name") or "")


@dataclass
class Submission:
    """The caller's submission for one assignment."""
    score: Optional[float] = None
    grade: Optional[str] = None

    @classmethod
    def from_dict(cls, d: Any) -> "Submission":
        if not isinstance(d, dict):
            return cls()
        return cls(score=_number(d.get("score")), grade=_text(d.get("grade")))


@dataclass
class Enrollment:
    """An enrollment record with aggregate score fields."""
    type: Optional[str] = None
    role: Optional[str] = None
    course_id: Optional[str] = None
    score: Optional[float] = None
    letter_grade: Optional[str] = None

    @property
    def is_student(self) -> bool:
        return self.type in STUDENT_ENROLLMENT_TYPES or self.role == "StudentEnrollment"

    @classmethod
    def from_dict(cls, d: dict) -> "Enrollment":
        """Normalize the two shapes the API returns.

        Top-level ``computed_*`` / ``calculated_*`` fields are preferred;
        the nested ``grades`` object (``include[]=total_scores``) is the
        fallback.
        """
        # Top-level computed_/calculated_ fields take precedence; nested
        # ``grades`` is read only when none of them is set.
        score = _first(_number(d.get(f)) for f in SCORE_FIELDS)
        letter = _first(_text(d.get(f)) for f in GRADE_FIELDS)

        grades = d.get("grades")
        if isinstance(grades, dict):
            if score is None:
                score = _first(
                    _number(grades.get(f)) for f in ("current_score", "final_score")
                )
            if letter is None:
                letter = _first(
                    _text(grades.get(f)) for f in ("current_grade", "final_grade")
                )

        course_id = d.get("course_id")
        return cls(
            type=d.get("type"),
            role=d.get("role"),
            course_id=str(course_id) if course_id is not None else None,
            score=score,
            letter_grade=letter,
        )


def find_student_enrollment(rows: Any) -> Optional[Enrollment]:
    """Return the first student enrollment in *rows*, or ``None``."""
    if not isinstance(rows, list):
        return None
    for row in rows:
        if not isinstance(row, dict):
            continue
        enrollment = Enrollment.from_dict(row)
        if enrollment.is_student:
            return enrollment
    return None


def find_assignment(rows: Any, name: str) -> Optional[Assignment]:
    """Exact-name match within an assignment search result."""
    if not isinstance(rows, list):
        return None
    for row in rows:
        if isinstance(row, dict) and row.get("name") == name:
            return Assignment.from_dict(row)
    return None
