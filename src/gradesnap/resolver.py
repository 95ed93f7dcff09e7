"""Grade resolution with a two-source fallback.

1. Sentinel assignment score (point scale, e.g. 0-4)
2. Enrollment total (percentage, 0-100)

Values are returned as-is; converting a percentage to points is the
caller's job (see ``pages.percentage_to_points``).

Resolved grades are kept in a short-lived raw cache keyed by course id so a
burst of lookups for one course costs one round of API calls.  Snapshot
population always passes ``use_cache=False``, which skips the cache for both
the lookup and the write.
"""

from __future__ import annotations

import logging
import time

from .client.base import GradingClient
from .config import GradesnapConfig
from .models import GradeSource, RawGrade, now_ms
from .protocol import Submission, find_assignment, find_student_enrollment

logger = logging.getLogger(__name__)


class RawGradeCache:
    """Per-course TTL cache of resolved grades."""

    def __init__(self, ttl: float = 300.0, clock=time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, tuple[RawGrade, float]] = {}

    def get(self, course_id: str) -> RawGrade | None:
        entry = self._entries.get(course_id)
        if entry is None:
            return None
        grade, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[course_id]
            logger.debug("Raw grade cache expired for course %s", course_id)
            return None
        return grade

    def put(self, course_id: str, grade: RawGrade) -> None:
        self._entries[course_id] = (grade, self._clock() + self.ttl)

    def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        return count

    def __len__(self) -> int:
        return len(self._entries)


class GradeResolver:
    """Fetches the caller's current grade for a course."""

    def __init__(
        self,
        client: GradingClient,
        config: GradesnapConfig | None = None,
        cache: RawGradeCache | None = None,
    ):
        self.client = client
        self.config = config or GradesnapConfig()
        self.cache = cache if cache is not None else RawGradeCache(ttl=self.config.cache_ttl)

    async def resolve_grade(self, course_id: str, *, use_cache: bool = True) -> RawGrade | None:
        """Resolve the current grade, or ``None`` if no source has one.

        Errors on the assignment path fall through to the enrollment path.
        Errors on the enrollment path propagate.
        """
        course_id = str(course_id)
        if use_cache:
            hit = self.cache.get(course_id)
            if hit is not None:
                logger.debug("Course %s: raw grade cache hit (%s)", course_id, hit.source.value)
                return hit

        grade = await self._from_assignment(course_id)
        if grade is None:
            grade = await self._from_enrollment(course_id)

        if grade is None:
            logger.debug("Course %s: no grade from any source", course_id)
            return None

        if use_cache:
            self.cache.put(course_id, grade)
        return grade

    def clear_cache(self) -> int:
        count = self.cache.clear()
        logger.debug("Raw grade cache cleared (%d entries)", count)
        return count

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    async def _from_assignment(self, course_id: str) -> RawGrade | None:
        name = self.config.sentinel_name
        try:
            rows = await self.client.get(
                f"/api/v1/courses/{course_id}/assignments",
                {"search_term": name},
            )
            assignment = find_assignment(rows, name)
            if assignment is None:
                logger.debug("Course %s: sentinel assignment %r not found", course_id, name)
                return None

            raw = await self.client.get(
                f"/api/v1/courses/{course_id}/assignments/{assignment.id}"
                f"/submissions/{self.config.student_id}"
            )
        except Exception as exc:
            logger.warning(
                "Course %s: sentinel assignment lookup failed, trying enrollment: %s",
                course_id, exc,
            )
            return None

        submission = Submission.from_dict(raw)
        if submission.score is None:
            logger.debug("Course %s: sentinel submission has no score", course_id)
            return None

        return RawGrade(
            value=submission.score,
            source=GradeSource.ASSIGNMENT,
            letter_grade=submission.grade,
            cached_at=now_ms(),
        )

    async def _from_enrollment(self, course_id: str) -> RawGrade | None:
        rows = await self.client.get(
            f"/api/v1/courses/{course_id}/enrollments",
            {
                "user_id": self.config.student_id,
                "type[]": "StudentEnrollment",
                "include[]": "total_scores",
            },
        )
        enrollment = find_student_enrollment(rows)
        if enrollment is None:
            logger.debug("Course %s: no student enrollment", course_id)
            return None
        if enrollment.score is None:
            logger.debug("Course %s: enrollment has no score", course_id)
            return None

        return RawGrade(
            value=enrollment.score,
            source=GradeSource.ENROLLMENT,
            letter_grade=enrollment.letter_grade,
            cached_at=now_ms(),
        )
