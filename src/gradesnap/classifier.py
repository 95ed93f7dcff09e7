"""Course classification: standards-based vs traditional grading.

Checks run cheapest first and stop at the first positive:

1. cached verdict
2. course name against configured patterns (no I/O)
3. letter grade against the rating scale (no I/O)
4. sentinel assignment probe (one API call)

Positive verdicts are cached in the session store until ``clear_cache()``
or a store-wide clear.  A traditional verdict is not cached, so the next
population pass re-checks it against the letter grade it just fetched.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable

from .client.base import GradingClient
from .config import CoursePattern, GradesnapConfig
from .models import RatingLevel
from .persistence import KeyValueStore

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "standardsBased_"


def matches_course_name(course_name: str | None, patterns: Iterable[CoursePattern]) -> bool:
    """True if *course_name* matches any pattern.

    ``str`` patterns are case-insensitive substrings; compiled patterns are
    searched as-is.
    """
    if not course_name:
        return False
    lowered = course_name.lower()
    for pattern in patterns:
        if isinstance(pattern, re.Pattern):
            if pattern.search(course_name):
                return True
        elif isinstance(pattern, str) and pattern and pattern.lower() in lowered:
            return True
    return False


def is_valid_letter_grade(letter_grade: str | None, scale: Iterable[RatingLevel]) -> bool:
    """True if the trimmed grade equals a rating description (any case)."""
    if not letter_grade or not isinstance(letter_grade, str):
        return False
    wanted = letter_grade.strip().lower()
    if not wanted:
        return False
    return any(level.description.lower() == wanted for level in scale)


class CourseClassifier:
    """Decides whether a course is standards-based."""

    def __init__(
        self,
        client: GradingClient | None,
        storage: KeyValueStore,
        config: GradesnapConfig | None = None,
    ):
        self.client = client
        self.storage = storage
        self.config = config or GradesnapConfig()

    def cached(self, course_id: str) -> bool | None:
        """Cached verdict for *course_id*, or ``None``."""
        raw = self.storage.get(CACHE_KEY_PREFIX + str(course_id))
        if raw is None:
            return None
        return raw == "true"

    async def classify(
        self,
        course_id: str,
        course_name: str,
        letter_grade: str | None = None,
        probe: bool = True,
    ) -> bool:
        """Classify a course.  Never raises for remote failures."""
        if not course_id or not course_name:
            logger.warning("classify called without course_id or course_name")
            return False

        cached = self.cached(course_id)
        if cached is not None:
            logger.debug("Course %s: cached verdict %s", course_id, cached)
            return cached

        if matches_course_name(course_name, self.config.course_patterns):
            logger.debug("Course %s %r: standards-based (name pattern)", course_id, course_name)
            return self._remember(course_id)

        if letter_grade:
            if is_valid_letter_grade(letter_grade, self.config.rating_scale):
                logger.debug(
                    "Course %s: standards-based (letter grade %r)", course_id, letter_grade
                )
                return self._remember(course_id)
            logger.debug("Course %s: letter grade %r not on rating scale", course_id, letter_grade)

        if probe and self.client is not None:
            if await self.has_sentinel_assignment(course_id):
                logger.debug("Course %s: standards-based (sentinel assignment)", course_id)
                return self._remember(course_id)

        logger.debug("Course %s %r: traditional", course_id, course_name)
        return False

    async def has_sentinel_assignment(self, course_id: str) -> bool:
        """Probe for the sentinel assignment; failures count as absent."""
        name = self.config.sentinel_name
        try:
            rows = await self.client.get(
                f"/api/v1/courses/{course_id}/assignments",
                {"search_term": name},
            )
        except Exception as exc:
            logger.warning("Could not check assignments for course %s: %s", course_id, exc)
            return False
        if not isinstance(rows, list):
            return False
        return any(isinstance(r, dict) and r.get("name") == name for r in rows)

    def clear_cache(self, course_id: str | None = None) -> int:
        """Drop one cached verdict, or all of them.  Returns count removed."""
        if course_id is not None:
            key = CACHE_KEY_PREFIX + str(course_id)
            if self.storage.get(key) is None:
                return 0
            self.storage.delete(key)
            return 1
        keys = [k for k in self.storage.keys() if k.startswith(CACHE_KEY_PREFIX)]
        for k in keys:
            self.storage.delete(k)
        logger.debug("Cleared %d cached classifications", len(keys))
        return len(keys)

    def _remember(self, course_id: str) -> bool:
        self.storage.set(CACHE_KEY_PREFIX + str(course_id), "true")
        return True
