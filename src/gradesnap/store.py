"""SnapshotStore: the single owner of course snapshots.

All snapshot writes go through ``populate()``; every other method only reads.
Consumers never classify courses or fetch grades themselves; they ask the
store for a snapshot and, if policy says so, let it refresh.

Refresh policy (``should_refresh``):

==============  ==================  ===============================  =======
snapshot        is_standards_based  page context                     refresh
==============  ==================  ===============================  =======
missing         -                   any                              yes
present         True                any                              no
present         False               dashboard                        no
present         False               allGrades / courseGrades         yes
==============  ==================  ===============================  =======

Standards-based scores are stable once computed.  Traditional percentages
move often, so pages that show them precisely re-fetch; the dashboard keeps
whatever it has.

Concurrent ``populate()`` calls for the same course are not serialized: both
run and the later write wins.  Both compute from the same remote state, so
the result converges.  Pass ``single_flight=True`` to share one in-flight
population per course instead.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, asdict
from typing import Any

from .classifier import CourseClassifier
from .client.base import GradingClient
from .config import GradesnapConfig
from .errors import SnapshotDecodeError
from .models import CourseSnapshot, GradeSource, PageContext, now_ms
from .persistence import KeyValueStore, MemoryStore
from .resolver import GradeResolver

logger = logging.getLogger(__name__)

SNAPSHOT_KEY_PREFIX = "courseSnapshot_"

# Page contexts on which a traditional course is re-fetched.
_REFRESH_PAGES = frozenset({PageContext.ALL_GRADES, PageContext.COURSE_GRADES})


@dataclass
class SnapshotStats:
    """Summary counts over the stored snapshots."""
    total: int = 0
    standards_based: int = 0
    traditional: int = 0
    assignment_source: int = 0
    enrollment_source: int = 0
    unreadable: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


class SnapshotStore:
    """Session-scoped cache of classified course grades."""

    def __init__(
        self,
        resolver: GradeResolver,
        classifier: CourseClassifier,
        storage: KeyValueStore,
        *,
        single_flight: bool = False,
    ):
        self.resolver = resolver
        self.classifier = classifier
        self.storage = storage
        self.single_flight = single_flight
        self._pending: dict[str, asyncio.Future] = {}

    @classmethod
    def create(
        cls,
        client: GradingClient,
        storage: KeyValueStore | None = None,
        config: GradesnapConfig | None = None,
    ) -> "SnapshotStore":
        """Wire a store, resolver and classifier around one client."""
        config = config or GradesnapConfig()
        storage = storage if storage is not None else MemoryStore(namespace=config.namespace)
        return cls(
            resolver=GradeResolver(client, config),
            classifier=CourseClassifier(client, storage, config),
            storage=storage,
            single_flight=config.single_flight,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, course_id: str) -> CourseSnapshot | None:
        """Stored snapshot for *course_id*, or ``None``.  No network I/O.

        An unreadable entry is deleted and reported as a miss.
        """
        key = _key(course_id)
        raw = self.storage.get(key)
        if raw is None:
            logger.debug("Snapshot miss for course %s", course_id)
            return None
        try:
            return CourseSnapshot.from_json(raw)
        except SnapshotDecodeError as exc:
            logger.warning("Dropping unreadable snapshot for course %s: %s", course_id, exc)
            self.storage.delete(key)
            return None

    def should_refresh(self, course_id: str, page_context: PageContext | str) -> bool:
        """Apply the page-aware refresh policy."""
        page = PageContext(page_context)
        snapshot = self.get(course_id)
        if snapshot is None:
            return True
        if snapshot.is_standards_based:
            return False
        return page in _REFRESH_PAGES

    def debug_snapshots(self) -> dict[str, CourseSnapshot | dict]:
        """Every stored snapshot by course id; unreadable ones as ``{"error": ...}``."""
        out: dict[str, CourseSnapshot | dict] = {}
        for key in self.storage.keys():
            if not key.startswith(SNAPSHOT_KEY_PREFIX):
                continue
            course_id = key[len(SNAPSHOT_KEY_PREFIX):]
            raw = self.storage.get(key)
            if raw is None:
                continue
            try:
                out[course_id] = CourseSnapshot.from_json(raw)
            except SnapshotDecodeError as exc:
                out[course_id] = {"error": str(exc)}
        return out

    def stats(self) -> SnapshotStats:
        stats = SnapshotStats()
        for snap in self.debug_snapshots().values():
            stats.total += 1
            if not isinstance(snap, CourseSnapshot):
                stats.unreadable += 1
                continue
            if snap.is_standards_based:
                stats.standards_based += 1
            else:
                stats.traditional += 1
            if snap.grade_source is GradeSource.ASSIGNMENT:
                stats.assignment_source += 1
            else:
                stats.enrollment_source += 1
        return stats

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def populate(self, course_id: str, course_name: str) -> CourseSnapshot | None:
        """Resolve, classify and store a fresh snapshot.

        Returns ``None`` (leaving any previous snapshot in place) when no
        grade is available or the remote calls fail.
        """
        course_id = str(course_id)
        if not self.single_flight:
            return await self._populate(course_id, course_name)

        pending = self._pending.get(course_id)
        if pending is None:
            pending = asyncio.ensure_future(self._populate(course_id, course_name))
            self._pending[course_id] = pending
            pending.add_done_callback(lambda fut: self._forget(course_id, fut))
        else:
            logger.debug("Course %s: joining in-flight population", course_id)
        return await asyncio.shield(pending)

    async def refresh(
        self,
        course_id: str,
        course_name: str,
        page_context: PageContext | str,
        force: bool = False,
    ) -> CourseSnapshot | None:
        """Populate if forced or policy requires it, else return what is stored."""
        if force:
            logger.debug("Course %s: forced refresh (page=%s)", course_id, page_context)
            return await self.populate(course_id, course_name)
        if self.should_refresh(course_id, page_context):
            logger.debug("Course %s: refreshing (page=%s)", course_id, page_context)
            return await self.populate(course_id, course_name)
        return self.get(course_id)

    def clear_all(self) -> int:
        """Remove every stored entry (snapshots and classifications).

        Also empties the resolver's raw cache.  Returns the number of stored
        entries removed.
        """
        removed = self.storage.clear()
        self.resolver.clear_cache()
        logger.debug("Cleared all snapshots (%d entries removed)", removed)
        return removed

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _populate(self, course_id: str, course_name: str) -> CourseSnapshot | None:
        logger.debug("Populating snapshot for course %s %r", course_id, course_name)
        try:
            grade = await self.resolver.resolve_grade(course_id, use_cache=False)
        except Exception as exc:
            logger.warning("Course %s: grade resolution failed: %s", course_id, exc)
            return None

        if grade is None:
            logger.debug("Course %s: no grade available, snapshot not written", course_id)
            return None

        is_standards_based = await self.classifier.classify(
            course_id,
            course_name,
            letter_grade=grade.letter_grade,
            probe=True,
        )

        snapshot = CourseSnapshot(
            course_id=course_id,
            course_name=course_name,
            is_standards_based=is_standards_based,
            score=grade.value,
            letter_grade=grade.letter_grade,
            grade_source=grade.source,
            timestamp=now_ms(),
        )
        self.storage.set(_key(course_id), snapshot.to_json())
        logger.debug(
            "Course %s: stored snapshot standards_based=%s score=%s source=%s",
            course_id, is_standards_based, grade.value, grade.source.value,
        )
        return snapshot

    def _forget(self, course_id: str, fut: asyncio.Future) -> None:
        if self._pending.get(course_id) is fut:
            del self._pending[course_id]


def _key(course_id: Any) -> str:
    return f"{SNAPSHOT_KEY_PREFIX}{course_id}"
