"""Bulk snapshot population across many courses.

Usage::

    store = SnapshotStore.create(client)
    pipeline = PopulationPipeline(store, concurrency=3)
    report = await pipeline.populate_all(courses)

Courses that already have a snapshot are skipped.  A course that fails
(remote error or no grade) is counted and logged; it never stops the batch.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Iterable, TYPE_CHECKING

from .client.base import GradingClient
from .errors import RemoteError
from .models import Course
from .parallel import MapResult, bounded_map
from .protocol import find_student_enrollment
from .store import SnapshotStore

if TYPE_CHECKING:
    from .logging import TraceLogger

logger = logging.getLogger(__name__)

# Outcomes of processing one course.
POPULATED = "populated"
SKIPPED = "skipped"      # snapshot already present
NO_GRADE = "no_grade"    # populate() returned None


@dataclass
class PopulationReport:
    """Counts for one ``populate_all`` run."""
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    failed_course_ids: list[str] = field(default_factory=list)
    elapsed_s: float = 0.0

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "failed_course_ids": list(self.failed_course_ids),
            "elapsed_s": round(self.elapsed_s, 3),
        }


class PopulationPipeline:
    """Populates the snapshot store for a batch of courses."""

    def __init__(
        self,
        store: SnapshotStore,
        concurrency: int = 3,
        trace: "TraceLogger | None" = None,
    ):
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")
        self.store = store
        self.concurrency = concurrency
        self.trace = trace

    async def populate_all(self, courses: Iterable[Course | dict]) -> PopulationReport:
        """Populate every course lacking a snapshot."""
        batch = [c if isinstance(c, Course) else Course.from_dict(c) for c in courses]
        report = PopulationReport()
        start = time.monotonic()

        logger.debug("Starting %d workers for %d courses", self.concurrency, len(batch))

        def record(result: MapResult[Course]) -> None:
            self._record(report, result, total=len(batch))

        await bounded_map(
            batch,
            self._process,
            concurrency=self.concurrency,
            isolate_failures=True,
            on_result=record,
        )

        report.elapsed_s = time.monotonic() - start
        logger.info(
            "Population complete: %d/%d succeeded, %d failed, %d already cached (%.2fs)",
            report.succeeded, report.processed, report.failed, report.skipped,
            report.elapsed_s,
        )
        if self.trace:
            self.trace.log("population_complete", **report.to_dict())
        return report

    async def _process(self, course: Course) -> str:
        if self.store.get(course.id) is not None:
            return SKIPPED
        snapshot = await self.store.populate(course.id, course.name)
        return POPULATED if snapshot is not None else NO_GRADE

    def _record(self, report: PopulationReport, result: MapResult[Course], total: int) -> None:
        course = result.item
        report.processed += 1

        if result.ok and result.value in (POPULATED, SKIPPED):
            report.succeeded += 1
            if result.value == SKIPPED:
                report.skipped += 1
            event = "course_skipped" if result.value == SKIPPED else "course_populated"
            if self.trace:
                self.trace.log(event, course_id=course.id, duration_ms=result.duration_ms)
        else:
            report.failed += 1
            report.failed_course_ids.append(course.id)
            reason = str(result.error) if result.error is not None else "no grade available"
            logger.warning("Course %s (%s) not populated: %s", course.id, course.name, reason)
            if self.trace:
                self.trace.log(
                    "course_failed",
                    course_id=course.id,
                    error=reason,
                    retryable=isinstance(result.error, RemoteError) and result.error.retryable,
                    duration_ms=result.duration_ms,
                )

        if report.processed % 5 == 0:
            logger.debug("Progress: %d/%d courses processed", report.processed, total)


async def fetch_active_courses(client: GradingClient) -> list[Course]:
    """Active courses in which the caller holds a student enrollment.

    Follows pagination: a student can be enrolled in more courses than one
    page holds.
    """
    rows: Any = await client.get_all_pages(
        "/api/v1/courses",
        {"enrollment_state": "active", "include[]": "total_scores"},
    )
    if not isinstance(rows, list):
        return []

    courses = []
    for row in rows:
        if not isinstance(row, dict) or row.get("id") is None:
            continue
        if find_student_enrollment(row.get("enrollments") or []) is None:
            continue
        courses.append(Course(id=str(row["id"]), name=row.get("name") or ""))

    logger.info("Found %d active student courses out of %d", len(courses), len(rows))
    return courses
