"""Shared fakes for gradesnap tests."""

import asyncio

import pytest

from gradesnap.config import GradesnapConfig
from gradesnap.errors import RemoteError
from gradesnap.persistence import MemoryStore
from gradesnap.store import SnapshotStore

SENTINEL = "Current Score Assignment"


class FakeClient:
    """Async stand-in for the remote grading client.

    ``routes`` maps a path to a response value, an exception instance to
    raise, or a callable ``(params) -> value``.  Unknown paths raise a 404
    ``RemoteError``.  Every call is recorded in ``calls``.
    """

    def __init__(self, routes=None, delay: float = 0.0):
        self.routes = dict(routes or {})
        self.delay = delay
        self.calls: list[tuple[str, str, dict | None]] = []

    async def get(self, path, params=None):
        return await self._handle("GET", path, params)

    async def post(self, path, body=None):
        return await self._handle("POST", path, body)

    async def put(self, path, body=None):
        return await self._handle("PUT", path, body)

    async def get_all_pages(self, path, params=None):
        return await self._handle("GET_ALL", path, params)

    async def _handle(self, method, path, payload):
        self.calls.append((method, path, payload))
        if self.delay:
            await asyncio.sleep(self.delay)
        if path not in self.routes:
            raise RemoteError(f"{method} {path} returned HTTP 404", status=404, path=path)
        value = self.routes[path]
        if isinstance(value, Exception):
            raise value
        if callable(value):
            return value(payload)
        return value

    def count(self, fragment: str) -> int:
        return sum(1 for _, path, _ in self.calls if fragment in path)

    def add_course(
        self,
        course_id,
        *,
        sentinel: bool = False,
        assignment_score=None,
        assignment_grade=None,
        enrollment_score=None,
        enrollment_grade=None,
    ):
        """Register the routes a course's grade lookups hit."""
        base = f"/api/v1/courses/{course_id}"
        assignments = [{"id": 7, "name": "Homework 1"}]
        if sentinel:
            assignments.append({"id": 99, "name": SENTINEL})
            self.routes[f"{base}/assignments/99/submissions/self"] = {
                "score": assignment_score,
                "grade": assignment_grade,
            }
        self.routes[f"{base}/assignments"] = assignments

        enrollment = {"type": "StudentEnrollment", "course_id": course_id}
        if enrollment_score is not None:
            enrollment["computed_current_score"] = enrollment_score
        if enrollment_grade is not None:
            enrollment["computed_current_grade"] = enrollment_grade
        self.routes[f"{base}/enrollments"] = [enrollment]
        return self


@pytest.fixture
def fake_client():
    return FakeClient()


@pytest.fixture
def storage():
    return MemoryStore()


@pytest.fixture
def config():
    return GradesnapConfig()


@pytest.fixture
def store(fake_client, storage, config):
    return SnapshotStore.create(fake_client, storage=storage, config=config)
