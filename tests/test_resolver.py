"""Tests for grade resolution.

Covers:
  - Fallback order: assignment, then enrollment, then None
  - Assignment-path errors fall through; enrollment-path errors propagate
  - Raw grade cache: hit, expiry, bypass
  - Values are returned unconverted
"""

import asyncio

import pytest

from conftest import FakeClient
from gradesnap.config import GradesnapConfig
from gradesnap.errors import RemoteError
from gradesnap.models import GradeSource
from gradesnap.resolver import GradeResolver, RawGradeCache


def resolve(resolver, course_id, **kw):
    return asyncio.run(resolver.resolve_grade(course_id, **kw))


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


# ============================================================================
# Fallback order
# ============================================================================

class TestFallbackOrder:
    """Test grade source order."""

    def test_assignment_preferred_over_enrollment(self):
        client = FakeClient().add_course(
            "1", sentinel=True, assignment_score=3.25, enrollment_score=81.0,
        )
        grade = resolve(GradeResolver(client), "1")
        assert grade.value == 3.25
        assert grade.source is GradeSource.ASSIGNMENT
        assert client.count("/enrollments") == 0

    def test_enrollment_when_no_sentinel(self):
        client = FakeClient().add_course("2", enrollment_score=68.5)
        grade = resolve(GradeResolver(client), "2")
        assert grade.value == 68.5
        assert grade.source is GradeSource.ENROLLMENT

    def test_enrollment_when_sentinel_unscored(self):
        client = FakeClient().add_course(
            "3", sentinel=True, assignment_score=None, enrollment_score=72.0,
        )
        grade = resolve(GradeResolver(client), "3")
        assert grade.source is GradeSource.ENROLLMENT
        assert grade.value == 72.0

    def test_none_when_no_source(self):
        client = FakeClient().add_course("4")
        assert resolve(GradeResolver(client), "4") is None

    def test_letter_grade_carried(self):
        client = FakeClient().add_course(
            "5", sentinel=True, assignment_score=3.0, assignment_grade="Target",
        )
        grade = resolve(GradeResolver(client), "5")
        assert grade.letter_grade == "Target"

    def test_enrollment_letter_grade(self):
        client = FakeClient().add_course("6", enrollment_score=91.0, enrollment_grade="A-")
        grade = resolve(GradeResolver(client), "6")
        assert grade.letter_grade == "A-"

    def test_percentage_not_converted(self):
        client = FakeClient().add_course("7", enrollment_score=50.0)
        assert resolve(GradeResolver(client), "7").value == 50.0

    def test_enrollment_request_shape(self):
        client = FakeClient().add_course("8", enrollment_score=50.0)
        resolve(GradeResolver(client), "8")
        _, path, params = client.calls[-1]
        assert path == "/api/v1/courses/8/enrollments"
        assert params["user_id"] == "self"
        assert params["include[]"] == "total_scores"

    def test_configured_student_id(self):
        client = FakeClient().add_course("9", sentinel=True, assignment_score=2.0)
        client.routes["/api/v1/courses/9/assignments/99/submissions/42"] = {"score": 1.5}
        resolver = GradeResolver(client, GradesnapConfig(student_id="42"))
        assert resolve(resolver, "9").value == 1.5


class TestFailures:
    """Test remote failures on each path."""

    def test_assignment_error_falls_through(self):
        client = FakeClient().add_course("1", enrollment_score=77.0)
        client.routes["/api/v1/courses/1/assignments"] = RemoteError("boom", status=500)
        grade = resolve(GradeResolver(client), "1")
        assert grade.source is GradeSource.ENROLLMENT

    def test_enrollment_error_propagates(self):
        client = FakeClient().add_course("2")
        client.routes["/api/v1/courses/2/enrollments"] = RemoteError("down", status=503)
        with pytest.raises(RemoteError):
            resolve(GradeResolver(client), "2")

    def test_no_student_enrollment(self):
        client = FakeClient({
            "/api/v1/courses/3/assignments": [],
            "/api/v1/courses/3/enrollments": [{"type": "TeacherEnrollment"}],
        })
        assert resolve(GradeResolver(client), "3") is None


# ============================================================================
# Raw grade cache
# ============================================================================

class TestRawGradeCache:
    """Test the short-lived grade cache."""

    def test_second_call_hits_cache(self):
        client = FakeClient().add_course("1", enrollment_score=80.0)
        resolver = GradeResolver(client)
        first = resolve(resolver, "1")
        calls = len(client.calls)
        second = resolve(resolver, "1")
        assert second == first
        assert len(client.calls) == calls

    def test_bypass_skips_read_and_write(self):
        client = FakeClient().add_course("1", enrollment_score=80.0)
        resolver = GradeResolver(client)
        resolve(resolver, "1", use_cache=False)
        assert len(resolver.cache) == 0

        resolve(resolver, "1")
        calls = len(client.calls)
        client.routes["/api/v1/courses/1/enrollments"] = [
            {"type": "StudentEnrollment", "computed_current_score": 95.0},
        ]
        assert resolve(resolver, "1", use_cache=False).value == 95.0
        assert len(client.calls) > calls

    def test_entries_expire(self):
        clock = FakeClock()
        cache = RawGradeCache(ttl=300, clock=clock)
        client = FakeClient().add_course("1", enrollment_score=80.0)
        resolver = GradeResolver(client, cache=cache)

        resolve(resolver, "1")
        clock.now += 299
        assert cache.get("1") is not None
        clock.now += 1
        assert cache.get("1") is None

    def test_none_not_cached(self):
        client = FakeClient().add_course("1")
        resolver = GradeResolver(client)
        assert resolve(resolver, "1") is None
        assert len(resolver.cache) == 0

    def test_clear_cache(self):
        client = FakeClient().add_course("1", enrollment_score=80.0).add_course(
            "2", enrollment_score=70.0,
        )
        resolver = GradeResolver(client)
        resolve(resolver, "1")
        resolve(resolver, "2")
        assert resolver.clear_cache() == 2
        assert len(resolver.cache) == 0

    def test_ttl_from_config(self):
        resolver = GradeResolver(FakeClient(), GradesnapConfig(cache_ttl=60))
        assert resolver.cache.ttl == 60
