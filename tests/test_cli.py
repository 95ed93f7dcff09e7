"""Tests for the command-line interface."""

import json
import threading
import time

import pytest
from click.testing import CliRunner

import gradesnap.cli as cli_module
from conftest import FakeClient
from gradesnap.cli import cli
from gradesnap.client import ApiResponse, BaseClient, CanvasClient
from gradesnap.models import CourseSnapshot, GradeSource
from gradesnap.persistence import JsonFileStore
from gradesnap.store import SNAPSHOT_KEY_PREFIX


class ClosingFakeClient(FakeClient):
    closed = False

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("GRADESNAP_BASE_URL", "GRADESNAP_TOKEN", "GRADESNAP_CONCURRENCY"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def session(tmp_path):
    return tmp_path / "session.json"


@pytest.fixture
def fake(monkeypatch):
    client = ClosingFakeClient()
    monkeypatch.setattr(cli_module, "_open_client", lambda ctx, trace=None, max_workers=None: client)
    return client


def invoke(session, *args):
    return CliRunner().invoke(cli, ["--session", str(session), *args])


def seed(session, course_id, name, *, standards_based, score, source, letter=None):
    snap = CourseSnapshot(
        course_id=course_id,
        course_name=name,
        is_standards_based=standards_based,
        score=score,
        letter_grade=letter,
        grade_source=source,
        timestamp=1,
    )
    JsonFileStore(session).set(SNAPSHOT_KEY_PREFIX + course_id, snap.to_json())
    return snap


# ============================================================================
# Read-only commands
# ============================================================================

class TestShow:
    """Test the show command."""

    def test_standards_based_enrollment_converted(self, session):
        seed(session, "101", "Algebra I (SBG)", standards_based=True,
             score=68.5, source=GradeSource.ENROLLMENT)

        result = invoke(session, "show", "101")

        assert result.exit_code == 0, result.output
        assert "Algebra I (SBG) (101) [standards-based]" in result.output
        assert "2.74" in result.output
        assert "source: enrollment" in result.output

    def test_assignment_score_shown_as_is(self, session):
        seed(session, "202", "History 101", standards_based=True,
             score=2.6, source=GradeSource.ASSIGNMENT, letter="Developing")
        result = invoke(session, "show", "202")
        assert "2.60 (Developing)" in result.output

    def test_json(self, session):
        seed(session, "1", "Art", standards_based=False,
             score=91.0, source=GradeSource.ENROLLMENT, letter="A-")
        result = invoke(session, "show", "1", "--json")
        data = json.loads(result.output)
        assert data["courseId"] == "1"
        assert data["isStandardsBased"] is False
        assert data["gradeSource"] == "enrollment"

    def test_missing(self, session):
        result = invoke(session, "show", "404")
        assert result.exit_code == 1
        assert "No snapshot" in result.output


class TestStatsAndClear:
    """Test the stats and clear commands."""

    def test_stats(self, session):
        seed(session, "1", "A (SBG)", standards_based=True, score=3.0, source=GradeSource.ASSIGNMENT)
        seed(session, "2", "B", standards_based=False, score=80.0, source=GradeSource.ENROLLMENT)
        result = invoke(session, "stats")
        assert result.exit_code == 0
        assert "total: 2" in result.output
        assert "standards_based: 1" in result.output
        assert "traditional: 1" in result.output

    def test_clear(self, session):
        seed(session, "1", "A", standards_based=True, score=3.0, source=GradeSource.ASSIGNMENT)
        JsonFileStore(session).set("standardsBased_1", "true")

        result = invoke(session, "clear")

        assert result.exit_code == 0
        assert "Cleared 2 entries" in result.output
        assert JsonFileStore(session).keys() == []


# ============================================================================
# Commands that reach the API
# ============================================================================

class TestRefresh:
    """Test the refresh command."""

    def test_requires_page_or_url(self, session, fake):
        result = invoke(session, "refresh", "1", "--name", "Art")
        assert result.exit_code != 0
        assert "--page or --url" in result.output

    def test_unknown_url(self, session, fake):
        result = invoke(session, "refresh", "1", "--name", "Art", "--url", "/profile")
        assert result.exit_code != 0

    def test_populates_missing(self, session, fake):
        fake.add_course("1", enrollment_score=88.0, enrollment_grade="B+")
        result = invoke(session, "refresh", "1", "--name", "Art", "--page", "dashboard")
        assert result.exit_code == 0, result.output
        assert "Refreshed: Art - 88.00 (B+)" in result.output
        assert fake.closed

    def test_cached_on_dashboard(self, session, fake):
        seed(session, "1", "Art", standards_based=False, score=80.0, source=GradeSource.ENROLLMENT)
        result = invoke(session, "refresh", "1", "--name", "Art", "--url", "https://lms.example.edu/")
        assert "Cached: Art - 80.00" in result.output
        assert fake.calls == []

    def test_course_grades_page_refreshes(self, session, fake):
        seed(session, "1", "Art", standards_based=False, score=80.0, source=GradeSource.ENROLLMENT)
        fake.add_course("1", enrollment_score=82.0)
        result = invoke(session, "refresh", "1", "--name", "Art", "--url", "/courses/1/grades")
        assert "Refreshed: Art - 82.00" in result.output

    def test_no_grade(self, session, fake):
        fake.add_course("1")
        result = invoke(session, "refresh", "1", "--name", "Art", "--page", "allGrades")
        assert result.exit_code == 1
        assert "No grade available" in result.output


class TestPopulate:
    """Test the populate command."""

    def test_populates_active_courses(self, session, fake, tmp_path):
        fake.routes["/api/v1/courses"] = [
            {"id": 1, "name": "Algebra (SBG)", "enrollments": [{"type": "student"}]},
            {"id": 2, "name": "Art", "enrollments": [{"type": "student"}]},
        ]
        fake.add_course("1", enrollment_score=75.0)
        fake.add_course("2")
        trace_path = tmp_path / "trace.jsonl"

        result = invoke(session, "populate", "-c", "2", "--trace", str(trace_path))

        assert result.exit_code == 0, result.output
        assert "Completed: 1/2 succeeded, 1 failed" in result.output
        assert "Failed courses: 2" in result.output
        assert trace_path.exists()
        assert fake.closed
        assert JsonFileStore(session).get(SNAPSHOT_KEY_PREFIX + "1") is not None

    def test_course_listing_failure(self, session, fake):
        result = invoke(session, "populate")
        assert result.exit_code == 1
        assert "Failed" in result.output

    def test_rejects_zero_concurrency(self, session, fake):
        result = invoke(session, "populate", "-c", "0")
        assert result.exit_code != 0

    def test_requires_base_url(self, session):
        result = invoke(session, "populate")
        assert result.exit_code != 0
        assert "GRADESNAP_BASE_URL" in result.output


class CountingClient(BaseClient):
    """Blocking client that tracks how many requests overlap."""

    def __init__(self, n_courses):
        super().__init__()
        self.n_courses = n_courses
        self.in_flight = 0
        self.peak = 0
        self._lock = threading.Lock()

    def _do_request(self, method, path, params, body):
        if path == "/api/v1/courses":
            rows = [
                {"id": i, "name": f"Course {i} (SBG)", "enrollments": [{"type": "student"}]}
                for i in range(1, self.n_courses + 1)
            ]
            return ApiResponse(status=200, data=rows)

        with self._lock:
            self.in_flight += 1
            self.peak = max(self.peak, self.in_flight)
        try:
            time.sleep(0.05)
        finally:
            with self._lock:
                self.in_flight -= 1

        if path.endswith("/enrollments"):
            return ApiResponse(
                status=200,
                data=[{"type": "StudentEnrollment", "computed_current_score": 80.0}],
            )
        return ApiResponse(status=200, data=[])


class TestPopulateConcurrency:
    """Test that --concurrency reaches the HTTP thread pool."""

    @pytest.mark.parametrize("workers", [2, 6])
    def test_in_flight_requests_match_flag(self, session, monkeypatch, workers):
        monkeypatch.setenv("GRADESNAP_BASE_URL", "https://lms.example.edu")
        blocking = CountingClient(n_courses=6)
        monkeypatch.setattr(CanvasClient, "from_config", lambda config, logger=None: blocking)

        result = invoke(session, "populate", "-c", str(workers))

        assert result.exit_code == 0, result.output
        assert "Completed: 6/6 succeeded" in result.output
        assert blocking.peak == workers
