"""Page-context detection and grade display helpers."""

from __future__ import annotations

import re
from urllib.parse import urlparse

from .models import PageContext

_COURSE_GRADES = re.compile(r"^/courses/[^/]+/grades(/|$)")


def detect_page_context(url_or_path: str) -> PageContext | None:
    """Map an LMS URL or path to the page context it represents.

    ``/`` and ``/dashboard...`` are the dashboard, ``/courses/<id>/grades...``
    is a single course's grades, and any other path containing ``/grades``
    is the all-grades page.  Anything else has no grade surface.
    """
    path = urlparse(url_or_path).path or "/"
    if path == "/" or path.startswith("/dashboard"):
        return PageContext.DASHBOARD
    if _COURSE_GRADES.match(path):
        return PageContext.COURSE_GRADES
    if "/grades" in path and not path.startswith("/courses/"):
        return PageContext.ALL_GRADES
    return None


def percentage_to_points(percentage: float, max_points: float = 4.0) -> float:
    """Convert an enrollment percentage (0-100) to the point scale."""
    return percentage / 100 * max_points


def format_grade_display(score: float | str, letter_grade: str | None = None) -> str:
    """``2.74 (Target)``, or just ``2.74`` without a letter grade."""
    text = f"{score:.2f}" if isinstance(score, (int, float)) else str(score)
    if letter_grade:
        return f"{text} ({letter_grade})"
    return text
