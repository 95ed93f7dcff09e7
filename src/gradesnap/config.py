"""Runtime configuration.

Defaults mirror a typical standards-based deployment: a sentinel assignment
named "Current Score Assignment", a nine-level rating scale topping out at
4 points, and three concurrent workers.  ``GradesnapConfig.from_env()`` reads
``GRADESNAP_*`` overrides.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field

from .errors import ConfigError
from .models import DEFAULT_RATING_SCALE, RatingLevel

DEFAULT_SENTINEL_NAME = "Current Score Assignment"
DEFAULT_COURSE_PATTERNS: tuple[str | re.Pattern, ...] = (
    "SBG",
    re.compile(r"standards", re.IGNORECASE),
)

CoursePattern = str | re.Pattern


@dataclass
class GradesnapConfig:
    """Settings for the classifier, resolver, store and pipeline."""
    base_url: str = ""
    api_token: str | None = None
    sentinel_name: str = DEFAULT_SENTINEL_NAME
    course_patterns: list[CoursePattern] = field(
        default_factory=lambda: list(DEFAULT_COURSE_PATTERNS)
    )
    rating_scale: list[RatingLevel] = field(
        default_factory=lambda: list(DEFAULT_RATING_SCALE)
    )
    max_points: float = 4.0
    cache_ttl: float = 300.0       # raw-grade cache, seconds
    concurrency: int = 3           # bulk population workers
    http_timeout: float = 30.0
    student_id: str = "self"
    namespace: str = "cg_"
    single_flight: bool = False

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        if self.concurrency < 1:
            raise ConfigError(f"concurrency must be >= 1, got {self.concurrency}")
        if self.cache_ttl < 0:
            raise ConfigError(f"cache_ttl must be >= 0, got {self.cache_ttl}")
        if self.max_points <= 0:
            raise ConfigError(f"max_points must be > 0, got {self.max_points}")
        if not self.rating_scale:
            raise ConfigError("rating_scale must not be empty")
        if not self.sentinel_name:
            raise ConfigError("sentinel_name must not be empty")

    @classmethod
    def from_env(cls, **overrides) -> "GradesnapConfig":
        """Build a config from ``GRADESNAP_*`` environment variables.

        Keyword *overrides* win over the environment.
        """
        env = os.environ
        kwargs: dict = {}

        if "GRADESNAP_BASE_URL" in env:
            kwargs["base_url"] = env["GRADESNAP_BASE_URL"]
        if "GRADESNAP_TOKEN" in env:
            kwargs["api_token"] = env["GRADESNAP_TOKEN"]
        if "GRADESNAP_SENTINEL" in env:
            kwargs["sentinel_name"] = env["GRADESNAP_SENTINEL"]
        if "GRADESNAP_STUDENT_ID" in env:
            kwargs["student_id"] = env["GRADESNAP_STUDENT_ID"]
        if "GRADESNAP_PATTERNS" in env:
            kwargs["course_patterns"] = parse_patterns(env["GRADESNAP_PATTERNS"])
        if "GRADESNAP_CONCURRENCY" in env:
            kwargs["concurrency"] = _parse_number(env, "GRADESNAP_CONCURRENCY", int)
        if "GRADESNAP_CACHE_TTL" in env:
            kwargs["cache_ttl"] = _parse_number(env, "GRADESNAP_CACHE_TTL", float)
        if "GRADESNAP_TIMEOUT" in env:
            kwargs["http_timeout"] = _parse_number(env, "GRADESNAP_TIMEOUT", float)

        kwargs.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**kwargs)


def parse_patterns(raw: str) -> list[CoursePattern]:
    """Parse a comma list of course-name patterns.

    ``/expr/`` entries become case-insensitive regexes; anything else is a
    plain substring.
    """
    patterns: list[CoursePattern] = []
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        if len(item) > 2 and item.startswith("/") and item.endswith("/"):
            try:
                patterns.append(re.compile(item[1:-1], re.IGNORECASE))
            except re.error as e:
                raise ConfigError(f"Invalid course pattern {item!r}: {e}") from e
        else:
            patterns.append(item)
    return patterns


def _parse_number(env, name: str, kind):
    try:
        return kind(env[name])
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {env[name]!r}") from e
