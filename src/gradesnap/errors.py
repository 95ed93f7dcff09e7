"""Exception hierarchy.

Only ``ConfigError`` is meant to reach callers.  ``RemoteError`` and
``SnapshotDecodeError`` are raised by the lower layers and caught at the
boundary nearest their cause (classifier, resolver, snapshot store).
"""


class GradesnapError(Exception):
    """Base class for all gradesnap errors."""


class RemoteError(GradesnapError):
    """A remote grading API call failed (network or HTTP status)."""

    def __init__(self, message: str, *, status: int | None = None, path: str = ""):
        super().__init__(message)
        self.status = status
        self.path = path

    @property
    def retryable(self) -> bool:
        """Rate limits, server errors and network failures (no status)."""
        if self.status is None:
            return True
        return self.status == 429 or self.status >= 500


class SnapshotDecodeError(GradesnapError):
    """A stored snapshot could not be decoded."""


class ConfigError(GradesnapError):
    """Invalid configuration value."""
