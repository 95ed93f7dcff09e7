"""JSONL trace logging for API calls and population runs.

Module-level diagnostics go through the stdlib ``logging`` package
(``logging.getLogger(__name__)``).  This module is the *structured* trace:
one JSON object per line, append-only, so a population run can be inspected
or replayed after the fact.

Event types written by the package:

* ``request``: one per remote call (``BaseClient.request``) with method, path,
  status and latency.
* ``course_populated`` / ``course_skipped`` / ``course_failed``: one per
  course in a bulk population run.
* ``population_complete``: run summary counts.
"""

import json
import time
from pathlib import Path
from typing import Any, TextIO


class TraceLogger:
    """Appends trace events for one run to a JSONL file.

    The file is opened on the first event, so a run that emits nothing leaves
    no file behind.  Every record carries ``run_id`` and a per-run ``seq``
    so interleaved runs in one file can be told apart and ordered.
    """

    def __init__(self, output_path: Path | str, run_id: str):
        self.output_path = Path(output_path)
        self.run_id = run_id
        self.count = 0
        self._file: TextIO | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def log(self, event_type: str, **data: Any) -> None:
        """Record a pipeline event such as ``course_failed``."""
        self._emit(event_type, data)

    def log_request(
        self,
        method: str,
        path: str,
        status: int | None,
        latency_ms: int,
        error: str | None = None,
    ) -> None:
        """Record one remote API call."""
        data: dict[str, Any] = {
            "method": method,
            "path": path,
            "status": status,
            "latency_ms": latency_ms,
        }
        if error:
            data["error"] = error
        self._emit("request", data)

    def _emit(self, event_type: str, data: dict) -> None:
        if self._closed:
            return
        if self._file is None:
            self.output_path.parent.mkdir(parents=True, exist_ok=True)
            self._file = open(self.output_path, "a")
        self.count += 1
        record = {
            "timestamp": time.time(),
            "run_id": self.run_id,
            "seq": self.count,
            "type": event_type,
            **data,
        }
        self._file.write(json.dumps(record, default=str) + "\n")
        self._file.flush()

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None
        self._closed = True

    def __enter__(self) -> "TraceLogger":
        return self

    def __exit__(self, *args) -> None:
        self.close()


def read_trace(path: Path | str) -> list[dict]:
    """Load every event from a trace file, skipping blank lines."""
    events = []
    with open(path) as f:
        for line in f:
            line = line.strip()
            if line:
                events.append(json.loads(line))
    return events
