"""Session-scoped key-value adapters.

Two layers, as with the client:

1. ``KeyValueStore``: structural Protocol (``get/set/delete/clear/keys``).
2. ``NamespacedStore``: base class that prefixes every key with a private
   namespace so ``clear()`` only ever removes our own entries.  Concrete
   stores implement the ``_raw_*`` hooks.

``MemoryStore`` lives for the process; ``JsonFileStore`` keeps a session file
so state survives between CLI invocations.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterator, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class KeyValueStore(Protocol):
    """Protocol for session storage (structural typing)."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def clear(self) -> int: ...

    def keys(self) -> list[str]: ...


class NamespacedStore(ABC):
    """Prefixes keys with *namespace*; subclasses provide raw storage."""

    def __init__(self, namespace: str = "cg_"):
        self.namespace = namespace

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get(self, key: str) -> str | None:
        return self._raw_get(self.namespace + key)

    def set(self, key: str, value: str) -> None:
        self._raw_set(self.namespace + key, value)

    def delete(self, key: str) -> None:
        self._raw_delete(self.namespace + key)

    def keys(self) -> list[str]:
        n = len(self.namespace)
        return [k[n:] for k in self._raw_keys() if k.startswith(self.namespace)]

    def clear(self) -> int:
        """Remove every namespaced key; returns the number removed."""
        owned = [k for k in self._raw_keys() if k.startswith(self.namespace)]
        for k in owned:
            self._raw_delete(k)
        return len(owned)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    # ------------------------------------------------------------------
    # Subclass contract
    # ------------------------------------------------------------------

    @abstractmethod
    def _raw_get(self, key: str) -> str | None: ...

    @abstractmethod
    def _raw_set(self, key: str, value: str) -> None: ...

    @abstractmethod
    def _raw_delete(self, key: str) -> None: ...

    @abstractmethod
    def _raw_keys(self) -> list[str]: ...


class MemoryStore(NamespacedStore):
    """In-process store.  *backing* may be shared between instances."""

    def __init__(self, namespace: str = "cg_", backing: dict[str, str] | None = None):
        super().__init__(namespace)
        self._data: dict[str, str] = backing if backing is not None else {}

    def _raw_get(self, key: str) -> str | None:
        return self._data.get(key)

    def _raw_set(self, key: str, value: str) -> None:
        self._data[key] = value

    def _raw_delete(self, key: str) -> None:
        self._data.pop(key, None)

    def _raw_keys(self) -> list[str]:
        return list(self._data)


class JsonFileStore(NamespacedStore):
    """Store backed by a single JSON object on disk.

    The whole file is rewritten on each mutation via a temp file and
    ``os.replace`` so a crash never leaves a half-written session.
    """

    def __init__(self, path: Path | str, namespace: str = "cg_"):
        super().__init__(namespace)
        self.path = Path(path)
        self._data: dict[str, str] = self._load()

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text())
        except (OSError, ValueError) as e:
            logger.warning("Session file %s unreadable, starting empty: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Session file %s is not a JSON object, starting empty", self.path)
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _flush(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(self._data, f, indent=2, sort_keys=True)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def _raw_get(self, key: str) -> str | None:
        return self._data.get(key)

    def _raw_set(self, key: str, value: str) -> None:
        self._data[key] = value
        self._flush()

    def _raw_delete(self, key: str) -> None:
        if self._data.pop(key, None) is not None:
            self._flush()

    def _raw_keys(self) -> list[str]:
        return list(self._data)
