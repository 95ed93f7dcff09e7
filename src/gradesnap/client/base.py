"""Remote grading client types and protocol.

Two layers, mirroring how the rest of the package consumes the API:

1. ``BaseClient``: abstract *blocking* client.  ``request()`` wraps the
   subclass's ``_do_request()`` with trace logging so every call lands in the
   trace whether it succeeds or fails.  Subclasses only talk HTTP.

2. ``AsyncClient``: adapter that runs a ``BaseClient`` on a thread pool and
   exposes ``async get/post/put``.  The classifier, resolver and snapshot
   store only ever see this async surface (``GradingClient``); each awaited
   call is a suspension point for the event loop.

Tests substitute any object with async ``get`` (and friends) for
``GradingClient``.
"""

from __future__ import annotations

import asyncio
import functools
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable, TYPE_CHECKING

from ..errors import RemoteError

if TYPE_CHECKING:
    from ..logging import TraceLogger


@dataclass
class ApiResponse:
    """A decoded API response."""
    status: int
    data: Any
    next_url: str | None = None   # pagination: Link rel="next"


@runtime_checkable
class GradingClient(Protocol):
    """Async surface consumed by the classifier, resolver and pipeline."""

    async def get(self, path: str, params: dict | None = None) -> Any: ...

    async def post(self, path: str, body: dict | None = None) -> Any: ...

    async def put(self, path: str, body: dict | None = None) -> Any: ...

    async def get_all_pages(self, path: str, params: dict | None = None) -> Any: ...


class BaseClient(ABC):
    """Abstract blocking client with automatic request tracing.

    Subclass this and implement ``_do_request()``.  Errors must be raised as
    ``RemoteError``.
    """

    def __init__(self, logger: "TraceLogger | None" = None):
        self.logger = logger

    # ------------------------------------------------------------------
    # Public API (do NOT override)
    # ------------------------------------------------------------------

    def request(
        self,
        method: str,
        path: str,
        params: dict | None = None,
        body: dict | None = None,
    ) -> ApiResponse:
        """Perform one call and trace it."""
        start = time.monotonic()
        try:
            response = self._do_request(method, path, params, body)
        except RemoteError as e:
            self._trace(method, path, e.status, start, error=str(e))
            raise
        self._trace(method, path, response.status, start)
        return response

    def get(self, path: str, params: dict | None = None) -> Any:
        return self.request("GET", path, params=params).data

    def post(self, path: str, body: dict | None = None) -> Any:
        return self.request("POST", path, body=body).data

    def put(self, path: str, body: dict | None = None) -> Any:
        return self.request("PUT", path, body=body).data

    def get_all_pages(self, path: str, params: dict | None = None) -> Any:
        """GET and follow ``next`` links, concatenating list pages.

        A non-list response is returned as-is from the first page.
        """
        response = self.request("GET", path, params=params)
        if not isinstance(response.data, list):
            return response.data

        items = list(response.data)
        while response.next_url:
            response = self.request("GET", response.next_url)
            if not isinstance(response.data, list):
                break
            items.extend(response.data)
        return items

    def close(self) -> None:
        """Release transport resources (no-op by default)."""

    # ------------------------------------------------------------------
    # Subclass contract
    # ------------------------------------------------------------------

    @abstractmethod
    def _do_request(
        self,
        method: str,
        path: str,
        params: dict | None,
        body: dict | None,
    ) -> ApiResponse:
        """Perform the HTTP call.  Raise ``RemoteError`` on failure."""
        ...

    def _trace(
        self,
        method: str,
        path: str,
        status: int | None,
        start: float,
        error: str | None = None,
    ) -> None:
        if self.logger:
            self.logger.log_request(
                method=method,
                path=path,
                status=status,
                latency_ms=int((time.monotonic() - start) * 1000),
                error=error,
            )


class AsyncClient:
    """Async adapter over a blocking ``BaseClient``.

    Size the pool to the population concurrency so no worker waits on a
    thread while its peers hold the others.
    """

    def __init__(self, client: BaseClient, max_workers: int = 3):
        self.client = client
        self._executor = ThreadPoolExecutor(max_workers=max_workers)

    async def _call(self, fn, *args) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(fn, *args))

    async def get(self, path: str, params: dict | None = None) -> Any:
        return await self._call(self.client.get, path, params)

    async def post(self, path: str, body: dict | None = None) -> Any:
        return await self._call(self.client.post, path, body)

    async def put(self, path: str, body: dict | None = None) -> Any:
        return await self._call(self.client.put, path, body)

    async def get_all_pages(self, path: str, params: dict | None = None) -> Any:
        return await self._call(self.client.get_all_pages, path, params)

    def close(self) -> None:
        self._executor.shutdown(wait=False)
        self.client.close()

    def __enter__(self) -> "AsyncClient":
        return self

    def __exit__(self, *args) -> None:
        self.close()
