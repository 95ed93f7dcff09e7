"""Bounded-concurrency map over a list, for rate-limited remote APIs."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Iterable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class MapResult(Generic[T]):
    """Outcome of applying the mapped function to one item."""
    index: int
    item: T
    status: str  # "success", "failed"
    value: Any = None
    error: BaseException | None = None
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.status == "success"


async def bounded_map(
    items: Iterable[T],
    fn: Callable[[T], Awaitable[R]],
    *,
    concurrency: int = 3,
    isolate_failures: bool = True,
    on_result: Callable[[MapResult[T]], None] | None = None,
) -> list[MapResult[T]]:
    """Apply *fn* to every item with at most *concurrency* calls in flight.

    Spawns *concurrency* workers that pop from one shared queue until it is
    empty.  Popping is synchronous, so no two workers ever take the same item.

    Args:
        items: Work items, processed in order of dequeue.
        fn: Async function applied to each item.
        concurrency: Number of workers (the admission-control limit).
        isolate_failures: When True an exception from *fn* is recorded on that
            item's ``MapResult`` and the worker moves on.  When False the first
            exception cancels the remaining workers and propagates.
        on_result: Called synchronously with each ``MapResult`` as it lands.

    Returns:
        One ``MapResult`` per item, in input order.
    """
    if concurrency < 1:
        raise ValueError(f"concurrency must be >= 1, got {concurrency}")

    queue: deque[tuple[int, T]] = deque(enumerate(items))
    results: list[MapResult[T] | None] = [None] * len(queue)

    async def worker() -> None:
        while queue:
            index, item = queue.popleft()
            start = time.monotonic()
            try:
                value = await fn(item)
            except Exception as exc:
                if not isolate_failures:
                    raise
                logger.warning("Item %d failed: %s", index, exc)
                result = MapResult(
                    index=index,
                    item=item,
                    status="failed",
                    error=exc,
                    duration_ms=int((time.monotonic() - start) * 1000),
                )
            else:
                result = MapResult(
                    index=index,
                    item=item,
                    status="success",
                    value=value,
                    duration_ms=int((time.monotonic() - start) * 1000),
                )
            results[index] = result
            if on_result is not None:
                on_result(result)

    n_workers = min(concurrency, len(queue)) or 1
    workers = [asyncio.ensure_future(worker()) for _ in range(n_workers)]
    try:
        await asyncio.gather(*workers)
    except BaseException:
        for w in workers:
            w.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        raise

    return [r for r in results if r is not None]
