"""
Bounded-parallelism pool for I/O-bound batch work.

Tree building and rendering fan out over many files.  Each batch runs
on the current event loop with at most ``limit`` items in flight
(``asyncio.gather`` + ``Semaphore``), which bounds open file
descriptors and memory.

Failure policy is fail-fast without cancellation: after the first
error no queued item starts, items already running are allowed to
finish, and the first error is re-raised to the caller.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, TypeVar

T = TypeVar("T")


async def for_each_limit(
    items: Iterable[T],
    limit: int,
    worker: Callable[[T], Awaitable[Any]],
) -> list[Any]:
    """Await ``worker(item)`` for every item, at most *limit* at a time.

    Items are started in input order.  Results are returned in input
    order regardless of completion order.

    Raises:
        The first exception raised by any worker.
    """
    batch = list(items)
    results: list[Any] = [None] * len(batch)
    if not batch:
        return results

    sem = asyncio.Semaphore(max(1, limit))
    first_error: BaseException | None = None

    async def _run_one(index: int, item: T) -> None:
        nonlocal first_error
        async with sem:
            if first_error is not None:
                return
            try:
                results[index] = await worker(item)
            except Exception as e:
                if first_error is None:
                    first_error = e

    await asyncio.gather(*[_run_one(i, item) for i, item in enumerate(batch)])

    if first_error is not None:
        raise first_error
    return results


async def maybe_await(value: Any) -> Any:
    """Await *value* if it is awaitable; plugins may be sync or async."""
    if asyncio.iscoroutine(value) or isinstance(value, asyncio.Future):
        return await value
    if hasattr(value, "__await__"):
        return await value
    return value
