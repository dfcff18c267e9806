"""
Bounded-concurrency fan-out for N+1 lookups.

Adapters call `gather_bounded` for per-token metadata and per-signature
detail fetches; batching can later replace it without touching them.
"""

import asyncio
from typing import Awaitable, Callable, Iterable, TypeVar


T = TypeVar("T")
R = TypeVar("R")


async def gather_bounded(
    items: Iterable[T],
    worker: Callable[[T], Awaitable[R]],
    limit: int = 8,
) -> list[R]:
    """
    Run `worker` over `items` with at most `limit` in flight.

    Results come back in input order once every worker has finished.
    A worker exception propagates; workers that must not abort the batch
    handle their own failures.
    """
    semaphore = asyncio.Semaphore(max(1, limit))

    async def run(item: T) -> R:
        async with semaphore:
            return await worker(item)

    return list(await asyncio.gather(*(run(item) for item in items)))
