"""Bounded-concurrency batch runner.

Items are processed in consecutive chunks of ``concurrency``. Every worker in a chunk
runs concurrently, and the whole chunk settles before the next one starts. Chunks are
separated by ``delay`` seconds of idle time to stay under upstream rate limits.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


async def run_batched(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    concurrency: int = 10,
    delay: float = 0.1,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> list[R]:
    """Run ``worker`` over ``items`` chunk by chunk. Output order matches input order."""
    if concurrency < 1:
        raise ValueError(f"concurrency must be >= 1, got {concurrency}")
    results: list[R] = []
    for start in range(0, len(items), concurrency):
        if start:
            await sleep(delay)
        chunk = items[start:start + concurrency]
        results.extend(await asyncio.gather(*(worker(item) for item in chunk)))
    return results
