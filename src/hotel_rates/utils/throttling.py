"""Request pacing shared by every in-flight itinerary fetch."""
from __future__ import annotations

import asyncio
import random
from contextlib import asynccontextmanager
from typing import AsyncIterator


async def human_delay(min_seconds: float = 0.2, max_seconds: float = 1.2) -> None:
    """Sleep for a random duration between ``min_seconds`` and ``max_seconds``."""
    if max_seconds < min_seconds:
        min_seconds, max_seconds = max_seconds, min_seconds
    await asyncio.sleep(random.uniform(min_seconds, max_seconds))


class RequestThrottle:
    """Bound concurrent requests and space out their start times.

    ``penalize`` pushes the next allowed start into the future, which is how a
    rate-limit response pauses every sibling request, not just the one that hit it.
    """

    def __init__(self, max_concurrency: int = 10, min_interval_s: float = 0.0) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._min_interval_s = max(0.0, min_interval_s)
        self._lock = asyncio.Lock()
        self._next_start = 0.0

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        async with self._semaphore:
            await self._wait_turn()
            yield

    async def _wait_turn(self) -> None:
        loop = asyncio.get_running_loop()
        async with self._lock:
            now = loop.time()
            wait = self._next_start - now
            if wait > 0:
                await asyncio.sleep(wait)
                now = loop.time()
            self._next_start = now + self._min_interval_s

    def penalize(self, seconds: float) -> None:
        loop = asyncio.get_running_loop()
        self._next_start = max(self._next_start, loop.time() + max(0.0, seconds))
