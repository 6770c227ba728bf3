from __future__ import annotations

import asyncio

import pytest

from hotel_rates.utils.throttling import RequestThrottle


def test_throttle_requires_a_slot() -> None:
    with pytest.raises(ValueError):
        RequestThrottle(max_concurrency=0)


@pytest.mark.asyncio
async def test_throttle_bounds_concurrency() -> None:
    throttle = RequestThrottle(max_concurrency=2)
    active = 0
    peak = 0

    async def worker() -> None:
        nonlocal active, peak
        async with throttle.slot():
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1

    await asyncio.gather(*(worker() for _ in range(6)))

    assert peak == 2


@pytest.mark.asyncio
async def test_penalize_delays_next_start() -> None:
    throttle = RequestThrottle(max_concurrency=4)
    loop = asyncio.get_running_loop()

    throttle.penalize(0.05)
    started = loop.time()
    async with throttle.slot():
        waited = loop.time() - started

    assert waited >= 0.04
