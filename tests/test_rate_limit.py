import asyncio

import pytest

from pricewatch.ingestor.providers.rate_limit import FixedWindowRateLimiter


@pytest.fixture
def limiter(clock):
    return FixedWindowRateLimiter(5, 60, clock=clock, sleep=clock.sleep, name="test")


async def test_allows_requests_within_window(limiter, clock):
    for _ in range(5):
        assert await limiter.acquire() == 0
    assert clock.sleeps == []
    assert limiter.remaining() == 0


async def test_sixth_request_waits_for_window(limiter, clock):
    for _ in range(5):
        await limiter.acquire()
    clock.advance(10)

    waited = await limiter.acquire()

    assert waited > 0
    assert clock.now > 60
    assert limiter.request_count == 1


async def test_window_resets_after_elapsed(limiter, clock):
    for _ in range(5):
        await limiter.acquire()
    clock.advance(61)

    assert limiter.remaining() == 5
    assert await limiter.acquire() == 0


async def test_concurrent_callers_never_exceed_capacity(limiter, clock):
    start = clock.now
    await asyncio.gather(*[limiter.acquire() for _ in range(12)])

    # 5 in the first window, 5 in the second, 2 in the third
    assert clock.now - start > 120
    assert limiter.request_count == 2


async def test_defer_blocks_until_retry_after(limiter, clock):
    await limiter.acquire()
    limiter.defer(30)

    assert limiter.remaining() == 0
    waited = await limiter.acquire()

    assert 30 <= waited < 31


def test_rejects_bad_configuration(clock):
    with pytest.raises(ValueError):
        FixedWindowRateLimiter(0, 60, clock=clock)
    with pytest.raises(ValueError):
        FixedWindowRateLimiter(5, 0, clock=clock)
