import pytest

from utils.rate_limiter import AsyncRateLimiter, RateLimitConfig, RateLimitExceeded


class ManualTime:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


@pytest.mark.asyncio
async def test_acquire_until_window_is_full():
    clock = ManualTime()
    limiter = AsyncRateLimiter(RateLimitConfig(max_requests=2, time_window=1.0), clock)

    assert await limiter.acquire(blocking=False) is True
    assert await limiter.acquire(blocking=False) is True
    with pytest.raises(RateLimitExceeded) as excinfo:
        await limiter.acquire(blocking=False)

    assert excinfo.value.retry_after == pytest.approx(1.0)
    assert limiter.current_usage() == (2, 2)


@pytest.mark.asyncio
async def test_window_slides_forward():
    clock = ManualTime()
    limiter = AsyncRateLimiter(RateLimitConfig(max_requests=1, time_window=1.0), clock)

    await limiter.acquire(blocking=False)
    clock.now += 1.0

    assert await limiter.acquire(blocking=False) is True


@pytest.mark.asyncio
async def test_reset_clears_usage():
    limiter = AsyncRateLimiter(RateLimitConfig(max_requests=1, time_window=60.0))

    await limiter.acquire()
    limiter.reset()

    assert limiter.current_usage() == (0, 1)


@pytest.mark.parametrize(
    ("max_requests", "time_window"), [(0, 1.0), (1, 0.0), (1, -1.0)]
)
def test_invalid_config_rejected(max_requests, time_window):
    with pytest.raises(ValueError):
        RateLimitConfig(max_requests=max_requests, time_window=time_window)
