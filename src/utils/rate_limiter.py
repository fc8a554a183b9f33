"""Request rate limiting for the async ledger RPC client."""

from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable


@dataclass(frozen=True)
class RateLimitConfig:
    """Allow ``max_requests`` calls per ``time_window`` seconds."""

    max_requests: int
    time_window: float

    def __post_init__(self) -> None:
        if self.max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if self.time_window <= 0:
            raise ValueError("time_window must be positive")


class RateLimitExceeded(Exception):
    """Raised by a non-blocking acquire when no slot is free."""

    def __init__(self, message: str, retry_after: float) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class AsyncRateLimiter:
    """
    Sliding-window limiter shared by every request of one RPC client.

    Example:
        limiter = AsyncRateLimiter(RateLimitConfig(max_requests=4, time_window=1.0))
        await limiter.acquire()
    """

    def __init__(
        self,
        config: RateLimitConfig,
        time_provider: Callable[[], float] | None = None,
    ) -> None:
        self.config = config
        self._time_provider = time_provider or time.monotonic
        self._timestamps: deque[float] = deque()
        self._lock = asyncio.Lock()

    async def acquire(self, *, blocking: bool = True) -> bool:
        while True:
            async with self._lock:
                now = self._time_provider()
                self._evict(now)
                if len(self._timestamps) < self.config.max_requests:
                    self._timestamps.append(now)
                    return True
                wait_time = self._retry_after(now)
                if not blocking:
                    raise RateLimitExceeded(
                        f"Rate limit exceeded: {self.config.max_requests} requests "
                        f"per {self.config.time_window}s",
                        retry_after=wait_time,
                    )
            await asyncio.sleep(wait_time)

    def current_usage(self) -> tuple[int, int]:
        self._evict(self._time_provider())
        return len(self._timestamps), self.config.max_requests

    def reset(self) -> None:
        self._timestamps.clear()

    def _evict(self, now: float) -> None:
        cutoff = now - self.config.time_window
        while self._timestamps and self._timestamps[0] <= cutoff:
            self._timestamps.popleft()

    def _retry_after(self, now: float) -> float:
        if not self._timestamps:
            return 0.0
        return max(0.0, self._timestamps[0] + self.config.time_window - now)
