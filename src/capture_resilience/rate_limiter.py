"""Sliding-window rate limiter.

At most ``requests_per_window`` acquisitions may start within any
``window``-second interval. Callers over the limit sleep until the
oldest admission leaves the window, then check again.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from collections import deque
from typing import Any, Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], float]
SleepFunc = Callable[[float], Awaitable[Any]]


class RateLimiter:
    """Admission control over a rolling time window.

    Usage:
        limiter = RateLimiter(requests_per_window=5, window=1.0)
        await limiter.acquire()
        await call_api()

        # or wrap the operation once
        limited_call = limiter.limit(call_api)

    Args:
        requests_per_window: Admissions allowed per window.
        window: Window length in seconds.
        clock: Monotonic time source in seconds.
        sleep: Async sleep used while waiting for a slot.
    """

    def __init__(
        self,
        requests_per_window: int,
        window: float,
        *,
        clock: Clock = time.monotonic,
        sleep: SleepFunc | None = None,
    ) -> None:
        if requests_per_window < 1:
            raise ValueError(f"requests_per_window must be >= 1, got {requests_per_window}")
        if window <= 0:
            raise ValueError(f"window must be > 0, got {window}")

        self._requests_per_window = requests_per_window
        self._window = window
        self._clock = clock
        self._sleep = sleep or asyncio.sleep
        self._admitted: deque[float] = deque()
        self._lock = asyncio.Lock()

    @property
    def requests_per_window(self) -> int:
        return self._requests_per_window

    @property
    def window(self) -> float:
        return self._window

    @property
    def in_window(self) -> int:
        """Number of admissions currently counted against the window."""
        self._evict(self._clock())
        return len(self._admitted)

    def _evict(self, now: float) -> None:
        cutoff = now - self._window
        while self._admitted and self._admitted[0] <= cutoff:
            self._admitted.popleft()

    async def _try_admit(self) -> float:
        """Record an admission if there is room. Returns 0.0 or the wait needed."""
        async with self._lock:
            now = self._clock()
            self._evict(now)
            if len(self._admitted) < self._requests_per_window:
                self._admitted.append(now)
                return 0.0
            return self._admitted[0] + self._window - now

    async def acquire(self) -> None:
        """Wait until a slot is free, then claim it."""
        while True:
            wait = await self._try_admit()
            if wait <= 0:
                return
            logger.debug("Rate limit hit, waiting %.3fs", wait)
            await self._sleep(wait)

    def limit(self, operation: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        """Return a callable that acquires a slot before each call."""

        @functools.wraps(operation)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            await self.acquire()
            return await operation(*args, **kwargs)

        return wrapper


def create_rate_limiter(
    requests_per_window: int,
    window: float,
    *,
    clock: Clock = time.monotonic,
    sleep: SleepFunc | None = None,
) -> Callable[[], Awaitable[None]]:
    """Return an ``acquire()`` coroutine function bound to a new RateLimiter."""
    return RateLimiter(requests_per_window, window, clock=clock, sleep=sleep).acquire
