from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, Optional, TypeVar

from ...constants import DEFAULT_RATE_LIMITS

T = TypeVar("T")


class RateLimiter:
    """
    Space outgoing requests at least ``60 / requests_per_minute`` seconds apart.

    Callers over budget wait their turn instead of being rejected. The lock
    makes concurrent callers queue, so together they cannot exceed the budget.
    """

    def __init__(
        self,
        requests_per_minute: int,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if requests_per_minute <= 0:
            raise ValueError("requests_per_minute must be positive")
        self.requests_per_minute = requests_per_minute
        self.min_interval = 60.0 / requests_per_minute
        self._clock = clock
        self._last_request: Optional[float] = None
        self._lock: Optional[asyncio.Lock] = None

    @property
    def lock(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    async def acquire(self) -> None:
        """Wait until a request slot is free and claim it."""
        async with self.lock:
            if self._last_request is not None:
                wait = self.min_interval - (self._clock() - self._last_request)
                if wait > 0:
                    await asyncio.sleep(wait)
            self._last_request = self._clock()

    async def throttle(self, operation: Callable[[], Awaitable[T]]) -> T:
        await self.acquire()
        return await operation()

    def reset(self) -> None:
        self._last_request = None


def limiter_for(provider: str, requests_per_minute: Optional[int] = None) -> Optional[RateLimiter]:
    """A limiter for ``provider``, or None for providers that run unthrottled."""
    if provider not in DEFAULT_RATE_LIMITS or DEFAULT_RATE_LIMITS[provider] is None:
        return None
    return RateLimiter(requests_per_minute or DEFAULT_RATE_LIMITS[provider])
