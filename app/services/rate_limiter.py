"""
Pacing policies for rate-limited external calls (OCR API, AI gateway).

Kept apart from the extraction logic so delays can be tuned or swapped
(tests inject a no-op ``sleep``).
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RateLimitedError(Exception):
    """Raised by an adapter when the remote service answered with a rate limit."""
    pass


class FixedDelayRateLimiter:
    """
    Enforces a minimum delay between consecutive calls.

    The first call goes through immediately; every following call waits until
    ``delay_seconds`` have passed since the previous one was released.
    """

    def __init__(
        self,
        delay_seconds: float,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.delay_seconds = max(0.0, delay_seconds)
        self._sleep = sleep
        self._clock = clock
        self._last_release: Optional[float] = None
        self._lock = asyncio.Lock()

    async def wait(self) -> None:
        async with self._lock:
            if self._last_release is not None and self.delay_seconds > 0:
                remaining = self.delay_seconds - (self._clock() - self._last_release)
                if remaining > 0:
                    logger.debug(f"⏳ Rate limiter waiting {remaining:.1f}s")
                    await self._sleep(remaining)
            self._last_release = self._clock()

    def reset(self) -> None:
        self._last_release = None


class RateLimitRetryPolicy:
    """Retries a coroutine after a fixed backoff when it raises RateLimitedError."""

    def __init__(
        self,
        max_retries: int,
        backoff_seconds: float,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep

    async def run(
        self,
        func: Callable[[], Awaitable[T]],
        on_rate_limited: Optional[Callable[[int, RateLimitedError], None]] = None,
    ) -> T:
        attempt = 0
        while True:
            try:
                return await func()
            except RateLimitedError as e:
                if attempt >= self.max_retries:
                    raise
                attempt += 1
                logger.warning(
                    f"⚠️  Rate limited, waiting {self.backoff_seconds:.0f}s "
                    f"(attempt {attempt}/{self.max_retries})"
                )
                if on_rate_limited is not None:
                    on_rate_limited(attempt, e)
                await self._sleep(self.backoff_seconds)
