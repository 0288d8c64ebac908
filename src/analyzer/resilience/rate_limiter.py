"""Sliding-window request throttle shared by all requests to one upstream."""

import asyncio
import time
from collections import deque
from collections.abc import Awaitable, Callable

from analyzer.config import RateLimitSettings
from analyzer.logging import get_logger

logger = get_logger(__name__)


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


class RateLimiter:
    """Caps calls to max_requests per window_ms.

    Admission (prune, check, record) runs under an asyncio.Lock, so
    concurrent callers are admitted one at a time and each re-checks the
    window after waiting.

    Args:
        max_requests: Calls allowed inside any window.
        window_ms: Window length in milliseconds.
        clock: Millisecond clock (injectable for tests).
        sleep: Awaitable sleep taking seconds (injectable for tests).
    """

    def __init__(
        self,
        max_requests: int,
        window_ms: int,
        clock: Callable[[], float] = _monotonic_ms,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._max_requests = max_requests
        self._window_ms = window_ms
        self._clock = clock
        self._sleep = sleep
        self._requests: deque[float] = deque()
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: RateLimitSettings) -> "RateLimiter":
        return cls(settings.max_requests, settings.window_ms)

    def _prune(self, now: float) -> None:
        while self._requests and now - self._requests[0] >= self._window_ms:
            self._requests.popleft()

    async def wait_if_needed(self) -> float:
        """Block until a request may be made, then record it.

        Returns:
            Total milliseconds spent waiting (0 when admitted immediately).
        """
        waited = 0.0
        async with self._lock:
            while True:
                now = self._clock()
                self._prune(now)
                if len(self._requests) < self._max_requests:
                    self._requests.append(now)
                    return waited

                wait_ms = self._window_ms - (now - self._requests[0])
                logger.debug(
                    "rate_limit_wait",
                    wait_ms=round(wait_ms, 1),
                    in_window=len(self._requests),
                    max_requests=self._max_requests,
                )
                await self._sleep(wait_ms / 1000)
                waited += wait_ms

    @property
    def in_window(self) -> int:
        """Requests currently recorded in the window (for diagnostics)."""
        self._prune(self._clock())
        return len(self._requests)
