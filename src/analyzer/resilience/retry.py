"""Exponential backoff retry for fallible async upstream calls.

Transient failures (no status, 429, 5xx, connection reset / timeout / DNS)
are retried; everything else fails on the first attempt. After the last
attempt the original exception is re-raised unchanged.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from analyzer.config import RetrySettings
from analyzer.exceptions import AnalyzerError, UpstreamError
from analyzer.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# Substrings of transport-level failure messages (OS, httpx and ccxt wording)
NETWORK_ERROR_MARKERS = (
    "ECONNRESET",
    "ETIMEDOUT",
    "ENOTFOUND",
    "connection reset",
    "timed out",
    "timeout",
    "name or service not known",
    "nodename nor servname",
    "temporary failure in name resolution",
)


def is_retryable(error: BaseException) -> bool:
    """Classify an error as transient (retry) or fatal (raise now)."""
    if isinstance(error, UpstreamError):
        status = error.status
        return status is None or status == 429 or 500 <= status <= 599
    if isinstance(error, AnalyzerError):
        # Validation, config and cache errors never improve on retry
        return False
    if isinstance(error, (TimeoutError, ConnectionError)):
        return True
    message = str(error).lower()
    return any(marker.lower() in message for marker in NETWORK_ERROR_MARKERS)


class RetryPolicy:
    """Runs an async operation with exponential backoff.

    Delay before retry n (0-based) is min(base * factor**n, max).
    max_retries counts retries, so an always-failing transient operation
    is attempted max_retries + 1 times.

    Args:
        max_retries: Retries after the first attempt.
        base_delay_ms: Delay before the first retry.
        max_delay_ms: Cap on any single delay.
        backoff_factor: Multiplier applied per attempt.
        sleep: Awaitable sleep taking seconds (injectable for tests).
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay_ms: int = 1000,
        max_delay_ms: int = 30_000,
        backoff_factor: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._max_retries = max_retries
        self._base_delay_ms = base_delay_ms
        self._max_delay_ms = max_delay_ms
        self._backoff_factor = backoff_factor
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> "RetryPolicy":
        return cls(
            max_retries=settings.max_retries,
            base_delay_ms=settings.base_delay_ms,
            max_delay_ms=settings.max_delay_ms,
            backoff_factor=settings.backoff_factor,
        )

    @property
    def max_retries(self) -> int:
        return self._max_retries

    def delay_ms(self, attempt: int) -> float:
        """Backoff delay before retrying after the given 0-based attempt."""
        return min(
            self._base_delay_ms * self._backoff_factor**attempt,
            self._max_delay_ms,
        )

    async def run(self, operation: Callable[[], Awaitable[T]], name: str = "upstream") -> T:
        """Execute operation, retrying transient failures.

        Raises:
            Exception: The last error, unchanged, once retries are exhausted
                or on the first non-retryable error.
        """
        for attempt in range(self._max_retries + 1):
            try:
                return await operation()
            except Exception as exc:
                if attempt == self._max_retries or not is_retryable(exc):
                    logger.error(
                        "upstream_failed",
                        operation=name,
                        attempts=attempt + 1,
                        retryable=is_retryable(exc),
                        status=getattr(exc, "status", None),
                        error=str(exc),
                    )
                    raise

                delay = self.delay_ms(attempt)
                logger.warning(
                    "upstream_retry",
                    operation=name,
                    attempt=attempt + 1,
                    max_retries=self._max_retries,
                    delay_ms=delay,
                    status=getattr(exc, "status", None),
                    error=str(exc),
                )
                await self._sleep(delay / 1000)

        raise AssertionError("unreachable")  # loop always returns or raises
