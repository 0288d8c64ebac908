"""Abstract source adapter interface.

HistoryService depends only on SourceAdapter. The concrete provider
(CoinGecko price series or Binance klines) is chosen once at startup.
"""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import TypeVar

from analyzer.models import RequestWindow, Sample
from analyzer.resilience.rate_limiter import RateLimiter
from analyzer.resilience.retry import RetryPolicy

T = TypeVar("T")


class UpstreamCaller:
    """Routes every upstream request through the rate limiter and retry policy.

    Each attempt, retries included, waits for rate-limiter admission
    before it goes out.
    """

    def __init__(self, retry_policy: RetryPolicy, rate_limiter: RateLimiter) -> None:
        self._retry_policy = retry_policy
        self._rate_limiter = rate_limiter

    async def _call(self, request: Callable[[], Awaitable[T]], name: str) -> T:
        async def attempt() -> T:
            await self._rate_limiter.wait_if_needed()
            return await request()

        return await self._retry_policy.run(attempt, name=name)


class SourceAdapter(UpstreamCaller, ABC):
    """Normalizes one upstream provider's payload into Samples."""

    name: str = "source"

    @abstractmethod
    async def fetch_samples(self, window: RequestWindow) -> list[Sample]:
        """Fetch everything the provider has for the window as Samples.

        Raises:
            UpstreamError: When a request still fails after retries.
            ValidationError: When the window cannot be served by this source.
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release HTTP clients / exchange sessions."""
        ...
