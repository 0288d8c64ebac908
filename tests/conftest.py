"""Shared test fixtures for the crypto analyzer service."""

import pytest

from analyzer.config import AppSettings, CacheSettings, CoinGeckoSettings, RetrySettings
from analyzer.resilience.rate_limiter import RateLimiter
from analyzer.resilience.retry import RetryPolicy


class FakeClock:
    """Millisecond clock whose sleep advances time instead of waiting."""

    def __init__(self, start_ms: float = 0.0) -> None:
        self.now_ms = start_ms
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now_ms

    def advance(self, ms: float) -> None:
        self.now_ms += ms

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now_ms += seconds * 1000


@pytest.fixture
def mock_settings() -> AppSettings:
    """Return AppSettings with test defaults (CoinGecko source, no Redis)."""
    return AppSettings(
        log_level="DEBUG",
        coingecko=CoinGeckoSettings(api_url="https://coingecko.test/api/v3"),
        cache=CacheSettings(url="", token=""),  # type: ignore[arg-type]
        retry=RetrySettings(max_retries=3, base_delay_ms=10, max_delay_ms=100),
    )


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock(start_ms=1_000_000.0)


@pytest.fixture
def retry_policy(fake_clock: FakeClock) -> RetryPolicy:
    """Retry policy that never really sleeps."""
    return RetryPolicy(
        max_retries=3,
        base_delay_ms=10,
        max_delay_ms=100,
        backoff_factor=2.0,
        sleep=fake_clock.sleep,
    )


@pytest.fixture
def rate_limiter(fake_clock: FakeClock) -> RateLimiter:
    """Generous limiter on the fake clock."""
    return RateLimiter(
        max_requests=1000,
        window_ms=60_000,
        clock=fake_clock,
        sleep=fake_clock.sleep,
    )
