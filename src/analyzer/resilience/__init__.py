"""Upstream protection -- exponential backoff retry and sliding-window throttling."""

from analyzer.resilience.rate_limiter import RateLimiter
from analyzer.resilience.retry import RetryPolicy, is_retryable

__all__ = ["RateLimiter", "RetryPolicy", "is_retryable"]
