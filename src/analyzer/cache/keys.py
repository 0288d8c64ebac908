"""Deterministic cache keys and the TTL policy for history windows."""

from analyzer.config import CacheSettings
from analyzer.models import RequestWindow

HISTORY_NAMESPACE = "history"
COINS_CACHE_KEY = "coins:market"


def make_key(namespace: str, params: dict[str, str | int]) -> str:
    """Build "<namespace>:<k1>:<v1>|<k2>:<v2>..." with keys sorted.

    Identical parameter sets map to identical keys regardless of insertion
    order.
    """
    joined = "|".join(f"{name}:{params[name]}" for name in sorted(params))
    return f"{namespace}:{joined}"


def history_key(window: RequestWindow) -> str:
    """Cache key for a validated history request.

    Uses the normalized window, so "2024-01-01T00:00:00Z" and
    "2024-01-01T00:00:00+00:00" share an entry.
    """
    return make_key(
        HISTORY_NAMESPACE,
        {
            "coin": window.coin,
            "from": window.from_ms,
            "to": window.to_ms,
            "interval": window.interval,
        },
    )


def history_ttl_seconds(to_ms: int, now_ms: int, settings: CacheSettings) -> int:
    """Short TTL while the window's end is recent (data may still move), long otherwise."""
    recent_cutoff_ms = now_ms - settings.recent_window_hours * 3_600_000
    if to_ms > recent_cutoff_ms:
        return settings.recent_ttl_seconds
    return settings.historical_ttl_seconds
