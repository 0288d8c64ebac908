"""Two-tier response cache (Redis + in-process) with deterministic keys."""

from analyzer.cache.keys import (
    COINS_CACHE_KEY,
    history_key,
    history_ttl_seconds,
    make_key,
)
from analyzer.cache.store import Cache, CacheEntry, RemoteCache

__all__ = [
    "COINS_CACHE_KEY",
    "Cache",
    "CacheEntry",
    "RemoteCache",
    "history_key",
    "history_ttl_seconds",
    "make_key",
]
