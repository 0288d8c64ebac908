"""History request orchestration.

Per request, strictly in order:
    validate -> cache lookup -> (hit: done)
             -> fetch (rate limit + retry inside the source) -> bucketize
             -> cache write -> done

Validation failures raise ValidationError before any cache or upstream
access. An upstream failure that survives retries raises UpstreamError;
nothing stale or empty is substituted for it. Cache problems are absorbed
(by the Cache facade, or here when a cached value has the wrong shape) and
only ever turn a hit into a miss.
"""

import time
from collections.abc import Callable
from typing import Any, TypeVar

from analyzer.cache.keys import COINS_CACHE_KEY, history_key, history_ttl_seconds
from analyzer.cache.store import Cache
from analyzer.config import CacheSettings
from analyzer.history.bucketizer import bucketize
from analyzer.history.request import parse_request
from analyzer.logging import get_logger
from analyzer.models import CoinSummary, HistoryRecord
from analyzer.sources.base import SourceAdapter
from analyzer.sources.coingecko import CoinListProvider

logger = get_logger(__name__)

T = TypeVar("T")


def _now_ms() -> int:
    return int(time.time() * 1000)


class HistoryService:
    """Serves bucketed OHLCV history and the coin list, cache first.

    All collaborators are built once at startup and injected here.

    Args:
        source: History source chosen by configuration.
        cache: Shared two-tier cache.
        cache_settings: TTL policy.
        coin_list: Coin list provider (always CoinGecko).
        clock: Millisecond wall clock for the TTL policy (injectable for tests).
    """

    def __init__(
        self,
        source: SourceAdapter,
        cache: Cache,
        cache_settings: CacheSettings,
        coin_list: CoinListProvider,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._source = source
        self._cache = cache
        self._cache_settings = cache_settings
        self._coin_list = coin_list
        self._clock = clock

    @property
    def source_name(self) -> str:
        return self._source.name

    def _decode(
        self,
        key: str,
        rows: Any,
        from_dict: Callable[[dict], T],
    ) -> list[T] | None:
        """Rebuild cached rows; a value of the wrong shape counts as a miss."""
        if rows is None:
            return None
        try:
            return [from_dict(row) for row in rows]
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            logger.warning("cache_decode_failed", key=key, error=repr(exc))
            return None

    async def get_history(
        self,
        coin: str | None,
        from_: str | None,
        to: str | None,
        interval: str | None,
    ) -> list[HistoryRecord]:
        """Return OHLCV records for the request, ascending by timestamp.

        Raises:
            ValidationError: Missing/invalid parameters or unsupported coin.
            UpstreamError: Fetch failed after retries.
        """
        window = parse_request(coin, from_, to, interval)
        key = history_key(window)

        cached = self._decode(key, await self._cache.get(key), HistoryRecord.from_dict)
        if cached is not None:
            logger.info("history_cache_hit", key=key, records=len(cached))
            return cached

        logger.info("history_cache_miss", key=key, source=self._source.name)
        samples = await self._source.fetch_samples(window)
        records = bucketize(samples, window.bucket_width_ms)

        ttl = history_ttl_seconds(window.to_ms, self._clock(), self._cache_settings)
        await self._cache.set(key, [r.to_dict() for r in records], ttl)

        logger.info(
            "history_built",
            samples=len(samples),
            records=len(records),
            ttl_seconds=ttl,
        )
        return records

    async def get_coins(self) -> list[CoinSummary]:
        """Return the coin list, cached under a fixed key.

        Raises:
            UpstreamError: Fetch failed after retries.
        """
        rows = await self._cache.get(COINS_CACHE_KEY)
        cached = self._decode(COINS_CACHE_KEY, rows, CoinSummary.from_dict)
        if cached is not None:
            logger.debug("coins_cache_hit", coins=len(cached))
            return cached

        coins = await self._coin_list.fetch_coins()
        await self._cache.set(
            COINS_CACHE_KEY,
            [c.to_dict() for c in coins],
            self._cache_settings.coins_ttl_seconds,
        )
        return coins

    async def invalidate_history(
        self,
        coin: str | None,
        from_: str | None,
        to: str | None,
        interval: str | None,
    ) -> str:
        """Drop the cached result for a request from both tiers. Returns the key."""
        key = history_key(parse_request(coin, from_, to, interval))
        await self._cache.delete(key)
        logger.info("history_cache_invalidated", key=key)
        return key
