"""Binance-shaped source: pre-aggregated klines via ccxt async.

Each kline becomes one Sample at (open time, close, volume) that keeps the
kline's own open/high/low. When the requested bucket width equals the
native kline interval the Bucketizer passes klines through one-to-one;
wider buckets are re-aggregated from the true per-kline ranges.

Binance caps klines per call (1000), so fetching pages forward from the
window start, using the last returned open time + 1 as the next start,
until a page comes back empty or the window end is reached.
"""

from functools import partial

import ccxt.async_support as ccxt_async

from analyzer.config import BinanceSettings
from analyzer.exceptions import UpstreamError
from analyzer.logging import get_logger
from analyzer.models import RequestWindow, Sample
from analyzer.resilience.rate_limiter import RateLimiter
from analyzer.resilience.retry import RetryPolicy
from analyzer.sources.base import SourceAdapter
from analyzer.sources.symbols import to_exchange_symbol

logger = get_logger(__name__)

# Binance kline intervals that align to epoch multiples, ascending
NATIVE_TIMEFRAMES_MS: dict[str, int] = {
    "1m": 60_000,
    "3m": 180_000,
    "5m": 300_000,
    "15m": 900_000,
    "30m": 1_800_000,
    "1h": 3_600_000,
    "2h": 7_200_000,
    "4h": 14_400_000,
    "6h": 21_600_000,
    "8h": 28_800_000,
    "12h": 43_200_000,
    "1d": 86_400_000,
    "3d": 259_200_000,
}


def select_native_timeframe(bucket_width_ms: int) -> str:
    """Largest native kline interval that evenly divides the bucket width.

    Bucket widths are whole minutes, so "1m" always qualifies.
    """
    selected = "1m"
    for timeframe, width in NATIVE_TIMEFRAMES_MS.items():
        if bucket_width_ms % width == 0:
            selected = timeframe
    return selected


def kline_to_sample(kline: list) -> Sample:
    """[open_time, open, high, low, close, volume] -> Sample."""
    timestamp, open_, high, low, close, volume = kline[:6]
    return Sample(
        timestamp_ms=int(timestamp),
        price=float(close),
        volume=float(volume or 0),
        open=float(open_),
        high=float(high),
        low=float(low),
    )


def to_upstream_error(exc: Exception) -> UpstreamError:
    """Map a ccxt exception onto UpstreamError with an HTTP-like status.

    Transport failures get status None so the retry policy treats them as
    transient; exchange rejections become 4xx and fail fast.
    """
    if isinstance(exc, (ccxt_async.RateLimitExceeded, ccxt_async.DDoSProtection)):
        status: int | None = 429
    elif isinstance(exc, (ccxt_async.ExchangeNotAvailable, ccxt_async.OnMaintenance)):
        status = 503
    elif isinstance(exc, ccxt_async.NetworkError):  # RequestTimeout and friends
        status = None
    elif isinstance(exc, ccxt_async.BadSymbol):
        status = 404
    elif isinstance(exc, ccxt_async.ExchangeError):
        status = 400
    else:
        status = 502
    return UpstreamError(f"Binance klines error: {type(exc).__name__}", status=status, details=str(exc))


class BinanceKlineSource(SourceAdapter):
    """SourceAdapter over Binance spot klines.

    Args:
        settings: Quote currency, page size, timeout and optional base URL.
        retry_policy: Applied per page request.
        rate_limiter: Applied per page request attempt.
        exchange: Pre-built ccxt exchange (tests pass a mock).
    """

    name = "binance"

    def __init__(
        self,
        settings: BinanceSettings,
        retry_policy: RetryPolicy,
        rate_limiter: RateLimiter,
        exchange: ccxt_async.Exchange | None = None,
    ) -> None:
        super().__init__(retry_policy, rate_limiter)
        self._settings = settings

        if exchange is None:
            exchange = ccxt_async.binance(
                {
                    "enableRateLimit": True,
                    "timeout": int(settings.timeout_seconds * 1000),
                    "options": {"defaultType": "spot"},
                }
            )
            if settings.api_url:
                exchange.urls["api"]["public"] = settings.api_url
        self._exchange = exchange

    @property
    def exchange(self) -> ccxt_async.Exchange:
        """Access the underlying ccxt exchange instance."""
        return self._exchange

    async def fetch_samples(self, window: RequestWindow) -> list[Sample]:
        symbol = to_exchange_symbol(window.coin, self._settings.quote_currency)
        timeframe = select_native_timeframe(window.bucket_width_ms)

        klines = await self.fetch_klines(symbol, timeframe, window.from_ms, window.to_ms)
        return [kline_to_sample(k) for k in klines]

    async def fetch_klines(
        self,
        symbol: str,
        timeframe: str,
        start_ms: int,
        end_ms: int,
    ) -> list[list]:
        """Page forward through klines in [start_ms, end_ms]."""
        klines: list[list] = []
        start = start_ms
        pages = 0

        while start < end_ms:
            batch = await self._call(
                partial(self._fetch_page, symbol, timeframe, start, end_ms),
                name="binance_klines",
            )
            pages += 1

            if not batch:
                break

            klines.extend(batch)

            next_start = int(batch[-1][0]) + 1
            if next_start <= start:
                break  # No progress guard
            start = next_start

        logger.debug(
            "binance_klines_fetched",
            symbol=symbol,
            timeframe=timeframe,
            pages=pages,
            klines=len(klines),
        )
        return klines

    async def _fetch_page(
        self,
        symbol: str,
        timeframe: str,
        start_ms: int,
        end_ms: int,
    ) -> list[list]:
        try:
            return await self._exchange.fetch_ohlcv(
                symbol,
                timeframe=timeframe,
                since=start_ms,
                limit=self._settings.page_limit,
                params={"endTime": end_ms},
            )
        except ccxt_async.BaseError as exc:
            raise to_upstream_error(exc) from exc

    async def close(self) -> None:
        """Clean up ccxt async resources."""
        await self._exchange.close()
