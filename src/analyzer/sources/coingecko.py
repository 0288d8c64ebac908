"""CoinGecko-shaped source: parallel price and volume time series.

/coins/{id}/market_chart/range returns two independently timestamped
series, prices [[ms, price], ...] and total_volumes [[ms, volume], ...].
They are joined into Samples by timestamp:
- "exact" (default): a price point takes the volume at the identical
  timestamp, or 0 when there is none.
- "nearest": a price point takes the volume whose timestamp is closest.

The same HTTP client also serves the coin list (/coins/markets).
"""

import bisect
from typing import Any, Literal
from urllib.parse import quote

import httpx

from analyzer.config import CoinGeckoSettings
from analyzer.exceptions import UpstreamError
from analyzer.logging import get_logger
from analyzer.models import CoinSummary, RequestWindow, Sample
from analyzer.resilience.rate_limiter import RateLimiter
from analyzer.resilience.retry import RetryPolicy
from analyzer.sources.base import SourceAdapter, UpstreamCaller

logger = get_logger(__name__)

VolumeJoin = Literal["exact", "nearest"]


class CoinGeckoClient:
    """Thin async HTTP client for the CoinGecko REST API.

    Maps every failure to UpstreamError: status is the HTTP status for
    non-2xx responses and None for transport failures (timeout, reset, DNS).

    Args:
        settings: Base URL, API key and timeout.
        transport: Optional httpx transport (tests pass httpx.MockTransport).
    """

    def __init__(
        self,
        settings: CoinGeckoSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        headers = {"Accept": "application/json", "User-Agent": "CryptoAnalyzer/1.0"}
        api_key = settings.api_key.get_secret_value()
        if api_key:
            headers["x-cg-demo-api-key"] = api_key

        self._client = httpx.AsyncClient(
            base_url=settings.api_url,
            timeout=httpx.Timeout(settings.timeout_seconds),
            headers=headers,
            transport=transport,
        )

    async def get_json(self, path: str, params: dict[str, Any]) -> Any:
        """GET path and decode JSON, raising UpstreamError on any failure."""
        try:
            response = await self._client.get(path, params=params)
        except httpx.TimeoutException as exc:
            raise UpstreamError("CoinGecko request timed out", details=str(exc)) from exc
        except httpx.TransportError as exc:
            raise UpstreamError("CoinGecko connection failed", details=str(exc)) from exc

        if response.is_error:
            raise UpstreamError(
                f"CoinGecko API error: {response.status_code} {response.reason_phrase}",
                status=response.status_code,
                details=response.text[:200] or None,
            )

        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError(
                "CoinGecko returned invalid JSON",
                status=502,
                details=str(exc),
            ) from exc

    async def fetch_market_chart_range(self, coin: str, from_s: int, to_s: int) -> dict:
        """Raw price/volume series for coin between two epoch-second bounds."""
        payload = await self.get_json(
            f"/coins/{quote(coin, safe='')}/market_chart/range",
            params={
                "vs_currency": self._settings.vs_currency,
                "from": from_s,
                "to": to_s,
            },
        )
        if not isinstance(payload, dict):
            raise UpstreamError(
                "Unexpected CoinGecko market chart payload",
                status=502,
                details=type(payload).__name__,
            )
        return payload

    async def fetch_markets(self) -> list[dict]:
        """Top coins by market cap, one page."""
        payload = await self.get_json(
            "/coins/markets",
            params={
                "vs_currency": self._settings.vs_currency,
                "order": "market_cap_desc",
                "per_page": self._settings.coins_per_page,
                "page": 1,
                "sparkline": "false",
            },
        )
        if not isinstance(payload, list):
            raise UpstreamError(
                "Unexpected CoinGecko markets payload",
                status=502,
                details=type(payload).__name__,
            )
        return payload

    async def close(self) -> None:
        await self._client.aclose()


# ──────────────────────────────────────────────
# Series join
# ──────────────────────────────────────────────


def join_exact(prices: list[list], volumes: list[list]) -> list[Sample]:
    """Attach the volume at the identical timestamp, else 0."""
    volume_by_ts = {int(ts): float(vol) for ts, vol in volumes}
    return [
        Sample(timestamp_ms=int(ts), price=float(price), volume=volume_by_ts.get(int(ts), 0.0))
        for ts, price in prices
    ]


def join_nearest(prices: list[list], volumes: list[list]) -> list[Sample]:
    """Attach the volume whose timestamp is closest (earlier wins ties)."""
    if not volumes:
        return join_exact(prices, volumes)

    ordered = sorted((int(ts), float(vol)) for ts, vol in volumes)
    stamps = [ts for ts, _ in ordered]

    samples = []
    for ts, price in prices:
        ts = int(ts)
        idx = bisect.bisect_left(stamps, ts)
        if idx == 0:
            nearest = 0
        elif idx == len(stamps):
            nearest = idx - 1
        elif stamps[idx] - ts < ts - stamps[idx - 1]:
            nearest = idx
        else:
            nearest = idx - 1
        samples.append(Sample(timestamp_ms=ts, price=float(price), volume=ordered[nearest][1]))
    return samples


def normalize_market_chart(payload: dict, join: VolumeJoin = "exact") -> list[Sample]:
    """Turn a market_chart payload into Samples, skipping null prices."""
    prices = [p for p in payload.get("prices") or [] if len(p) >= 2 and p[1] is not None]
    volumes = [v for v in payload.get("total_volumes") or [] if len(v) >= 2 and v[1] is not None]

    if join == "nearest":
        return join_nearest(prices, volumes)
    return join_exact(prices, volumes)


# ──────────────────────────────────────────────
# Adapters
# ──────────────────────────────────────────────


class CoinGeckoSource(SourceAdapter):
    """SourceAdapter over CoinGecko's market_chart/range endpoint."""

    name = "coingecko"

    def __init__(
        self,
        client: CoinGeckoClient,
        retry_policy: RetryPolicy,
        rate_limiter: RateLimiter,
        volume_join: VolumeJoin = "exact",
    ) -> None:
        super().__init__(retry_policy, rate_limiter)
        self._client = client
        self._volume_join = volume_join

    async def fetch_samples(self, window: RequestWindow) -> list[Sample]:
        from_s = window.from_ms // 1000
        to_s = window.to_ms // 1000

        payload = await self._call(
            lambda: self._client.fetch_market_chart_range(window.coin, from_s, to_s),
            name="coingecko_market_chart",
        )
        samples = normalize_market_chart(payload, self._volume_join)
        logger.debug(
            "coingecko_samples_fetched",
            coin=window.coin,
            samples=len(samples),
            volume_join=self._volume_join,
        )
        return samples

    async def close(self) -> None:
        await self._client.close()


class CoinListProvider(UpstreamCaller):
    """Fetches the coin list through the shared CoinGecko client."""

    def __init__(
        self,
        client: CoinGeckoClient,
        retry_policy: RetryPolicy,
        rate_limiter: RateLimiter,
    ) -> None:
        super().__init__(retry_policy, rate_limiter)
        self._client = client

    async def fetch_coins(self) -> list[CoinSummary]:
        rows = await self._call(self._client.fetch_markets, name="coingecko_markets")
        coins = [CoinSummary.from_dict(row) for row in rows if isinstance(row, dict) and row.get("id")]
        logger.debug("coin_list_fetched", coins=len(coins))
        return coins
