"""Shared data models for the crypto analyzer service.

Prices and volumes are floats: they arrive as JSON numbers from the
upstream providers and leave as JSON numbers to the dashboard.
"""

from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum


class IntervalUnit(str, Enum):
    """Unit suffix of an interval string such as "15m" or "4h"."""

    MINUTE = "m"
    HOUR = "h"
    DAY = "d"

    @property
    def ms(self) -> int:
        return _UNIT_MS[self]


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_UNIT_MS: dict[IntervalUnit, int] = {
    IntervalUnit.MINUTE: 60_000,
    IntervalUnit.HOUR: 3_600_000,
    IntervalUnit.DAY: 86_400_000,
}


@dataclass(frozen=True)
class Sample:
    """A single normalized upstream observation.

    price is the representative (close) price. Kline-derived samples also
    carry the kline's own open/high/low so wider buckets keep the true
    intra-kline range; point samples leave them as None.
    """

    timestamp_ms: int
    price: float
    volume: float = 0.0
    open: float | None = None
    high: float | None = None
    low: float | None = None


@dataclass
class HistoryRecord:
    """One OHLCV bucket as returned to the dashboard and stored in cache."""

    timestamp: str
    open: float
    high: float
    low: float
    close: float
    volume: float
    pct_change: float | None = None

    def to_dict(self) -> dict:
        """Serialize with the camelCase field names the dashboard expects."""
        data = asdict(self)
        data["pctChange"] = data.pop("pct_change")
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "HistoryRecord":
        return cls(
            timestamp=data["timestamp"],
            open=data["open"],
            high=data["high"],
            low=data["low"],
            close=data["close"],
            volume=data["volume"],
            pct_change=data.get("pctChange"),
        )


@dataclass(frozen=True)
class RequestWindow:
    """A validated history request.

    Invariants (enforced by analyzer.history.request.parse_request):
    from_ms < to_ms and interval_value > 0.
    """

    coin: str
    from_ms: int
    to_ms: int
    interval_value: int
    interval_unit: IntervalUnit

    @property
    def bucket_width_ms(self) -> int:
        return self.interval_value * self.interval_unit.ms

    @property
    def interval(self) -> str:
        """Canonical interval string, e.g. "4h"."""
        return f"{self.interval_value}{self.interval_unit.value}"


@dataclass
class CoinSummary:
    """A row of the coin list (CoinGecko /coins/markets)."""

    id: str
    symbol: str
    name: str
    image: str = ""
    current_price: float | None = None
    market_cap: float | None = None
    market_cap_rank: int | None = None
    total_volume: float | None = None
    high_24h: float | None = None
    low_24h: float | None = None
    price_change_24h: float | None = None
    price_change_percentage_24h: float | None = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "CoinSummary":
        """Build from an upstream or cached row, ignoring unknown keys."""
        return cls(
            id=data["id"],
            symbol=data.get("symbol", ""),
            name=data.get("name", ""),
            image=data.get("image") or "",
            current_price=data.get("current_price"),
            market_cap=data.get("market_cap"),
            market_cap_rank=data.get("market_cap_rank"),
            total_volume=data.get("total_volume"),
            high_24h=data.get("high_24h"),
            low_24h=data.get("low_24h"),
            price_change_24h=data.get("price_change_24h"),
            price_change_percentage_24h=data.get("price_change_percentage_24h"),
        )


def ms_to_iso(timestamp_ms: int) -> str:
    """Render epoch milliseconds as UTC ISO-8601 with millisecond precision.

    Example: 1704067200000 -> "2024-01-01T00:00:00.000Z"
    """
    dt = _EPOCH + timedelta(milliseconds=timestamp_ms)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"
