"""Aggregation of normalized samples into fixed-width OHLCV buckets.

Pure functions, no I/O. The output is independent of input sample order:
samples are sorted by (timestamp, price, volume) before grouping, so even
samples sharing a timestamp land in a fixed order.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field

from analyzer.models import HistoryRecord, Sample, ms_to_iso


@dataclass
class Bucket:
    """Accumulator for one bucket during a single aggregation pass."""

    bucket_start_ms: int
    opens: list[float] = field(default_factory=list)
    highs: list[float] = field(default_factory=list)
    lows: list[float] = field(default_factory=list)
    prices: list[float] = field(default_factory=list)
    volumes: list[float] = field(default_factory=list)

    def add(self, sample: Sample) -> None:
        self.prices.append(sample.price)
        self.volumes.append(sample.volume)
        self.opens.append(sample.open if sample.open is not None else sample.price)
        self.highs.append(sample.high if sample.high is not None else sample.price)
        self.lows.append(sample.low if sample.low is not None else sample.price)


def bucket_key(timestamp_ms: int, bucket_width_ms: int) -> int:
    """Start of the bucket containing timestamp_ms (floor to width)."""
    return (timestamp_ms // bucket_width_ms) * bucket_width_ms


def pct_change(close: float, previous_close: float | None) -> float | None:
    """Percent change of close vs previous_close.

    None for the first record and when previous_close is exactly 0.
    """
    if previous_close is None or previous_close == 0:
        return None
    return (close - previous_close) / previous_close * 100


def bucketize(samples: Iterable[Sample], bucket_width_ms: int) -> list[HistoryRecord]:
    """Group samples into buckets and reduce each to a HistoryRecord.

    Only occupied buckets are emitted; gaps produce no record. pctChange is
    relative to the preceding record in the output, not the previous sample.

    Args:
        samples: Samples in any order.
        bucket_width_ms: Bucket width, must be positive.

    Returns:
        Records ascending by bucket start, one per distinct bucket.
    """
    if bucket_width_ms <= 0:
        raise ValueError(f"bucket_width_ms must be positive, got {bucket_width_ms}")

    ordered = sorted(samples, key=lambda s: (s.timestamp_ms, s.price, s.volume))

    buckets: dict[int, Bucket] = {}
    for sample in ordered:
        key = bucket_key(sample.timestamp_ms, bucket_width_ms)
        bucket = buckets.get(key)
        if bucket is None:
            bucket = buckets[key] = Bucket(bucket_start_ms=key)
        bucket.add(sample)

    records: list[HistoryRecord] = []
    previous_close: float | None = None
    for key in sorted(buckets):
        bucket = buckets[key]
        close = bucket.prices[-1]
        records.append(
            HistoryRecord(
                timestamp=ms_to_iso(key),
                open=bucket.opens[0],
                high=max(bucket.highs),
                low=min(bucket.lows),
                close=close,
                volume=sum(bucket.volumes),
                pct_change=pct_change(close, previous_close),
            )
        )
        previous_close = close

    return records
