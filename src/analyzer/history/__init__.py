"""History pipeline: request validation, bucket aggregation, orchestration."""

from analyzer.history.bucketizer import bucket_key, bucketize, pct_change
from analyzer.history.request import parse_interval, parse_request
from analyzer.history.service import HistoryService

__all__ = [
    "HistoryService",
    "bucket_key",
    "bucketize",
    "parse_interval",
    "parse_request",
    "pct_change",
]
