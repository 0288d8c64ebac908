"""Crypto analyzer -- historical OHLCV aggregation service for the dashboard."""

__version__ = "0.1.0"
