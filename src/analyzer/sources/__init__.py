"""Upstream data sources -- CoinGecko price series and Binance klines."""

from analyzer.sources.base import SourceAdapter, UpstreamCaller
from analyzer.sources.binance import BinanceKlineSource
from analyzer.sources.coingecko import CoinGeckoClient, CoinGeckoSource, CoinListProvider
from analyzer.sources.symbols import to_exchange_symbol

__all__ = [
    "BinanceKlineSource",
    "CoinGeckoClient",
    "CoinGeckoSource",
    "CoinListProvider",
    "SourceAdapter",
    "UpstreamCaller",
    "to_exchange_symbol",
]
