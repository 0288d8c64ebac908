"""Mapping from CoinGecko coin ids to exchange (ccxt unified) symbols."""

from analyzer.exceptions import ValidationError

# Static mapping from CoinGecko coin ids to exchange base assets
COINGECKO_TO_BASE: dict[str, str] = {
    "bitcoin": "BTC",
    "ethereum": "ETH",
    "solana": "SOL",
    "ripple": "XRP",
    "binancecoin": "BNB",
    "dogecoin": "DOGE",
    "cardano": "ADA",
    "tron": "TRX",
    "avalanche-2": "AVAX",
    "polkadot": "DOT",
    "chainlink": "LINK",
    "matic-network": "MATIC",
    "shiba-inu": "SHIB",
    "litecoin": "LTC",
    "bitcoin-cash": "BCH",
    "uniswap": "UNI",
    "cosmos": "ATOM",
    "stellar": "XLM",
    "filecoin": "FIL",
    "aptos": "APT",
    "arbitrum": "ARB",
    "optimism": "OP",
    "sui": "SUI",
    "near": "NEAR",
    "pepe": "PEPE",
    "dogwifcoin": "WIF",
}


def to_exchange_symbol(coin: str, quote: str = "USDT") -> str:
    """Resolve a coin id (or an already-qualified BASE/QUOTE) to a ccxt symbol.

    Raises:
        ValidationError: If the coin has no known exchange listing.
    """
    if "/" in coin:
        return coin.upper()

    base = COINGECKO_TO_BASE.get(coin.lower())
    if base is None:
        raise ValidationError(
            f"Unsupported coin for kline source: {coin}",
            details=f"known coins: {', '.join(sorted(COINGECKO_TO_BASE))}",
        )
    return f"{base}/{quote.upper()}"
