"""Configuration system using pydantic-settings with environment variable loading."""

from typing import Literal

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from analyzer.exceptions import ConfigError


class HistorySettings(BaseSettings):
    """Which upstream shape feeds the history pipeline."""

    model_config = SettingsConfigDict(env_prefix="HISTORY_")

    source: Literal["coingecko", "binance"] = "coingecko"


class CoinGeckoSettings(BaseSettings):
    """CoinGecko REST API settings (price/volume series and coin list)."""

    model_config = SettingsConfigDict(env_prefix="COINGECKO_")

    api_url: str = "https://api.coingecko.com/api/v3"
    api_key: SecretStr = SecretStr("")
    timeout_seconds: float = 10.0
    volume_join: Literal["exact", "nearest"] = "exact"
    vs_currency: str = "usd"
    coins_per_page: int = 250


class BinanceSettings(BaseSettings):
    """Binance kline source settings (via ccxt)."""

    model_config = SettingsConfigDict(env_prefix="BINANCE_")

    api_url: str = ""  # empty keeps the ccxt default endpoint
    quote_currency: str = "USDT"
    page_limit: int = 1000  # Binance klines max per call
    timeout_seconds: float = 10.0


class CacheSettings(BaseSettings):
    """Remote cache tier and TTL policy.

    An empty url or token disables the remote tier; the in-process tier
    is always active.
    """

    model_config = SettingsConfigDict(env_prefix="REDIS_")

    url: str = ""
    token: SecretStr = SecretStr("")
    socket_timeout: float = 2.0
    recent_ttl_seconds: int = 300  # window ends within recent_window_hours
    historical_ttl_seconds: int = 3600
    recent_window_hours: int = 24
    coins_ttl_seconds: int = 120


class RetrySettings(BaseSettings):
    """Exponential backoff parameters for upstream calls."""

    model_config = SettingsConfigDict(env_prefix="RETRY_")

    max_retries: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 30000
    backoff_factor: float = 2.0


class RateLimitSettings(BaseSettings):
    """Sliding-window throttle for the upstream provider."""

    model_config = SettingsConfigDict(env_prefix="RATE_LIMIT_")

    max_requests: int = 30  # CoinGecko free tier: 30/min
    window_ms: int = 60_000


class ServerSettings(BaseSettings):
    """HTTP server configuration."""

    model_config = SettingsConfigDict(env_prefix="SERVER_")

    host: str = "0.0.0.0"
    port: int = 8000


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "console"
    history: HistorySettings = HistorySettings()
    coingecko: CoinGeckoSettings = CoinGeckoSettings()
    binance: BinanceSettings = BinanceSettings()
    cache: CacheSettings = CacheSettings()
    retry: RetrySettings = RetrySettings()
    rate_limit: RateLimitSettings = RateLimitSettings()
    server: ServerSettings = ServerSettings()


def validate_settings(settings: AppSettings) -> None:
    """Reject configuration the service cannot run with.

    Missing Redis credentials are deliberately not checked here: they only
    disable the remote cache tier.

    Raises:
        ConfigError: Listing every problem found.
    """
    problems: list[str] = []

    # The coin list always comes from CoinGecko, whichever history source is active.
    if not settings.coingecko.api_url.strip():
        problems.append("COINGECKO_API_URL must not be empty")
    if settings.coingecko.coins_per_page <= 0:
        problems.append("COINGECKO_COINS_PER_PAGE must be positive")
    if settings.history.source == "binance" and settings.binance.page_limit <= 0:
        problems.append("BINANCE_PAGE_LIMIT must be positive")
    if settings.rate_limit.max_requests <= 0:
        problems.append("RATE_LIMIT_MAX_REQUESTS must be positive")
    if settings.rate_limit.window_ms <= 0:
        problems.append("RATE_LIMIT_WINDOW_MS must be positive")
    if settings.retry.max_retries < 0:
        problems.append("RETRY_MAX_RETRIES must not be negative")
    if settings.retry.backoff_factor < 1:
        problems.append("RETRY_BACKOFF_FACTOR must be at least 1")

    if problems:
        raise ConfigError("Invalid configuration", details="; ".join(problems))
