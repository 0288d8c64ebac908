"""Entry point for the crypto analyzer history service.

Wires all components together and serves the FastAPI app with uvicorn.
Shared state (rate limiters, retry policy, cache, source clients) is built
once here and injected; nothing is a module-level global.

Component wiring order (in build_components):
1. AppSettings (configuration, validated)
2. RetryPolicy (shared backoff policy)
3. RateLimiters (one per upstream provider)
4. Cache (Redis tier if configured + in-process tier)
5. CoinGeckoClient + CoinListProvider (coin list, always CoinGecko)
6. SourceAdapter (CoinGecko series or Binance klines, per HISTORY_SOURCE)
7. HistoryService (orchestrator)
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI

from analyzer.cache.store import Cache, RemoteCache
from analyzer.config import AppSettings, validate_settings
from analyzer.history.service import HistoryService
from analyzer.logging import get_logger, setup_logging
from analyzer.resilience.rate_limiter import RateLimiter
from analyzer.resilience.retry import RetryPolicy
from analyzer.sources.base import SourceAdapter
from analyzer.sources.binance import BinanceKlineSource
from analyzer.sources.coingecko import CoinGeckoClient, CoinGeckoSource, CoinListProvider
from analyzer.web.app import create_app


def build_components(settings: AppSettings) -> dict[str, Any]:
    """Build all service components from settings.

    Raises:
        ConfigError: If the settings are unusable.

    Returns:
        Dict mapping component names to instances.
    """
    logger = get_logger("analyzer.main")

    validate_settings(settings)

    retry_policy = RetryPolicy.from_settings(settings.retry)
    coingecko_limiter = RateLimiter.from_settings(settings.rate_limit)

    cache = Cache(RemoteCache.from_settings(settings.cache))

    coingecko_client = CoinGeckoClient(settings.coingecko)
    coin_list = CoinListProvider(coingecko_client, retry_policy, coingecko_limiter)

    source: SourceAdapter
    if settings.history.source == "binance":
        source = BinanceKlineSource(
            settings.binance,
            retry_policy,
            RateLimiter.from_settings(settings.rate_limit),
        )
    else:
        # Shares the client and limiter with the coin list: same upstream quota
        source = CoinGeckoSource(
            coingecko_client,
            retry_policy,
            coingecko_limiter,
            volume_join=settings.coingecko.volume_join,
        )

    history_service = HistoryService(
        source=source,
        cache=cache,
        cache_settings=settings.cache,
        coin_list=coin_list,
    )

    logger.info(
        "components_built",
        source=source.name,
        remote_cache=cache.remote_enabled,
        max_retries=retry_policy.max_retries,
        rate_limit=f"{settings.rate_limit.max_requests}/{settings.rate_limit.window_ms}ms",
    )

    return {
        "retry_policy": retry_policy,
        "cache": cache,
        "coingecko_client": coingecko_client,
        "coin_list": coin_list,
        "source": source,
        "history_service": history_service,
    }


async def close_components(components: dict[str, Any]) -> None:
    """Release network resources held by the components."""
    source = components["source"]
    if not isinstance(source, CoinGeckoSource):
        await source.close()
    await components["coingecko_client"].close()
    await components["cache"].close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Expose components on app.state; close clients on shutdown."""
    logger = get_logger("analyzer.main")
    components = app.state.components

    app.state.history_service = components["history_service"]
    app.state.cache = components["cache"]

    logger.info("lifespan_started", source=components["source"].name)

    yield

    await close_components(components)
    logger.info("crypto_analyzer_stopped")


async def run() -> None:
    """Run the history service under uvicorn."""
    settings = AppSettings()
    setup_logging(settings.log_level, settings.log_format)
    logger = get_logger("analyzer.main")

    components = build_components(settings)

    app = create_app(lifespan=lifespan)
    app.state.settings = settings
    app.state.components = components

    logger.info(
        "starting_server",
        host=settings.server.host,
        port=settings.server.port,
        source=settings.history.source,
    )

    config = uvicorn.Config(
        app,
        host=settings.server.host,
        port=settings.server.port,
        log_level="warning",  # Suppress uvicorn access logs
    )
    server = uvicorn.Server(config)
    await server.serve()


def main() -> None:
    """Synchronous entry point."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
