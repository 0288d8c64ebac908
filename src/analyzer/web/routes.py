"""JSON API endpoints consumed by the dashboard: history, coin list, health."""

from __future__ import annotations

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse

from analyzer.history.service import HistoryService
from analyzer.logging import get_logger, request_context

log = get_logger(__name__)

router = APIRouter()


def _service(request: Request) -> HistoryService:
    return request.app.state.history_service


@router.get("/history")
async def get_history(
    request: Request,
    coin: str | None = None,
    from_: str | None = Query(default=None, alias="from"),
    to: str | None = None,
    interval: str | None = None,
) -> JSONResponse:
    """OHLCV buckets for one coin over [from, to) at the given interval.

    Query params:
        coin: Coin id, e.g. "bitcoin".
        from: ISO-8601 start, e.g. 2025-07-01T20:00:00Z.
        to: ISO-8601 end, after from.
        interval: Positive integer + m/h/d, e.g. 15m, 1h, 1d.

    Returns:
        200 with records ascending by timestamp; 400/502 with {error, details?}.
    """
    with request_context(coin=coin, interval=interval):
        records = await _service(request).get_history(coin, from_, to, interval)
        log.debug("history_served", records=len(records))
        return JSONResponse(content=[r.to_dict() for r in records])


@router.delete("/history")
async def invalidate_history(
    request: Request,
    coin: str | None = None,
    from_: str | None = Query(default=None, alias="from"),
    to: str | None = None,
    interval: str | None = None,
) -> JSONResponse:
    """Drop a cached history result so the next request refetches it."""
    with request_context(coin=coin, interval=interval):
        key = await _service(request).invalidate_history(coin, from_, to, interval)
        return JSONResponse(content={"invalidated": key})


@router.get("/coins")
async def get_coins(request: Request) -> JSONResponse:
    """Top coins by market cap."""
    with request_context():
        coins = await _service(request).get_coins()
        return JSONResponse(content=[c.to_dict() for c in coins])


@router.get("/health")
async def get_health(request: Request) -> JSONResponse:
    """Liveness check with the active source and cache tiers."""
    service = _service(request)
    return JSONResponse(
        content={
            "status": "ok",
            "source": service.source_name,
            "remote_cache": request.app.state.cache.remote_enabled,
        }
    )
