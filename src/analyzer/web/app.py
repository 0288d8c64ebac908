"""FastAPI application factory and the error-to-HTTP mapping."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from analyzer.exceptions import AnalyzerError, ErrorKind
from analyzer.logging import get_logger
from analyzer.web import routes

log = get_logger(__name__)

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.UPSTREAM: 502,
    # Cache errors are absorbed by the Cache facade; reaching here is a bug
    ErrorKind.CACHE: 500,
    ErrorKind.CONFIG: 500,
}

_unmapped = set(ErrorKind) - set(STATUS_BY_KIND)
if _unmapped:
    raise RuntimeError(f"ErrorKind without HTTP status: {sorted(k.value for k in _unmapped)}")


async def _analyzer_error_handler(request: Request, exc: AnalyzerError) -> JSONResponse:
    status_code = STATUS_BY_KIND[exc.kind]
    if status_code >= 500:
        log.error(
            "request_failed",
            path=request.url.path,
            kind=exc.kind.value,
            status_code=status_code,
            error=exc.message,
            upstream_status=getattr(exc, "status", None),
            details=exc.details,
        )
    else:
        log.info(
            "request_rejected",
            path=request.url.path,
            kind=exc.kind.value,
            error=exc.message,
            details=exc.details,
        )
    return JSONResponse(content=exc.to_dict(), status_code=status_code)


async def _unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    log.error("unhandled_error", path=request.url.path, exc_info=exc)
    return JSONResponse(
        content={"error": "Internal server error", "details": str(exc)},
        status_code=500,
    )


def create_app(lifespan: Any = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        lifespan: Optional async context manager for application lifespan events.
                  Used by main.py to inject startup/shutdown logic.

    Returns:
        Configured FastAPI application. Route handlers expect
        app.state.history_service and app.state.cache to be set.
    """
    app = FastAPI(
        title="Crypto Analyzer History API",
        lifespan=lifespan,
    )

    app.add_exception_handler(AnalyzerError, _analyzer_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unexpected_error_handler)

    app.include_router(routes.router)

    return app
