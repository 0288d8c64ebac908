"""structlog setup shared by the HTTP layer, the sources and the cache."""

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager

import structlog

# Third-party loggers that are chatty at INFO (httpx logs every request)
NOISY_LOGGERS = ("httpx", "httpcore", "ccxt", "asyncio")


def _renderer(log_format: str) -> structlog.types.Processor:
    if log_format.lower() == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def setup_logging(log_level: str = "INFO", log_format: str = "console") -> None:
    """Route structlog and stdlib logging through one renderer.

    Args:
        log_level: Root level name, e.g. "INFO" or "DEBUG".
        log_format: "json" for machine-readable output, anything else
            renders for the console.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            # unhandled_error passes exc_info
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(log_format),
            ],
        )
    )

    level = getattr(logging, log_level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.handlers[:] = [handler]
    root_logger.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


@contextmanager
def request_context(**fields: object) -> Iterator[str]:
    """Bind a fresh request id plus fields for every log line inside the block.

    Yields:
        The request id.
    """
    request_id = uuid.uuid4().hex[:8]
    with structlog.contextvars.bound_contextvars(request_id=request_id, **fields):
        yield request_id


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a bound structlog logger with the given name."""
    return structlog.get_logger(name)
