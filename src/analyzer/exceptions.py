"""Custom exceptions for the crypto analyzer service.

Every error the service raises on purpose belongs to one ErrorKind.
The HTTP layer maps kinds to status codes, so adding a kind means
adding a mapping there as well.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Closed set of error categories surfaced by the service."""

    VALIDATION = "validation"
    UPSTREAM = "upstream"
    CACHE = "cache"
    CONFIG = "config"


class AnalyzerError(Exception):
    """Base exception for all analyzer errors."""

    kind: ErrorKind

    def __init__(self, message: str, details: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        """JSON body for the HTTP boundary: {error, details?}."""
        body: dict = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(AnalyzerError):
    """Raised when request parameters are missing or malformed. Never retried."""

    kind = ErrorKind.VALIDATION


class UpstreamError(AnalyzerError):
    """Raised when a data source returns non-2xx or the transport fails.

    status is the upstream HTTP status, or None for transport failures
    (timeouts, connection resets, DNS).
    """

    kind = ErrorKind.UPSTREAM

    def __init__(
        self,
        message: str,
        status: int | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.status = status


class CacheError(AnalyzerError):
    """Raised by a cache tier. Always absorbed by the Cache facade."""

    kind = ErrorKind.CACHE


class ConfigError(AnalyzerError):
    """Raised when required configuration is absent or unusable."""

    kind = ErrorKind.CONFIG
