"""Two-tier cache: remote Redis first, in-process map as fallback.

Cache failures never fail the request path. The remote tier raises
CacheError; the Cache facade logs it and carries on as a miss (get) or
a no-op (set/delete). The local tier is always written and grows until
process restart; entries only leave it when read after expiry or deleted.
"""

import json
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import redis.asyncio as redis
from redis.exceptions import RedisError

from analyzer.config import CacheSettings
from analyzer.exceptions import CacheError
from analyzer.logging import get_logger

logger = get_logger(__name__)


def _now_ms() -> float:
    return time.time() * 1000


@dataclass
class CacheEntry:
    """A value held by the in-process tier."""

    key: str
    value: Any
    expires_at_ms: float


class RemoteCache:
    """Redis tier storing JSON-encoded values with server-side expiry.

    All failures (connection, timeout, undecodable payload) surface as
    CacheError.
    """

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def from_settings(cls, settings: CacheSettings) -> "RemoteCache | None":
        """Build the remote tier, or None when url/token are not configured."""
        token = settings.token.get_secret_value()
        if not settings.url or not token:
            logger.info("remote_cache_disabled", reason="REDIS_URL or REDIS_TOKEN not set")
            return None

        client = redis.from_url(
            settings.url,
            password=token,
            decode_responses=True,
            socket_timeout=settings.socket_timeout,
            socket_connect_timeout=settings.socket_timeout,
        )
        logger.info("remote_cache_enabled")
        return cls(client)

    async def get(self, key: str) -> Any | None:
        try:
            raw = await self._client.get(key)
        except (RedisError, OSError) as exc:
            raise CacheError("Remote cache get failed", details=str(exc)) from exc
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as exc:
            raise CacheError("Remote cache value is not valid JSON", details=str(exc)) from exc

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            await self._client.set(key, json.dumps(value), ex=ttl_seconds)
        except (RedisError, OSError, TypeError, ValueError) as exc:
            raise CacheError("Remote cache set failed", details=str(exc)) from exc

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except (RedisError, OSError) as exc:
            raise CacheError("Remote cache delete failed", details=str(exc)) from exc

    async def close(self) -> None:
        await self._client.aclose()


class Cache:
    """Remote-tier-first cache with an always-on in-process fallback.

    Args:
        remote: Remote tier, or None to run local-only.
        clock: Millisecond wall clock (injectable for tests).
    """

    def __init__(
        self,
        remote: RemoteCache | None = None,
        clock: Callable[[], float] = _now_ms,
    ) -> None:
        self._remote = remote
        self._clock = clock
        self._local: dict[str, CacheEntry] = {}

    @property
    def remote_enabled(self) -> bool:
        return self._remote is not None

    async def get(self, key: str) -> Any | None:
        """Return the cached value or None on miss, expiry or cache failure."""
        if self._remote is not None:
            try:
                value = await self._remote.get(key)
            except CacheError as exc:
                logger.warning("cache_get_failed", key=key, error=exc.message, details=exc.details)
            else:
                if value is not None:
                    return value

        entry = self._local.get(key)
        if entry is None:
            return None
        if self._clock() < entry.expires_at_ms:
            return entry.value

        del self._local[key]
        return None

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Write to the remote tier (best effort) and always to the local tier."""
        if self._remote is not None:
            try:
                await self._remote.set(key, value, ttl_seconds)
            except CacheError as exc:
                logger.warning("cache_set_failed", key=key, error=exc.message, details=exc.details)

        self._local[key] = CacheEntry(
            key=key,
            value=value,
            expires_at_ms=self._clock() + ttl_seconds * 1000,
        )

    async def delete(self, key: str) -> None:
        """Remove key from both tiers."""
        if self._remote is not None:
            try:
                await self._remote.delete(key)
            except CacheError as exc:
                logger.warning("cache_delete_failed", key=key, error=exc.message, details=exc.details)
        self._local.pop(key, None)

    async def close(self) -> None:
        if self._remote is not None:
            await self._remote.close()
