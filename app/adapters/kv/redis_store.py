"""Redis-backed key-value store.

Shares rate limit counters across workers and restarts. Values are written
with ``SET key value EXAT <epoch seconds>`` so Redis drops them on its own.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

import redis.asyncio as redis

from app.adapters.kv.base import AbstractKeyValueStore
from app.core.errors import StoreUnavailableError

logger = logging.getLogger(__name__)


class RedisKeyValueStore(AbstractKeyValueStore):
    """Key-value store over ``redis.asyncio``.

    Every backend failure is re-raised as StoreUnavailableError so callers
    only have to handle one error type.
    """

    def __init__(
        self,
        client: redis.Redis,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self._clock = clock

    @classmethod
    def from_url(cls, url: str, *, socket_timeout: float = 2.0) -> "RedisKeyValueStore":
        """Build a store from a redis:// URL."""
        client = redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client)

    def _unavailable(self, operation: str, exc: Exception) -> StoreUnavailableError:
        logger.warning(
            "kv.redis_error",
            extra={"operation": operation, "error_type": type(exc).__name__, "error_msg": str(exc)},
        )
        return StoreUnavailableError(
            code="store_unavailable",
            message=f"Redis {operation} failed: {exc}",
            details={"backend": "redis", "operation": operation},
        )

    async def get(self, key: str) -> str | None:
        try:
            value = await self._client.get(key)
        except (redis.RedisError, OSError) as exc:
            raise self._unavailable("get", exc) from exc
        if isinstance(value, bytes):
            return value.decode()
        return value

    async def put(self, key: str, value: str, *, expiration: int) -> None:
        if expiration <= self._clock():
            raise StoreUnavailableError(
                code="store_invalid_expiration",
                message="Expiration must be in the future",
                details={"backend": "redis", "operation": "put"},
            )
        try:
            await self._client.set(key, value, exat=int(expiration))
        except (redis.RedisError, OSError) as exc:
            raise self._unavailable("put", exc) from exc

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except (redis.RedisError, OSError) as exc:
            raise self._unavailable("delete", exc) from exc

    async def close(self) -> None:
        await self._client.aclose()
