"""Factory pattern for creating key-value store instances."""

from __future__ import annotations

import logging

from app.adapters.kv.base import AbstractKeyValueStore
from app.adapters.kv.in_memory import InMemoryKeyValueStore
from app.adapters.kv.redis_store import RedisKeyValueStore
from app.core.config import StoreSettings, settings
from app.core.errors import ValidationAppError

logger = logging.getLogger(__name__)

# Process-wide so counters persist across requests and app rebuilds.
_memory_store: InMemoryKeyValueStore | None = None


def get_memory_store() -> InMemoryKeyValueStore:
    """Return the process-wide in-memory store, creating it on first use."""

    global _memory_store
    if _memory_store is None:
        _memory_store = InMemoryKeyValueStore()
    return _memory_store


def create_kv_store(store_settings: StoreSettings | None = None) -> AbstractKeyValueStore | None:
    """Instantiate the configured key-value store.

    Args:
        store_settings: Optional settings; defaults to ``settings.store``.

    Returns:
        The store, or None when the backend is ``none`` (binding absent).

    Raises:
        ValidationAppError: If the backend is unknown or misconfigured.
    """
    cfg = store_settings or settings.store
    backend = cfg.backend.lower()

    if backend == "none":
        logger.info("kv.binding_absent", extra={"backend": backend})
        return None

    if backend == "memory":
        return get_memory_store()

    if backend == "redis":
        if not cfg.redis_url:
            raise ValidationAppError(
                code="store_missing_redis_url",
                message="Redis store backend requires STORE_REDIS_URL",
            )
        return RedisKeyValueStore.from_url(cfg.redis_url, socket_timeout=cfg.socket_timeout)

    raise ValidationAppError(
        code="store_unknown_backend",
        message=f"Unknown store backend: '{backend}'. Supported backends: memory, redis, none",
    )
