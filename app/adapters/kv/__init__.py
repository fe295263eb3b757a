"""Key-value store adapters backing the rate limiter.

The limiter only needs get/put-with-expiration/delete, so any store that
offers those three operations can be plugged in behind the abstract
interface.
"""

from app.adapters.kv.base import AbstractKeyValueStore
from app.adapters.kv.factory import create_kv_store
from app.adapters.kv.in_memory import InMemoryKeyValueStore
from app.adapters.kv.redis_store import RedisKeyValueStore

__all__ = [
    "AbstractKeyValueStore",
    "InMemoryKeyValueStore",
    "RedisKeyValueStore",
    "create_kv_store",
]
