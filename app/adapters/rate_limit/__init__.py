"""Rate limiting adapters.

Window counters sit behind a small abstraction so the middleware works the
same whether the counts live in process memory or in Redis.
"""

from app.adapters.rate_limit.base import AbstractWindowStore, WindowRecord
from app.adapters.rate_limit.kv_window_store import SAFETY_MARGIN_SECONDS, KeyValueWindowStore

__all__ = [
    "AbstractWindowStore",
    "KeyValueWindowStore",
    "SAFETY_MARGIN_SECONDS",
    "WindowRecord",
]
