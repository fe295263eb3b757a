"""Fixed-window counters persisted in a key-value store.

Notes:
- The logical window (``window_end``) and the physical store expiration are
  decoupled: writes always request an expiration at least
  SAFETY_MARGIN_SECONDS in the future so a record in its last seconds can
  still be rewritten by stores that refuse near-past expirations.
- ``increment`` is a plain read-modify-write. Concurrent requests for the same
  key can lose updates; exact-at-limit behavior under bursts is best-effort.
"""

from __future__ import annotations

import json
import logging
import math
import time
from typing import Callable

from app.adapters.kv.base import AbstractKeyValueStore
from app.adapters.rate_limit.base import AbstractWindowStore, WindowRecord
from app.core.logging import hash_identifier

logger = logging.getLogger(__name__)

SAFETY_MARGIN_SECONDS = 60


class KeyValueWindowStore(AbstractWindowStore):
    """Window store on top of any AbstractKeyValueStore.

    Records are serialized as ``{"count": int, "windowEnd": epoch_ms}`` under
    ``prefix + key``.
    """

    def __init__(
        self,
        kv: AbstractKeyValueStore,
        *,
        window_ms: int,
        prefix: str = "",
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the window store.

        Args:
            kv: Backing key-value store.
            window_ms: Window length in milliseconds.
            prefix: Namespace prepended to every key.
            clock: Time source function returning UNIX time in seconds.

        Raises:
            ValueError: If window_ms is not positive.
        """
        if window_ms < 1:
            raise ValueError("window_ms must be >= 1")

        self._kv = kv
        self._window_ms = window_ms
        self._prefix = prefix
        self._clock = clock

    @property
    def window_ms(self) -> int:
        return self._window_ms

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _storage_key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def _expiration_for(self, record: WindowRecord) -> int:
        """Store expiration (epoch seconds), never sooner than the safety margin."""
        floor = self._clock() + SAFETY_MARGIN_SECONDS
        return math.ceil(max(record.window_end / 1000, floor))

    async def _read(self, key: str) -> WindowRecord | None:
        raw = await self._kv.get(self._storage_key(key))
        if raw is None:
            return None
        try:
            data = json.loads(raw)
            record = WindowRecord(count=int(data["count"]), window_end=int(data["windowEnd"]))
        except (ValueError, KeyError, TypeError):
            logger.warning(
                "rate_limit.record_unreadable",
                extra={"key_hash": hash_identifier(key)},
            )
            return None
        if not record.is_live(self._now_ms()):
            return None
        return record

    async def _write(self, key: str, record: WindowRecord) -> None:
        payload = json.dumps({"count": record.count, "windowEnd": record.window_end})
        await self._kv.put(
            self._storage_key(key),
            payload,
            expiration=self._expiration_for(record),
        )

    async def get(self, key: str) -> WindowRecord | None:
        return await self._read(key)

    async def increment(self, key: str) -> WindowRecord:
        current = await self._read(key)
        if current is None:
            record = WindowRecord(count=1, window_end=self._now_ms() + self._window_ms)
        else:
            record = WindowRecord(count=current.count + 1, window_end=current.window_end)
        await self._write(key, record)
        return record

    async def decrement(self, key: str) -> None:
        current = await self._read(key)
        if current is None:
            return
        await self._write(key, WindowRecord(count=max(0, current.count - 1), window_end=current.window_end))

    async def reset_key(self, key: str) -> None:
        await self._kv.delete(self._storage_key(key))
