"""In-memory key-value store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Nothing survives a restart.
- Entries are expired lazily when read. Writes also sweep every expired
  entry, at most once per ``sweep_interval`` seconds, so one-off keys do not
  accumulate for the life of the process.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from app.adapters.kv.base import AbstractKeyValueStore

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    value: str
    expiration: int


class InMemoryKeyValueStore(AbstractKeyValueStore):
    """Dictionary-backed store honoring absolute expirations.

    The coroutines never await, so each operation runs to completion on the
    event loop without interleaving.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.time,
        sweep_interval: float = 60.0,
    ) -> None:
        """Initialize the store.

        Args:
            clock: Time source function returning UNIX time in seconds.
            sweep_interval: Minimum seconds between expiry sweeps triggered
                by writes (0 sweeps on every write).

        Raises:
            ValueError: If sweep_interval is negative.
        """
        if sweep_interval < 0:
            raise ValueError("sweep_interval must be >= 0")

        self._clock = clock
        self._sweep_interval = sweep_interval
        self._next_sweep = clock() + sweep_interval
        self._entries: dict[str, _Entry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expiration <= self._clock():
            self._entries.pop(key, None)
            return None
        return entry.value

    async def put(self, key: str, value: str, *, expiration: int) -> None:
        if self._clock() >= self._next_sweep:
            self.purge_expired()
        self._entries[key] = _Entry(value=value, expiration=int(expiration))

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def purge_expired(self) -> int:
        """Drop every expired entry and return how many were removed."""
        now = self._clock()
        self._next_sweep = now + self._sweep_interval
        expired = [key for key, entry in self._entries.items() if entry.expiration <= now]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("kv.purged", extra={"removed": len(expired), "size": len(self._entries)})
        return len(expired)
