"""Rate limiter window store interfaces.

The middleware depends on this abstraction (not the concrete implementation)
so counters can live in any key-value backend.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class WindowRecord:
    """Request count for one fingerprint within one fixed window.

    Attributes:
        count: Requests attributed to the key in this window (never negative).
        window_end: UNIX epoch milliseconds at which the window closes.
    """

    count: int
    window_end: int

    def is_live(self, now_ms: int) -> bool:
        return self.window_end > now_ms

    @property
    def reset_at(self) -> int:
        """Window end as UNIX epoch seconds, rounded up."""
        return math.ceil(self.window_end / 1000)

    def retry_after(self, now_ms: int) -> int:
        """Whole seconds until the window closes (0 once it has)."""
        return max(0, math.ceil((self.window_end - now_ms) / 1000))


class AbstractWindowStore(ABC):
    """Interface for fixed-window counter stores."""

    @abstractmethod
    async def get(self, key: str) -> WindowRecord | None:
        """Return the live record for ``key``, or None if absent or expired."""
        raise NotImplementedError

    @abstractmethod
    async def increment(self, key: str) -> WindowRecord:
        """Count one request for ``key``, opening a new window if needed.

        Returns:
            The record as persisted after the increment.
        """
        raise NotImplementedError

    @abstractmethod
    async def decrement(self, key: str) -> None:
        """Uncount one request for ``key`` (floored at zero, live records only)."""
        raise NotImplementedError

    @abstractmethod
    async def reset_key(self, key: str) -> None:
        """Forget any record for ``key``."""
        raise NotImplementedError
