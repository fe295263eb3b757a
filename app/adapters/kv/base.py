"""Key-value store interface.

Mirrors the minimal binding an edge KV namespace exposes. Expirations are
absolute UNIX epoch seconds.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class AbstractKeyValueStore(ABC):
    """Interface for string key-value stores with absolute expirations."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the stored value, or None when missing or expired.

        Raises:
            StoreUnavailableError: If the backend cannot be reached.
        """
        raise NotImplementedError

    @abstractmethod
    async def put(self, key: str, value: str, *, expiration: int) -> None:
        """Store ``value`` under ``key`` until ``expiration`` (epoch seconds).

        Raises:
            StoreUnavailableError: If the backend rejects or fails the write.
        """
        raise NotImplementedError

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key`` if present.

        Raises:
            StoreUnavailableError: If the backend cannot be reached.
        """
        raise NotImplementedError

    async def close(self) -> None:
        """Release backend resources (no-op by default)."""
