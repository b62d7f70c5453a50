"""Counter store interface.

The quota enforcer depends on this abstraction (not a concrete cache) so the
backing store can be swapped between in-memory and Redis.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class AbstractCounterStore(ABC):
    """Key/value store of integer counters with optional per-key TTL.

    Implementations raise ``CacheAppError`` when the backend is unavailable.
    """

    @abstractmethod
    async def get(self, key: str) -> int | None:
        """Return the current counter value, or None if missing/expired."""
        raise NotImplementedError

    @abstractmethod
    async def set(self, key: str, value: int, ttl_seconds: int | None = None) -> None:
        """Store a counter value, replacing any previous value and TTL."""
        raise NotImplementedError

    @abstractmethod
    async def incr(self, key: str, ttl_seconds: int | None = None) -> int:
        """Atomically increment a counter and return the new value.

        Args:
            key: Counter key; a missing key starts from 0.
            ttl_seconds: When given, (re)sets the key's expiry after incrementing.

        Returns:
            The counter value after the increment.
        """
        raise NotImplementedError

    @abstractmethod
    async def ttl(self, key: str) -> int:
        """Remaining TTL in seconds; -2 when missing, -1 when it never expires."""
        raise NotImplementedError
