"""In-memory counter store with per-key TTL (MVP).

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state, so increments are atomic
  across concurrent requests in the same process.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from app.adapters.counter_store.base import AbstractCounterStore

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    value: int
    expires_at: float | None


class InMemoryCounterStore(AbstractCounterStore):
    """Counter store backed by a dict, with lazy expiry on access.

    Writes also sweep out every expired key, at most once per
    ``purge_interval_seconds``, so keys of tenants that stopped calling do
    not accumulate.

    Important:
        This store is per-process only. If the API runs with multiple workers
        each worker enforces its own independent windows; use the Redis
        store for shared limits.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.time,
        purge_interval_seconds: float = 60.0,
    ) -> None:
        """Initialize the store.

        Args:
            clock: Time source function returning UNIX time in seconds.
            purge_interval_seconds: Minimum time between two expiry sweeps.
        """
        self._clock = clock
        self._purge_interval_seconds = purge_interval_seconds
        self._last_purge = clock()
        self._lock = threading.RLock()
        self._entries: dict[str, _Entry] = {}

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"InMemoryCounterStore(size={len(self._entries)})"

    def _expires_at(self, ttl_seconds: int | None) -> float | None:
        if ttl_seconds is None:
            return None
        return self._clock() + ttl_seconds

    def _maybe_purge_locked(self) -> None:
        if self._clock() - self._last_purge >= self._purge_interval_seconds:
            self.purge_expired()

    def _live_entry_locked(self, key: str) -> _Entry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and entry.expires_at <= self._clock():
            self._entries.pop(key, None)
            return None
        return entry

    async def get(self, key: str) -> int | None:
        with self._lock:
            entry = self._live_entry_locked(key)
            return entry.value if entry else None

    async def set(self, key: str, value: int, ttl_seconds: int | None = None) -> None:
        with self._lock:
            self._maybe_purge_locked()
            self._entries[key] = _Entry(value=int(value), expires_at=self._expires_at(ttl_seconds))

    async def incr(self, key: str, ttl_seconds: int | None = None) -> int:
        with self._lock:
            self._maybe_purge_locked()
            entry = self._live_entry_locked(key)
            if entry is None:
                entry = _Entry(value=0, expires_at=None)
                self._entries[key] = entry
            entry.value += 1
            if ttl_seconds is not None:
                entry.expires_at = self._expires_at(ttl_seconds)
            return entry.value

    async def ttl(self, key: str) -> int:
        with self._lock:
            entry = self._live_entry_locked(key)
            if entry is None:
                return -2
            if entry.expires_at is None:
                return -1
            return max(0, int(math.ceil(entry.expires_at - self._clock())))

    def purge_expired(self) -> int:
        """Drop every expired entry and return how many were removed."""

        with self._lock:
            now = self._clock()
            self._last_purge = now
            expired = [
                key
                for key, entry in self._entries.items()
                if entry.expires_at is not None and entry.expires_at <= now
            ]
            for key in expired:
                self._entries.pop(key, None)

        if expired:
            logger.debug("counter_store.purged", extra={"purged": len(expired)})
        return len(expired)
