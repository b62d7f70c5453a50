"""Redis-backed counter store.

Shares rate windows across workers and hosts. Redis is only an optimization
for limiting, never the source of truth for usage, so callers are expected
to tolerate ``CacheAppError``.
"""

from __future__ import annotations

import logging

from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.adapters.counter_store.base import AbstractCounterStore
from app.core.errors import CacheAppError

logger = logging.getLogger(__name__)


class RedisCounterStore(AbstractCounterStore):
    """Counter store using INCR/EXPIRE on an async Redis client.

    Attributes:
        redis: Async Redis client.
        key_prefix: Prefix for all keys (for namespacing).
    """

    def __init__(self, redis: Redis, key_prefix: str = "quota_guard") -> None:
        self.redis = redis
        self.key_prefix = key_prefix

    @classmethod
    def from_url(cls, url: str, key_prefix: str = "quota_guard") -> "RedisCounterStore":
        return cls(Redis.from_url(url, decode_responses=True), key_prefix=key_prefix)

    def _make_key(self, key: str) -> str:
        return f"{self.key_prefix}:{key}"

    def _fail(self, operation: str, key: str, exc: RedisError) -> CacheAppError:
        logger.error(
            "counter_store.redis_error",
            extra={"operation": operation, "key": key, "error": str(exc)},
        )
        return CacheAppError(
            code="counter_store_unavailable",
            message=f"Redis {operation} failed: {exc}",
            details={"context": {"key": key, "operation": operation}},
        )

    async def get(self, key: str) -> int | None:
        try:
            value = await self.redis.get(self._make_key(key))
        except RedisError as exc:
            raise self._fail("GET", key, exc) from exc
        return int(value) if value is not None else None

    async def set(self, key: str, value: int, ttl_seconds: int | None = None) -> None:
        full_key = self._make_key(key)
        try:
            if ttl_seconds is None:
                await self.redis.set(full_key, int(value))
            elif ttl_seconds > 0:
                await self.redis.setex(full_key, ttl_seconds, int(value))
            else:
                # SETEX rejects a zero TTL; an already-expired value is simply absent
                await self.redis.delete(full_key)
        except RedisError as exc:
            raise self._fail("SET", key, exc) from exc

    async def incr(self, key: str, ttl_seconds: int | None = None) -> int:
        full_key = self._make_key(key)
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.incr(full_key)
                if ttl_seconds is not None:
                    # EXPIRE with a non-positive TTL deletes the key
                    pipe.expire(full_key, ttl_seconds)
                results = await pipe.execute()
        except RedisError as exc:
            raise self._fail("INCR", key, exc) from exc
        return int(results[0])

    async def ttl(self, key: str) -> int:
        try:
            return int(await self.redis.ttl(self._make_key(key)))
        except RedisError as exc:
            raise self._fail("TTL", key, exc) from exc

    async def close(self) -> None:
        await self.redis.aclose()
