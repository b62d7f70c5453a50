"""Factory for the configured counter store backend."""

from app.adapters.counter_store.base import AbstractCounterStore
from app.adapters.counter_store.in_memory import InMemoryCounterStore
from app.adapters.counter_store.redis_store import RedisCounterStore
from app.core.config import CacheSettings, settings
from app.core.errors import ValidationAppError


def create_counter_store(cache_settings: CacheSettings | None = None) -> AbstractCounterStore:
    """Instantiate the counter store selected by CACHE_BACKEND.

    Returns:
        AbstractCounterStore: Configured store instance.

    Raises:
        ValidationAppError: If the backend name is unknown.
    """
    cfg = cache_settings or settings.cache
    backend = cfg.backend.lower()

    if backend == "memory":
        return InMemoryCounterStore()

    if backend == "redis":
        return RedisCounterStore.from_url(cfg.redis_url, key_prefix=cfg.key_prefix)

    raise ValidationAppError(
        code="cache_unknown_backend",
        message=f"Unknown counter store backend: '{backend}'. Supported backends: memory, redis",
    )
