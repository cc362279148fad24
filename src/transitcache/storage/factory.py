"""Durable store factory for transitcache."""

from __future__ import annotations

from transitcache.config import Settings, settings as default_settings
from transitcache.storage.base import DurableStore
from transitcache.storage.local import LocalFileStore
from transitcache.storage.memory import InMemoryStore
from transitcache.storage.redis import RedisStore


def create_store(settings: Settings | None = None) -> DurableStore:
    """Return a DurableStore based on settings."""
    settings = settings or default_settings

    backend = settings.store_backend.lower()
    if backend == "memory":
        return InMemoryStore()
    if backend == "local":
        return LocalFileStore(base_path=settings.store_path)
    if backend == "redis":
        if not settings.redis_url:
            raise ValueError("REDIS_URL is required for store_backend='redis'")
        return RedisStore.from_url(settings.redis_url, namespace=settings.namespace)
    raise ValueError("Unsupported store_backend. Supported values: memory, local, redis.")
