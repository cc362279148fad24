"""Durable stores for the cache engine.

- InMemoryStore: process-local, for tests and ephemeral runs
- LocalFileStore: one file per key on the local filesystem
- RedisStore: shared Redis database
"""

from transitcache.storage.base import DurableStore
from transitcache.storage.factory import create_store
from transitcache.storage.local import LocalFileStore
from transitcache.storage.memory import InMemoryStore
from transitcache.storage.redis import RedisStore

__all__ = [
    "DurableStore",
    "InMemoryStore",
    "LocalFileStore",
    "RedisStore",
    "create_store",
]
