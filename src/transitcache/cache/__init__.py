"""Cache layer for transitcache.

Provides a two-tier cache with stale-while-revalidate refresh:
- Memory tier bounded by write-time eviction
- Optional durable tier written through on every fetch
- One in-flight upstream fetch per key
- Per-key subscribers notified after every successful fetch
"""

from transitcache.cache.engine import CacheEngine
from transitcache.cache.keys import CacheKeys
from transitcache.cache.models import (
    DEFAULT_REFRESH_THRESHOLD,
    CacheEntry,
    CacheOutcome,
    CachePolicy,
    CacheResult,
    CacheStats,
    KeyStatus,
    PreloadItem,
)
from transitcache.cache.subscriptions import SubscriberRegistry

__all__ = [
    # Engine
    "CacheEngine",
    "CacheKeys",
    "SubscriberRegistry",
    # Model
    "DEFAULT_REFRESH_THRESHOLD",
    "CacheEntry",
    "CacheOutcome",
    "CachePolicy",
    "CacheResult",
    "CacheStats",
    "KeyStatus",
    "PreloadItem",
]
