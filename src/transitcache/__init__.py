"""transitcache: client-side cache and freshness layer for transit data."""

from transitcache.cache import CacheEngine, CacheOutcome, CachePolicy, CacheResult
from transitcache.errors import StoreError, TransitCacheError, UnknownDatasetError
from transitcache.transit import CachedTransitService, Dataset, TransitSource

__version__ = "0.1.0"

__all__ = [
    "CacheEngine",
    "CacheOutcome",
    "CachePolicy",
    "CacheResult",
    "CachedTransitService",
    "Dataset",
    "TransitSource",
    "TransitCacheError",
    "StoreError",
    "UnknownDatasetError",
    "__version__",
]
