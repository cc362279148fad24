"""Transit-specific cache facade.

Binds the generic cache engine to the upstream transit API with one cache
key template and freshness policy per dataset.
"""

from transitcache.transit.datasets import DATASETS, Dataset, DatasetSpec, get_dataset
from transitcache.transit.service import CachedTransitService
from transitcache.transit.source import TransitSource

__all__ = [
    "CachedTransitService",
    "TransitSource",
    "Dataset",
    "DatasetSpec",
    "DATASETS",
    "get_dataset",
]
