"""Exception types for transitcache."""

from __future__ import annotations


class TransitCacheError(Exception):
    """Base exception for transitcache errors."""

    pass


class StoreError(TransitCacheError):
    """Durable store read, write or remove failed."""

    pass


class UnknownDatasetError(TransitCacheError, KeyError):
    """Dataset name is not one of the known cache datasets."""

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"Unknown dataset: {self.name}"
