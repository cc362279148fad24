"""Global pytest configuration and fixtures.

Provides a controllable clock, counting fetch functions and engines wired to
an in-memory durable store.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable

import pytest

from transitcache.cache.engine import CacheEngine
from transitcache.storage.memory import InMemoryStore


class FakeClock:
    """Wall clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CountingFetch:
    """Async fetch function recording how often it was called.

    Returns ``values`` in order, repeating the last one. Raises ``error``
    instead when set.
    """

    def __init__(self, *values: Any, delay: float = 0.0, error: Exception | None = None) -> None:
        self.values = list(values)
        self.delay = delay
        self.error = error
        self.calls = 0

    async def __call__(self) -> Any:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if len(self.values) > 1:
            return self.values.pop(0)
        return self.values[0] if self.values else None


@pytest.fixture
def clock() -> FakeClock:
    """Create a fake clock."""
    return FakeClock()


@pytest.fixture
def make_fetch() -> Callable[..., CountingFetch]:
    """Factory for counting fetch functions."""
    return CountingFetch


@pytest.fixture
def store() -> InMemoryStore:
    """Create an empty in-memory durable store."""
    return InMemoryStore()


@pytest.fixture
def engine(store: InMemoryStore, clock: FakeClock) -> CacheEngine:
    """Create an engine backed by the in-memory store and fake clock."""
    return CacheEngine(store, namespace="test:", max_memory_entries=10, clock=clock)
