"""Two-tier cache engine with stale-while-revalidate refresh.

Reads go memory first, then the durable store, then upstream:

1. A memory entry younger than the policy TTL is a hit. When it is older
   than ``ttl - refresh_threshold`` a background refresh is scheduled and
   the current value is still returned immediately.
2. Without a memory entry, a timestamp younger than the TTL (the index is
   reloaded from the durable store after a restart) means the durable row is
   read, promoted to memory and returned.
3. Anything else is a miss and blocks on an upstream fetch.

At most one upstream fetch per key runs at a time; concurrent callers await
the same task. A failed fetch falls back to any cached value, fresh or
stale, and only raises on a cold miss.

Example:
    engine = CacheEngine(store=InMemoryStore())
    buses = await engine.get("live_buses", source.get_live_buses, CachePolicy(ttl=30))

    unsubscribe = engine.subscribe("live_buses", on_buses)
    await engine.refresh("live_buses", source.get_live_buses, CachePolicy(ttl=30))
    unsubscribe()
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import Any, Callable, Sequence

import orjson

from transitcache.cache.keys import CacheKeys
from transitcache.cache.models import (
    DEFAULT_REFRESH_THRESHOLD,
    CacheEntry,
    CacheOutcome,
    CachePolicy,
    CacheResult,
    CacheStats,
    FetchFn,
    KeyStatus,
    PreloadItem,
)
from transitcache.cache.subscriptions import Subscriber, SubscriberRegistry, Unsubscribe
from transitcache.config import Settings
from transitcache.observability.logging import LogContext
from transitcache.observability.metrics import get_metrics
from transitcache.storage.base import DurableStore

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "transit_cache:"
DEFAULT_TTL = 300.0  # 5 minutes
DEFAULT_MAX_MEMORY_ENTRIES = 100


class CacheEngine:
    """Generic key-value cache with TTL, durability and notification.

    The engine owns every value it stores. Payloads must be JSON-serializable
    for keys whose policy persists them.

    Args:
        store: Durable store to write through to (memory only if None)
        namespace: Prefix for every durable key written by this engine
        max_memory_entries: Bound on the memory tier
        default_ttl: TTL used when a call passes no policy
        refresh_threshold: Background refresh lead time for policies without one
        background_refresh_delay: Sleep before a background refresh fires
        clock: Wall-clock source in epoch seconds
    """

    def __init__(
        self,
        store: DurableStore | None = None,
        *,
        namespace: str = DEFAULT_NAMESPACE,
        max_memory_entries: int = DEFAULT_MAX_MEMORY_ENTRIES,
        default_ttl: float = DEFAULT_TTL,
        refresh_threshold: float = DEFAULT_REFRESH_THRESHOLD,
        background_refresh_delay: float = 0.0,
        clock: Callable[[], float] = time.time,
        owns_store: bool = False,
    ) -> None:
        if max_memory_entries < 1:
            raise ValueError("max_memory_entries must be at least 1")

        self.store = store
        self.namespace = namespace
        self.max_memory_entries = max_memory_entries
        self.default_ttl = default_ttl
        self.refresh_threshold = refresh_threshold
        self.background_refresh_delay = background_refresh_delay
        self._clock = clock
        self._owns_store = owns_store

        self._memory: dict[str, CacheEntry] = {}
        self._timestamps: dict[str, float] = {}
        # Keys whose current value was written to the durable store
        self._persisted: set[str] = set()
        self._pending: dict[str, asyncio.Task[CacheResult[Any]]] = {}
        self._refreshing: set[str] = set()
        self._background_tasks: set[asyncio.Task[None]] = set()
        self._subscribers = SubscriberRegistry()
        self._init_task: asyncio.Task[None] | None = None

        self._hits = 0
        self._misses = 0
        self._background_refreshes = 0
        self._durable_hits = 0

        self._metrics = get_metrics()

    @classmethod
    def from_settings(
        cls, settings: Settings, store: DurableStore | None = None
    ) -> "CacheEngine":
        """Build an engine from settings.

        Creates the configured store when none is given; the engine then
        closes it on ``close()``.
        """
        owns_store = False
        if store is None:
            from transitcache.storage.factory import create_store

            store = create_store(settings)
            owns_store = True

        return cls(
            store,
            namespace=settings.namespace,
            max_memory_entries=settings.max_memory_entries,
            default_ttl=settings.default_ttl,
            refresh_threshold=settings.refresh_threshold,
            background_refresh_delay=settings.background_refresh_delay,
            owns_store=owns_store,
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def initialize(self) -> None:
        """Load the persisted timestamp index once.

        Called lazily by every public operation; safe to call repeatedly.
        """
        task = self._init_task
        if task is None or (task.done() and (task.cancelled() or task.exception() is not None)):
            task = self._init_task = asyncio.ensure_future(self._load_index())
        # Shielded so a caller giving up never cancels the shared load
        await asyncio.shield(task)

    async def _load_index(self) -> None:
        if self.store is None:
            return

        try:
            raw = await self.store.get(CacheKeys.timestamp_index(self.namespace))
        except Exception as e:
            self._record_store_error("read", e)
            return

        if not raw:
            return

        try:
            data = orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            logger.warning(f"Ignoring corrupt timestamp index: {e}")
            return

        if not isinstance(data, dict):
            logger.warning("Ignoring timestamp index that is not an object")
            return

        loaded = 0
        for key, stored_at in data.items():
            if isinstance(stored_at, (int, float)) and not isinstance(stored_at, bool):
                self._timestamps.setdefault(key, float(stored_at))
                self._persisted.add(key)
                loaded += 1
        logger.debug(f"Loaded {loaded} timestamps for namespace {self.namespace}")

    async def wait_for_background(self) -> None:
        """Wait until every scheduled background refresh has finished."""
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    async def close(self) -> None:
        """Cancel outstanding fetches and release an owned store."""
        tasks: list[asyncio.Task[Any]] = [*self._background_tasks, *self._pending.values()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        self._background_tasks.clear()
        self._pending.clear()
        self._refreshing.clear()

        if self._owns_store and self.store is not None:
            await self.store.close()

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get(self, key: str, fetch: FetchFn, policy: CachePolicy | None = None) -> Any:
        """Return the cached value for a key, fetching it when needed.

        Raises:
            Exception: Whatever ``fetch`` raised, only when no cached value
                exists to fall back on
        """
        result = await self.lookup(key, fetch, policy)
        return result.unwrap()

    async def lookup(
        self, key: str, fetch: FetchFn, policy: CachePolicy | None = None
    ) -> CacheResult[Any]:
        """Resolve a key like ``get`` but report failures in the result."""
        self._check_key(key)
        await self.initialize()
        policy = self._resolve_policy(policy)

        age = self._age(key)
        entry = self._memory.get(key)

        if entry is not None and policy.is_fresh(age):
            self._hits += 1
            self._metrics.cache_hits_total.labels(namespace=self.namespace).inc()
            self._maybe_refresh_in_background(key, fetch, policy, age)
            return CacheResult(key, CacheOutcome.HIT, entry.value)

        if entry is None and policy.is_fresh(age):
            found, value = await self._load_durable(key)
            stored_at = self._timestamps.get(key)
            if found and stored_at is not None:
                self._put_memory(key, value, stored_at)
                self._durable_hits += 1
                self._metrics.cache_durable_hits_total.labels(namespace=self.namespace).inc()
                self._maybe_refresh_in_background(key, fetch, policy, self._age(key))
                return CacheResult(key, CacheOutcome.DURABLE_HIT, value)

        self._misses += 1
        self._metrics.cache_misses_total.labels(namespace=self.namespace).inc()
        return await self._fetch_and_cache(key, fetch, policy)

    async def refresh(self, key: str, fetch: FetchFn, policy: CachePolicy | None = None) -> Any:
        """Fetch a key unconditionally, bypassing freshness checks."""
        result = await self.refresh_result(key, fetch, policy)
        return result.unwrap()

    async def refresh_result(
        self, key: str, fetch: FetchFn, policy: CachePolicy | None = None
    ) -> CacheResult[Any]:
        """Refresh a key and report failures in the result."""
        self._check_key(key)
        await self.initialize()
        return await self._fetch_and_cache(key, fetch, self._resolve_policy(policy))

    async def preload(self, items: Sequence[PreloadItem]) -> list[CacheResult[Any]]:
        """Warm several keys concurrently.

        Every item is attempted; one failing does not affect the others.
        Returns one result per item, in order.
        """
        outcomes = await asyncio.gather(
            *(self.lookup(item.key, item.fetch, item.policy) for item in items),
            return_exceptions=True,
        )

        results: list[CacheResult[Any]] = []
        for item, outcome in zip(items, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning(f"Preload failed for {item.key}: {outcome}")
                results.append(CacheResult(item.key, CacheOutcome.EMPTY, error=outcome))
                continue
            if not outcome.has_value:
                logger.warning(f"Preload failed for {item.key}: {outcome.error}")
            results.append(outcome)
        return results

    # -------------------------------------------------------------------------
    # Fetching
    # -------------------------------------------------------------------------

    async def _fetch_and_cache(
        self, key: str, fetch: FetchFn, policy: CachePolicy
    ) -> CacheResult[Any]:
        """Run one fetch per key, sharing it with concurrent callers."""
        task = self._pending.get(key)
        if task is None:
            task = asyncio.ensure_future(self._execute_fetch(key, fetch, policy))
            self._pending[key] = task
        # Shielded so a caller giving up never cancels the shared fetch
        return await asyncio.shield(task)

    async def _execute_fetch(
        self, key: str, fetch: FetchFn, policy: CachePolicy
    ) -> CacheResult[Any]:
        with LogContext(cache_key=key):
            start = time.perf_counter()
            try:
                try:
                    value = await fetch()
                except Exception as e:
                    self._metrics.fetch_failures_total.labels(namespace=self.namespace).inc()
                    logger.error(f"Fetch failed for {key}: {e}")
                    return await self._fallback(key, e)

                duration = time.perf_counter() - start
                self._metrics.fetch_duration_seconds.labels(namespace=self.namespace).observe(
                    duration
                )
                logger.debug(f"Fetched {key} in {duration * 1000:.1f}ms")

                self._put_memory(key, value, self._clock())
                if policy.persist:
                    await self._persist(key, value)
                else:
                    self._persisted.discard(key)
                self._subscribers.notify(key, value)
                return CacheResult(key, CacheOutcome.FETCHED, value)
            finally:
                if self._pending.get(key) is asyncio.current_task():
                    del self._pending[key]

    async def _fallback(self, key: str, error: Exception) -> CacheResult[Any]:
        """Serve whatever is cached for a key after a failed fetch."""
        entry = self._memory.get(key)
        if entry is not None:
            logger.info(f"Serving stale {key} after fetch failure")
            return CacheResult(key, CacheOutcome.STALE, entry.value, error=error)

        found, value = await self._load_durable(key)
        if found:
            logger.info(f"Serving stale durable {key} after fetch failure")
            return CacheResult(key, CacheOutcome.STALE, value, error=error)

        return CacheResult(key, CacheOutcome.EMPTY, error=error)

    def _maybe_refresh_in_background(
        self, key: str, fetch: FetchFn, policy: CachePolicy, age: float
    ) -> None:
        if not policy.needs_background_refresh(age, self.refresh_threshold):
            return
        if key in self._pending or key in self._refreshing:
            return

        self._refreshing.add(key)
        self._background_refreshes += 1
        self._metrics.cache_background_refreshes_total.labels(namespace=self.namespace).inc()

        task = asyncio.ensure_future(self._background_refresh(key, fetch, policy))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _background_refresh(self, key: str, fetch: FetchFn, policy: CachePolicy) -> None:
        try:
            if self.background_refresh_delay > 0:
                await asyncio.sleep(self.background_refresh_delay)
            result = await self._fetch_and_cache(key, fetch, policy)
            if result.outcome is not CacheOutcome.FETCHED:
                logger.warning(f"Background refresh failed for {key}: {result.error}")
        except Exception as e:
            logger.warning(f"Background refresh failed for {key}: {e}")
        finally:
            self._refreshing.discard(key)

    # -------------------------------------------------------------------------
    # Memory tier
    # -------------------------------------------------------------------------

    def _put_memory(self, key: str, value: Any, stored_at: float) -> None:
        self._memory[key] = CacheEntry(key=key, value=value, stored_at=stored_at)
        self._timestamps[key] = stored_at
        self._evict()

    def _evict(self) -> None:
        """Drop the oldest-written entries until the memory bound holds."""
        overflow = len(self._memory) - self.max_memory_entries
        if overflow > 0:
            oldest = sorted(self._memory.values(), key=lambda entry: entry.stored_at)[:overflow]
            for entry in oldest:
                del self._memory[entry.key]
            logger.debug(f"Evicted {overflow} entries from memory")
        self._metrics.cache_memory_entries.labels(namespace=self.namespace).set(len(self._memory))

    # -------------------------------------------------------------------------
    # Durable tier
    # -------------------------------------------------------------------------

    async def _load_durable(self, key: str) -> tuple[bool, Any]:
        """Read and decode a durable row.

        Returns (found, value); store and decode errors count as not found.
        """
        if self.store is None:
            return False, None

        try:
            raw = await self.store.get(CacheKeys.durable(self.namespace, key))
        except Exception as e:
            self._record_store_error("read", e)
            return False, None

        if raw is None:
            return False, None

        try:
            return True, orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            logger.warning(f"Ignoring corrupt durable entry {key}: {e}")
            return False, None

    async def _persist(self, key: str, value: Any) -> None:
        if self.store is None:
            return

        try:
            payload = orjson.dumps(value).decode("utf-8")
        except TypeError as e:
            logger.warning(f"Not persisting {key}, value is not serializable: {e}")
            self._persisted.discard(key)
            return

        try:
            await self.store.set(CacheKeys.durable(self.namespace, key), payload)
            self._persisted.add(key)
            # Index is advisory: a crash between these writes leaves a stale index
            await self._write_index()
        except Exception as e:
            self._record_store_error("write", e)

    async def _write_index(self) -> None:
        if self.store is None:
            return
        await self.store.set(
            CacheKeys.timestamp_index(self.namespace),
            orjson.dumps(
                {k: v for k, v in self._timestamps.items() if k in self._persisted}
            ).decode("utf-8"),
        )

    def _record_store_error(self, operation: str, error: Exception) -> None:
        self._metrics.store_errors_total.labels(
            namespace=self.namespace, operation=operation
        ).inc()
        logger.warning(f"Durable store {operation} error: {error}")

    # -------------------------------------------------------------------------
    # Subscriptions and invalidation
    # -------------------------------------------------------------------------

    def subscribe(self, key: str, callback: Subscriber) -> Unsubscribe:
        """Call ``callback`` with every freshly fetched value of ``key``."""
        return self._subscribers.subscribe(key, callback)

    async def clear(self, key: str | None = None) -> None:
        """Remove one key from every tier, or everything in the namespace."""
        await self.initialize()

        if key is not None:
            self._memory.pop(key, None)
            self._timestamps.pop(key, None)
            self._persisted.discard(key)
            if self.store is not None:
                try:
                    await self.store.remove(CacheKeys.durable(self.namespace, key))
                    await self._write_index()
                except Exception as e:
                    self._record_store_error("remove", e)
            logger.debug(f"Cleared {key}")
        else:
            self._memory.clear()
            self._timestamps.clear()
            self._persisted.clear()
            if self.store is not None:
                try:
                    keys = await self.store.list_keys()
                    owned = [k for k in keys if k.startswith(self.namespace)]
                    await self.store.remove_many(owned)
                except Exception as e:
                    self._record_store_error("remove", e)
            logger.info(f"Cleared all cache entries in {self.namespace}")

        self._metrics.cache_memory_entries.labels(namespace=self.namespace).set(len(self._memory))

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    def stats(self) -> CacheStats:
        """Snapshot of process-lifetime counters."""
        return CacheStats(
            hits=self._hits,
            misses=self._misses,
            background_refreshes=self._background_refreshes,
            durable_hits=self._durable_hits,
            memory_entries=len(self._memory),
            durable_keys=len(self._persisted),
        )

    def status(self, key: str) -> KeyStatus:
        """Where a key is cached and how old it is."""
        stored_at = self._timestamps.get(key)
        return KeyStatus(
            key=key,
            exists=stored_at is not None,
            in_memory=key in self._memory,
            age=self._clock() - stored_at if stored_at is not None else None,
        )

    def has_in_memory(self, key: str) -> bool:
        return key in self._memory

    @property
    def memory_size(self) -> int:
        return len(self._memory)

    def is_pending(self, key: str) -> bool:
        """True while an upstream fetch for the key is in flight."""
        return key in self._pending

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _age(self, key: str) -> float:
        stored_at = self._timestamps.get(key)
        if stored_at is None:
            return math.inf
        return self._clock() - stored_at

    def _resolve_policy(self, policy: CachePolicy | None) -> CachePolicy:
        if policy is None:
            return CachePolicy(ttl=self.default_ttl)
        return policy

    def _check_key(self, key: str) -> None:
        if not key:
            raise ValueError("Cache key must be non-empty")
        if key == CacheKeys.TIMESTAMP_INDEX:
            raise ValueError(f"Cache key '{key}' is reserved")
