"""Tests for the cache engine."""

import asyncio
from unittest.mock import AsyncMock

import orjson
import pytest

from transitcache.cache.engine import CacheEngine
from transitcache.cache.models import CacheOutcome, CachePolicy, PreloadItem
from transitcache.errors import StoreError
from transitcache.storage.memory import InMemoryStore

# Background refresh starts 10s before expiry
POLICY = CachePolicy(ttl=60, refresh_threshold=10)


class FailingStore(InMemoryStore):
    """Store whose reads and writes always fail."""

    async def get(self, key: str) -> str | None:
        raise StoreError("disk unavailable")

    async def set(self, key: str, value: str) -> None:
        raise StoreError("disk unavailable")

    async def remove(self, key: str) -> None:
        raise StoreError("disk unavailable")

    async def list_keys(self) -> list[str]:
        raise StoreError("disk unavailable")


class SlowStore(InMemoryStore):
    """Store whose reads take a while."""

    async def get(self, key: str) -> str | None:
        await asyncio.sleep(0.05)
        return await super().get(key)


class TestFreshness:
    """Tests for serving fresh entries."""

    @pytest.mark.asyncio
    async def test_get_returns_fetched_value(self, engine, make_fetch) -> None:
        """First get fetches and returns the value."""
        fetch = make_fetch([1, 2, 3])

        value = await engine.get("buses", fetch, POLICY)

        assert value == [1, 2, 3]
        assert fetch.calls == 1
        assert engine.status("buses").age == 0

    @pytest.mark.asyncio
    async def test_second_get_within_ttl_does_not_fetch(self, engine, make_fetch, clock) -> None:
        """A fresh entry is served from memory."""
        fetch = make_fetch("v1")

        await engine.get("buses", fetch, POLICY)
        clock.advance(30)
        result = await engine.lookup("buses", fetch, POLICY)

        assert result.outcome == CacheOutcome.HIT
        assert result.value == "v1"
        assert fetch.calls == 1

    @pytest.mark.asyncio
    async def test_expired_entry_is_refetched(self, engine, make_fetch, clock) -> None:
        """An entry older than the TTL blocks on a new fetch."""
        fetch = make_fetch("v1", "v2")

        await engine.get("buses", fetch, POLICY)
        clock.advance(61)
        value = await engine.get("buses", fetch, POLICY)

        assert value == "v2"
        assert fetch.calls == 2
        assert engine.stats().misses == 2

    @pytest.mark.asyncio
    async def test_default_policy_uses_default_ttl(self, store, clock, make_fetch) -> None:
        """Calls without a policy use the engine default TTL."""
        engine = CacheEngine(store, default_ttl=5, refresh_threshold=0, clock=clock)
        fetch = make_fetch("v1", "v2")

        await engine.get("k", fetch)
        clock.advance(4)
        assert await engine.get("k", fetch) == "v1"
        clock.advance(2)
        assert await engine.get("k", fetch) == "v2"

    @pytest.mark.asyncio
    async def test_reserved_key_rejected(self, engine, make_fetch) -> None:
        """The timestamp index key cannot be used as a cache key."""
        with pytest.raises(ValueError, match="reserved"):
            await engine.get("timestamps", make_fetch(1))

    @pytest.mark.asyncio
    async def test_empty_key_rejected(self, engine, make_fetch) -> None:
        """Empty keys are rejected."""
        with pytest.raises(ValueError, match="non-empty"):
            await engine.get("", make_fetch(1))


class TestDeduplication:
    """Tests for in-flight request sharing."""

    @pytest.mark.asyncio
    async def test_concurrent_gets_share_one_fetch(self, engine, make_fetch) -> None:
        """N concurrent callers produce exactly one upstream call."""
        fetch = make_fetch({"buses": 4}, delay=0.05)

        results = await asyncio.gather(*(engine.get("buses", fetch, POLICY) for _ in range(5)))

        assert fetch.calls == 1
        assert results == [{"buses": 4}] * 5

    @pytest.mark.asyncio
    async def test_refresh_joins_pending_fetch(self, engine, make_fetch) -> None:
        """A refresh issued while a fetch is in flight reuses it."""
        fetch = make_fetch("v1", delay=0.05)
        await engine.initialize()

        get_task = asyncio.ensure_future(engine.get("buses", fetch, POLICY))
        await asyncio.sleep(0)
        assert engine.is_pending("buses")

        refreshed = await engine.refresh("buses", fetch, POLICY)

        assert await get_task == "v1"
        assert refreshed == "v1"
        assert fetch.calls == 1
        assert not engine.is_pending("buses")

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_cancel_fetch(self, engine, make_fetch) -> None:
        """The fetch completes and is cached even when its caller gives up."""
        fetch = make_fetch("v1", delay=0.05)

        caller = asyncio.ensure_future(engine.get("buses", fetch, POLICY))
        await asyncio.sleep(0.01)
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller

        await asyncio.sleep(0.1)

        assert engine.has_in_memory("buses")
        assert await engine.get("buses", fetch, POLICY) == "v1"
        assert fetch.calls == 1

    @pytest.mark.asyncio
    async def test_sequential_fetch_after_completion(self, engine, make_fetch) -> None:
        """A finished fetch is not reused by later refreshes."""
        fetch = make_fetch("v1", "v2")

        await engine.refresh("buses", fetch, POLICY)
        value = await engine.refresh("buses", fetch, POLICY)

        assert value == "v2"
        assert fetch.calls == 2


class TestStaleWhileRevalidate:
    """Tests for background refresh of ageing entries."""

    @pytest.mark.asyncio
    async def test_ageing_entry_served_and_refreshed(self, engine, make_fetch, clock) -> None:
        """Old value is returned at once and replaced after the refresh."""
        fetch = make_fetch("v1", "v2")

        await engine.get("buses", fetch, POLICY)
        clock.advance(55)

        assert await engine.get("buses", fetch, POLICY) == "v1"

        await engine.wait_for_background()

        assert fetch.calls == 2
        assert await engine.get("buses", fetch, POLICY) == "v2"
        assert engine.stats().background_refreshes == 1

    @pytest.mark.asyncio
    async def test_single_background_fetch_for_repeated_hits(
        self, engine, make_fetch, clock
    ) -> None:
        """Several hits in the refresh window trigger one background fetch."""
        fetch = make_fetch("v1", "v2", delay=0.02)

        await engine.get("buses", fetch, POLICY)
        clock.advance(55)
        for _ in range(3):
            assert await engine.get("buses", fetch, POLICY) == "v1"

        await engine.wait_for_background()

        assert fetch.calls == 2
        assert engine.stats().background_refreshes == 1

    @pytest.mark.asyncio
    async def test_no_refresh_before_threshold(self, engine, make_fetch, clock) -> None:
        """Entries younger than ttl - threshold are not refreshed."""
        fetch = make_fetch("v1", "v2")

        await engine.get("buses", fetch, POLICY)
        clock.advance(45)
        await engine.get("buses", fetch, POLICY)
        await engine.wait_for_background()

        assert fetch.calls == 1

    @pytest.mark.asyncio
    async def test_background_refresh_can_be_disabled(self, engine, make_fetch, clock) -> None:
        """Policies with background_refresh=False never revalidate."""
        policy = CachePolicy(ttl=60, refresh_threshold=10, background_refresh=False)
        fetch = make_fetch("v1", "v2")

        await engine.get("buses", fetch, policy)
        clock.advance(55)
        await engine.get("buses", fetch, policy)
        await engine.wait_for_background()

        assert fetch.calls == 1

    @pytest.mark.asyncio
    async def test_engine_threshold_applies_without_policy_threshold(
        self, store, clock, make_fetch
    ) -> None:
        """The engine-wide threshold is used when the policy sets none."""
        engine = CacheEngine(store, refresh_threshold=20, clock=clock)
        fetch = make_fetch("v1", "v2")
        policy = CachePolicy(ttl=60)

        await engine.get("buses", fetch, policy)
        clock.advance(45)
        await engine.get("buses", fetch, policy)
        await engine.wait_for_background()

        assert fetch.calls == 2

    @pytest.mark.asyncio
    async def test_background_delay(self, store, clock, make_fetch) -> None:
        """Background refresh waits for the configured delay before fetching."""
        engine = CacheEngine(store, background_refresh_delay=0.05, clock=clock)
        fetch = make_fetch("v1", "v2")

        await engine.get("buses", fetch, POLICY)
        clock.advance(55)
        await engine.get("buses", fetch, POLICY)
        await asyncio.sleep(0)

        assert fetch.calls == 1
        await engine.wait_for_background()
        assert fetch.calls == 2


class TestFallback:
    """Tests for serving cached values after failed fetches."""

    @pytest.mark.asyncio
    async def test_foreground_failure_serves_stale_value(
        self, engine, make_fetch, clock
    ) -> None:
        """An expired entry is still served when the refetch fails."""
        fetch = make_fetch("v1")
        await engine.get("buses", fetch, POLICY)

        clock.advance(120)
        fetch.error = RuntimeError("upstream down")
        result = await engine.lookup("buses", fetch, POLICY)

        assert result.outcome == CacheOutcome.STALE
        assert result.value == "v1"
        assert isinstance(result.error, RuntimeError)
        assert await engine.get("buses", fetch, POLICY) == "v1"

    @pytest.mark.asyncio
    async def test_background_failure_keeps_value(self, engine, make_fetch, clock) -> None:
        """A failed background refresh leaves the cached value servable."""
        fetch = make_fetch("v1")
        await engine.get("buses", fetch, POLICY)

        clock.advance(55)
        fetch.error = RuntimeError("upstream down")
        assert await engine.get("buses", fetch, POLICY) == "v1"
        await engine.wait_for_background()

        assert fetch.calls == 2
        assert engine.has_in_memory("buses")
        assert await engine.get("buses", fetch, POLICY) == "v1"

    @pytest.mark.asyncio
    async def test_cold_miss_raises_fetch_error(self, engine, make_fetch) -> None:
        """A failure with nothing cached propagates."""
        fetch = make_fetch(error=RuntimeError("upstream down"))

        with pytest.raises(RuntimeError, match="upstream down"):
            await engine.get("buses", fetch, POLICY)

    @pytest.mark.asyncio
    async def test_cold_miss_lookup_is_empty(self, engine, make_fetch) -> None:
        """lookup reports a cold-miss failure as EMPTY."""
        fetch = make_fetch(error=RuntimeError("upstream down"))

        result = await engine.lookup("buses", fetch, POLICY)

        assert result.outcome == CacheOutcome.EMPTY
        assert not result.has_value
        assert isinstance(result.error, RuntimeError)

    @pytest.mark.asyncio
    async def test_failure_falls_back_to_durable_value(self, store, clock, make_fetch) -> None:
        """After a restart an expired durable row is served if the fetch fails."""
        first = CacheEngine(store, namespace="test:", clock=clock)
        await first.get("buses", make_fetch("persisted"), POLICY)

        clock.advance(600)
        restarted = CacheEngine(store, namespace="test:", clock=clock)
        result = await restarted.lookup(
            "buses", make_fetch(error=RuntimeError("offline")), POLICY
        )

        assert result.outcome == CacheOutcome.STALE
        assert result.value == "persisted"

    @pytest.mark.asyncio
    async def test_failed_fetch_does_not_update_timestamp(
        self, engine, make_fetch, clock
    ) -> None:
        """Only successful fetches move the stored timestamp."""
        fetch = make_fetch("v1")
        await engine.get("buses", fetch, POLICY)

        clock.advance(120)
        fetch.error = RuntimeError("upstream down")
        await engine.get("buses", fetch, POLICY)

        assert engine.status("buses").age == 120


class TestDurableStore:
    """Tests for write-through persistence."""

    @pytest.mark.asyncio
    async def test_round_trip_after_restart(self, store, clock, make_fetch) -> None:
        """A restarted engine serves the durable value without fetching."""
        first = CacheEngine(store, namespace="test:", clock=clock)
        await first.get("lines", make_fetch([{"id": 1}]), POLICY)

        clock.advance(5)
        restarted = CacheEngine(store, namespace="test:", clock=clock)
        fetch = make_fetch(error=AssertionError("must not fetch"))
        result = await restarted.lookup("lines", fetch, POLICY)

        assert result.outcome == CacheOutcome.DURABLE_HIT
        assert result.value == [{"id": 1}]
        assert fetch.calls == 0
        assert restarted.has_in_memory("lines")
        assert restarted.stats().durable_hits == 1

    @pytest.mark.asyncio
    async def test_writes_entry_and_index(self, engine, store, make_fetch, clock) -> None:
        """A persisted fetch writes the value and the timestamp index."""
        await engine.get("lines", make_fetch([1, 2]), POLICY)

        assert orjson.loads(await store.get("test:lines")) == [1, 2]
        index = orjson.loads(await store.get("test:timestamps"))
        assert index == {"lines": clock.now}

    @pytest.mark.asyncio
    async def test_unpersisted_policy_skips_store(self, engine, store, make_fetch) -> None:
        """persist=False keeps the value in memory only."""
        policy = CachePolicy(ttl=30, persist=False)

        await engine.get("location_7", make_fetch({"lat": 1}), policy)

        assert "test:location_7" not in store
        assert engine.has_in_memory("location_7")

    @pytest.mark.asyncio
    async def test_corrupt_index_is_ignored(self, clock, make_fetch) -> None:
        """An unreadable timestamp index does not break reads."""
        store = InMemoryStore({"test:timestamps": "{not json", "test:lines": "[1]"})
        engine = CacheEngine(store, namespace="test:", clock=clock)
        fetch = make_fetch([2])

        assert await engine.get("lines", fetch, POLICY) == [2]
        assert fetch.calls == 1

    @pytest.mark.asyncio
    async def test_corrupt_entry_falls_back_to_fetch(self, clock, make_fetch) -> None:
        """A durable row that fails to decode counts as missing."""
        index = orjson.dumps({"lines": clock.now}).decode()
        store = InMemoryStore({"test:timestamps": index, "test:lines": "{broken"})
        engine = CacheEngine(store, namespace="test:", clock=clock)
        fetch = make_fetch([2])

        result = await engine.lookup("lines", fetch, POLICY)

        assert result.outcome == CacheOutcome.FETCHED
        assert fetch.calls == 1

    @pytest.mark.asyncio
    async def test_store_failures_degrade_to_memory(self, clock, make_fetch) -> None:
        """Store errors never reach the caller."""
        engine = CacheEngine(FailingStore(), namespace="test:", clock=clock)
        fetch = make_fetch("v1")

        assert await engine.get("buses", fetch, POLICY) == "v1"
        assert await engine.get("buses", fetch, POLICY) == "v1"
        await engine.clear("buses")
        await engine.clear()

        assert fetch.calls == 1

    @pytest.mark.asyncio
    async def test_unserializable_value_served_but_not_persisted(
        self, engine, store, make_fetch
    ) -> None:
        """Values orjson cannot encode stay memory-only."""
        value = {1, 2, 3}

        assert await engine.get("odd", make_fetch(value), POLICY) == value
        assert "test:odd" not in store

    @pytest.mark.asyncio
    async def test_memory_only_engine(self, clock, make_fetch) -> None:
        """An engine without a store still caches in memory."""
        engine = CacheEngine(clock=clock)
        fetch = make_fetch("v1")

        await engine.get("buses", fetch, POLICY)
        await engine.get("buses", fetch, POLICY)

        assert fetch.calls == 1


class TestEviction:
    """Tests for the bounded memory tier."""

    @pytest.mark.asyncio
    async def test_oldest_entries_evicted_first(self, store, clock, make_fetch) -> None:
        """Inserting past the bound drops the oldest-written entries."""
        engine = CacheEngine(store, namespace="test:", max_memory_entries=3, clock=clock)

        for i in range(5):
            await engine.get(f"k{i}", make_fetch(i), POLICY)
            clock.advance(1)

        assert engine.memory_size == 3
        assert not engine.has_in_memory("k0")
        assert not engine.has_in_memory("k1")
        assert all(engine.has_in_memory(f"k{i}") for i in (2, 3, 4))

    @pytest.mark.asyncio
    async def test_evicted_entry_reloads_from_store(self, store, clock, make_fetch) -> None:
        """An evicted persisted entry comes back from the durable tier."""
        engine = CacheEngine(store, namespace="test:", max_memory_entries=2, clock=clock)
        for i in range(3):
            await engine.get(f"k{i}", make_fetch(i), POLICY)
            clock.advance(1)

        status = engine.status("k0")
        assert status.exists and not status.in_memory

        fetch = make_fetch(error=AssertionError("must not fetch"))
        result = await engine.lookup("k0", fetch, POLICY)

        assert result.outcome == CacheOutcome.DURABLE_HIT
        assert result.value == 0
        assert engine.memory_size == 2

    @pytest.mark.asyncio
    async def test_refreshed_entry_becomes_youngest(self, store, clock, make_fetch) -> None:
        """Eviction follows write time, so a refreshed key survives."""
        engine = CacheEngine(store, namespace="test:", max_memory_entries=2, clock=clock)
        await engine.get("a", make_fetch("a"), POLICY)
        clock.advance(1)
        await engine.get("b", make_fetch("b"), POLICY)
        clock.advance(1)
        await engine.refresh("a", make_fetch("a2"), POLICY)
        clock.advance(1)
        await engine.get("c", make_fetch("c"), POLICY)

        assert engine.has_in_memory("a")
        assert not engine.has_in_memory("b")

    def test_invalid_bound(self) -> None:
        """The memory bound must be positive."""
        with pytest.raises(ValueError):
            CacheEngine(max_memory_entries=0)


class TestSubscriptions:
    """Tests for update notification."""

    @pytest.mark.asyncio
    async def test_refresh_delivers_once(self, engine, make_fetch) -> None:
        """A refresh notifies each subscriber exactly once."""
        received: list = []
        engine.subscribe("buses", received.append)

        await engine.refresh("buses", make_fetch(["bus-1"]), POLICY)

        assert received == [["bus-1"]]

    @pytest.mark.asyncio
    async def test_unsubscribed_callback_not_called(self, engine, make_fetch) -> None:
        """Unsubscribing before a refresh prevents delivery."""
        received: list = []
        unsubscribe = engine.subscribe("buses", received.append)
        unsubscribe()
        unsubscribe()

        await engine.refresh("buses", make_fetch(["bus-1"]), POLICY)

        assert received == []

    @pytest.mark.asyncio
    async def test_failing_subscriber_isolated(self, engine, make_fetch) -> None:
        """A raising callback does not stop delivery to others."""
        received: list = []

        def broken(value: object) -> None:
            raise RuntimeError("render failed")

        engine.subscribe("buses", broken)
        engine.subscribe("buses", received.append)

        assert await engine.refresh("buses", make_fetch("v1"), POLICY) == "v1"
        assert received == ["v1"]

    @pytest.mark.asyncio
    async def test_background_refresh_notifies(self, engine, make_fetch, clock) -> None:
        """Background refreshes deliver the new value too."""
        received: list = []
        fetch = make_fetch("v1", "v2")
        await engine.get("buses", fetch, POLICY)
        engine.subscribe("buses", received.append)

        clock.advance(55)
        await engine.get("buses", fetch, POLICY)
        await engine.wait_for_background()

        assert received == ["v2"]

    @pytest.mark.asyncio
    async def test_failed_fetch_does_not_notify(self, engine, make_fetch) -> None:
        """Subscribers only hear about successful fetches."""
        received: list = []
        engine.subscribe("buses", received.append)

        await engine.lookup("buses", make_fetch(error=RuntimeError("down")), POLICY)

        assert received == []


class TestClear:
    """Tests for invalidation."""

    @pytest.mark.asyncio
    async def test_clear_one_key(self, engine, store, make_fetch) -> None:
        """Clearing a key removes it from memory, store and index."""
        await engine.get("buses", make_fetch("v1"), POLICY)
        await engine.get("lines", make_fetch("v2"), POLICY)

        await engine.clear("buses")

        assert not engine.status("buses").exists
        assert "test:buses" not in store
        assert "test:lines" in store
        assert "buses" not in orjson.loads(await store.get("test:timestamps"))

    @pytest.mark.asyncio
    async def test_clear_all_keeps_foreign_keys(self, engine, store, make_fetch) -> None:
        """Clearing everything only touches the engine namespace."""
        await store.set("favorites", "[12]")
        await engine.get("buses", make_fetch("v1"), POLICY)

        await engine.clear()

        assert engine.memory_size == 0
        assert engine.stats().durable_keys == 0
        assert await store.list_keys() == ["favorites"]

    @pytest.mark.asyncio
    async def test_clear_forces_refetch(self, engine, make_fetch) -> None:
        """A cleared key is fetched again on next access."""
        fetch = make_fetch("v1", "v2")
        await engine.get("buses", fetch, POLICY)

        await engine.clear("buses")

        assert await engine.get("buses", fetch, POLICY) == "v2"


class TestPreload:
    """Tests for warming several keys."""

    @pytest.mark.asyncio
    async def test_preload_tolerates_partial_failure(self, engine, make_fetch) -> None:
        """Each item resolves independently."""
        results = await engine.preload(
            [
                PreloadItem("buses", make_fetch("v1"), POLICY),
                PreloadItem("lines", make_fetch(error=RuntimeError("down")), POLICY),
            ]
        )

        assert [r.outcome for r in results] == [CacheOutcome.FETCHED, CacheOutcome.EMPTY]
        assert engine.has_in_memory("buses")


class TestStatsAndLifecycle:
    """Tests for counters and shutdown."""

    @pytest.mark.asyncio
    async def test_hit_rate(self, engine, make_fetch) -> None:
        """Hit rate is hits over hits plus misses."""
        fetch = make_fetch("v1")
        for _ in range(4):
            await engine.get("buses", fetch, POLICY)

        stats = engine.stats()

        assert stats.hits == 3
        assert stats.misses == 1
        assert stats.hit_rate == 75.0
        assert stats.memory_entries == 1
        assert stats.to_dict()["hit_rate"] == 75.0

    def test_empty_stats(self, engine) -> None:
        """No requests means a zero hit rate."""
        assert engine.stats().hit_rate == 0.0

    @pytest.mark.asyncio
    async def test_status_of_unknown_key(self, engine) -> None:
        """Unknown keys report no age."""
        status = engine.status("nothing")

        assert status.exists is False
        assert status.age is None
        assert status.age_formatted is None

    @pytest.mark.asyncio
    async def test_close_cancels_background_refresh(self, store, clock, make_fetch) -> None:
        """close() cancels refreshes that are still waiting."""
        engine = CacheEngine(store, background_refresh_delay=10, clock=clock)
        fetch = make_fetch("v1", "v2")
        await engine.get("buses", fetch, POLICY)
        clock.advance(55)
        await engine.get("buses", fetch, POLICY)

        await engine.close()

        assert fetch.calls == 1

    @pytest.mark.asyncio
    async def test_close_releases_owned_store(self) -> None:
        """An engine closes the store it created."""
        owned = AsyncMock()
        engine = CacheEngine(owned, owns_store=True)

        await engine.close()

        owned.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_leaves_injected_store_open(self) -> None:
        """An injected store stays open."""
        injected = AsyncMock()
        engine = CacheEngine(injected)

        await engine.close()

        injected.close.assert_not_called()


class TestInitialization:
    """Tests for loading the persisted timestamp index."""

    @pytest.mark.asyncio
    async def test_cancelled_first_caller_does_not_break_engine(
        self, clock, make_fetch
    ) -> None:
        """A caller timing out during the index load leaves the engine usable."""
        engine = CacheEngine(SlowStore(), namespace="test:", clock=clock)
        fetch = make_fetch("v1")

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(engine.get("k", fetch, POLICY), 0.01)

        assert await engine.get("k", fetch, POLICY) == "v1"
        await engine.clear("k")

    @pytest.mark.asyncio
    async def test_index_loaded_once(self, clock, make_fetch) -> None:
        """Concurrent first calls share one index read."""
        store = InMemoryStore()
        store.get = AsyncMock(return_value=None)  # type: ignore[method-assign]
        engine = CacheEngine(store, namespace="test:", clock=clock)

        await asyncio.gather(engine.initialize(), engine.initialize())
        await engine.initialize()

        store.get.assert_awaited_once_with("test:timestamps")

    @pytest.mark.asyncio
    async def test_failed_load_is_retried(self, clock) -> None:
        """An index load that ended in an error is started again."""
        store = InMemoryStore()
        store.get = AsyncMock(  # type: ignore[method-assign]
            side_effect=[asyncio.CancelledError(), None]
        )
        engine = CacheEngine(store, namespace="test:", clock=clock)

        with pytest.raises(asyncio.CancelledError):
            await engine.initialize()
        await engine.initialize()

        assert store.get.await_count == 2


class TestTimestampIndex:
    """Tests for what the persisted index records."""

    @pytest.mark.asyncio
    async def test_memory_only_keys_not_indexed(self, engine, store, make_fetch) -> None:
        """Keys never written to the store stay out of the index."""
        memory_only = CachePolicy(ttl=30, persist=False)
        await engine.get("bus_location_12", make_fetch({"lat": 1}), memory_only)
        await engine.get("all_lines", make_fetch([1]), POLICY)

        index = orjson.loads(await store.get("test:timestamps"))

        assert set(index) == {"all_lines"}
        assert engine.stats().durable_keys == 1
        assert engine.status("bus_location_12").exists

    @pytest.mark.asyncio
    async def test_restart_sees_only_persisted_keys(self, store, clock, make_fetch) -> None:
        """After a restart memory-only keys are unknown."""
        first = CacheEngine(store, namespace="test:", clock=clock)
        memory_only = CachePolicy(ttl=30, persist=False)
        await first.get("bus_location_12", make_fetch({"lat": 1}), memory_only)
        await first.get("all_lines", make_fetch([1]), POLICY)

        restarted = CacheEngine(store, namespace="test:", clock=clock)
        await restarted.initialize()

        assert restarted.stats().durable_keys == 1
        assert not restarted.status("bus_location_12").exists
        assert restarted.status("all_lines").exists

    @pytest.mark.asyncio
    async def test_unserializable_value_not_indexed(self, engine, store, make_fetch) -> None:
        await engine.get("odd", make_fetch({1, 2}), POLICY)
        await engine.get("all_lines", make_fetch([1]), POLICY)

        assert "odd" not in orjson.loads(await store.get("test:timestamps"))
