"""Cached facade over the upstream transit API.

Every read goes through the cache engine with the dataset's key and policy,
and never raises: a failure with nothing cached resolves to an empty list
(collections) or None (single objects) so callers can render an empty state.

Two maintenance jobs keep the hottest datasets young even with no readers:
live bus positions every 30 seconds and the line catalog every 30 minutes.

Example:
    async with await CachedTransitService.create(source) as service:
        await service.warmup_cache()
        buses = await service.get_live_buses()
"""

from __future__ import annotations

import asyncio
import logging
import time
from types import TracebackType
from typing import Any

from transitcache.cache.engine import CacheEngine
from transitcache.cache.models import CacheOutcome, CacheResult, FetchFn, PreloadItem
from transitcache.cache.subscriptions import Subscriber, Unsubscribe
from transitcache.config import Settings, settings as default_settings
from transitcache.errors import UnknownDatasetError
from transitcache.jobs.scheduler import RefreshScheduler
from transitcache.observability.logging import LogContext
from transitcache.transit.datasets import Dataset, get_dataset
from transitcache.transit.source import TransitSource

logger = logging.getLogger(__name__)

LIVE_BUSES_JOB = "refresh_live_buses"
LINE_CATALOG_JOB = "refresh_all_lines"


class CachedTransitService:
    """Transit API reads backed by the cache engine.

    Args:
        source: Upstream transit API client
        engine: Cache engine (built from settings if None)
        settings: Settings for the engine and maintenance intervals
    """

    def __init__(
        self,
        source: TransitSource,
        engine: CacheEngine | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or default_settings
        self.source = source
        self.engine = engine or CacheEngine.from_settings(self.settings)
        self.scheduler = RefreshScheduler()
        self.scheduler.add_job(
            LIVE_BUSES_JOB,
            self.refresh_live_buses,
            interval=self.settings.live_buses_interval,
        )
        self.scheduler.add_job(
            LINE_CATALOG_JOB,
            self.refresh_all_lines,
            interval=self.settings.line_catalog_interval,
        )

    @classmethod
    async def create(
        cls,
        source: TransitSource,
        engine: CacheEngine | None = None,
        settings: Settings | None = None,
        start_maintenance: bool = True,
    ) -> "CachedTransitService":
        """Build the service and start its maintenance jobs."""
        service = cls(source, engine=engine, settings=settings)
        await service.engine.initialize()
        if start_maintenance:
            await service.scheduler.start()
        return service

    async def dispose(self) -> None:
        """Stop maintenance jobs and close the engine."""
        await self.scheduler.stop()
        await self.engine.close()

    async def __aenter__(self) -> "CachedTransitService":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.dispose()

    # -------------------------------------------------------------------------
    # Generic read helpers
    # -------------------------------------------------------------------------

    async def _read(
        self,
        dataset: Dataset,
        fetch: FetchFn,
        default: Any,
        identifier: str | int | None = None,
    ) -> Any:
        """Resolve a dataset through the engine, mapping failures to ``default``."""
        spec = get_dataset(dataset)
        key = spec.key_for(identifier)
        start = time.perf_counter()

        with LogContext(dataset=dataset.value, cache_key=key):
            try:
                result = await self.engine.lookup(key, fetch, spec.policy)
            except Exception as e:
                logger.error(f"{dataset.value} lookup failed: {e}")
                return default

            elapsed_ms = (time.perf_counter() - start) * 1000
            if result.outcome is CacheOutcome.EMPTY:
                logger.error(f"{dataset.value} unavailable: {result.error}")
            else:
                logger.debug(
                    f"{dataset.value} resolved as {result.outcome.value} in {elapsed_ms:.1f}ms"
                )
            return result.value_or(default)

    async def _refresh(
        self,
        dataset: Dataset,
        fetch: FetchFn,
        default: Any,
        identifier: str | int | None = None,
    ) -> Any:
        spec = get_dataset(dataset)
        key = spec.key_for(identifier)

        with LogContext(dataset=dataset.value, cache_key=key):
            logger.info(f"Force refreshing {key}")
            try:
                result = await self.engine.refresh_result(key, fetch, spec.policy)
            except Exception as e:
                logger.error(f"{dataset.value} refresh failed: {e}")
                return default

            if result.outcome is not CacheOutcome.FETCHED:
                logger.warning(f"{dataset.value} refresh failed: {result.error}")
            return result.value_or(default)

    # -------------------------------------------------------------------------
    # Fixed-key datasets
    # -------------------------------------------------------------------------

    async def get_live_buses(self) -> list[Any]:
        """Live bus positions."""
        return await self._read(Dataset.LIVE_BUSES, self.source.get_live_buses, [])

    async def get_all_lines(self) -> list[Any]:
        """The line catalog."""
        return await self._read(Dataset.ALL_LINES, self.source.get_all_lines, [])

    async def get_bus_lines(self) -> list[Any]:
        """The alternate bus line listing."""
        return await self._read(Dataset.BUS_LINES, self.source.get_bus_lines, [])

    async def get_stations(self) -> list[Any]:
        """All stations."""
        return await self._read(Dataset.STATIONS, self.source.get_stations, [])

    # -------------------------------------------------------------------------
    # Per-line datasets
    # -------------------------------------------------------------------------

    async def get_line_details(self, line_id: str) -> Any:
        """Details of one line, or None."""
        if not line_id:
            return None
        return await self._read(
            Dataset.LINE_DETAILS,
            lambda: self.source.get_line_details(line_id),
            None,
            identifier=line_id,
        )

    async def get_live_schedule(self, line_id: str) -> list[Any]:
        if not line_id:
            return []
        return await self._read(
            Dataset.LIVE_SCHEDULE,
            lambda: self.source.get_live_schedule(line_id),
            [],
            identifier=line_id,
        )

    async def get_bus_schedule(self, line_number: str) -> list[Any]:
        """Upcoming departures of one line."""
        if not line_number:
            return []
        return await self._read(
            Dataset.BUS_SCHEDULE,
            lambda: self.source.get_bus_schedule(line_number),
            [],
            identifier=line_number,
        )

    async def get_bus_schedule_by_rides(self, line_number: str) -> list[Any]:
        """Departures of one line grouped into rides."""
        if not line_number:
            return []
        return await self._read(
            Dataset.BUS_SCHEDULE_RIDES,
            lambda: self.source.get_bus_schedule_by_rides(line_number),
            [],
            identifier=line_number,
        )

    async def get_bus_location(self, line_number: str) -> Any:
        if not line_number:
            return None
        return await self._read(
            Dataset.BUS_LOCATION,
            lambda: self.source.get_bus_location(line_number),
            None,
            identifier=line_number,
        )

    # -------------------------------------------------------------------------
    # Force refresh
    # -------------------------------------------------------------------------

    async def refresh_live_buses(self) -> list[Any]:
        return await self._refresh(Dataset.LIVE_BUSES, self.source.get_live_buses, [])

    async def refresh_all_lines(self) -> list[Any]:
        return await self._refresh(Dataset.ALL_LINES, self.source.get_all_lines, [])

    async def refresh_line_details(self, line_id: str) -> Any:
        if not line_id:
            return None
        return await self._refresh(
            Dataset.LINE_DETAILS,
            lambda: self.source.get_line_details(line_id),
            None,
            identifier=line_id,
        )

    # -------------------------------------------------------------------------
    # Warmup
    # -------------------------------------------------------------------------

    async def warmup_cache(self) -> None:
        """Load the datasets every screen needs, tolerating partial failure."""
        logger.info("Starting cache warmup")
        start = time.perf_counter()

        results = await asyncio.gather(
            self.get_live_buses(),
            self.get_all_lines(),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                logger.error(f"Cache warmup step failed: {result}")

        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(f"Cache warmup completed in {elapsed_ms:.0f}ms")

    async def preload_essential_data(self) -> list[CacheResult[Any]]:
        """Warm live buses and the line catalog through the engine preload."""
        live = get_dataset(Dataset.LIVE_BUSES)
        lines = get_dataset(Dataset.ALL_LINES)
        return await self.engine.preload(
            [
                PreloadItem(live.key_for(), self.source.get_live_buses, live.policy),
                PreloadItem(lines.key_for(), self.source.get_all_lines, lines.policy),
            ]
        )

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def subscribe_live_buses(self, callback: Subscriber) -> Unsubscribe:
        return self.engine.subscribe(get_dataset(Dataset.LIVE_BUSES).key_for(), callback)

    def subscribe_all_lines(self, callback: Subscriber) -> Unsubscribe:
        return self.engine.subscribe(get_dataset(Dataset.ALL_LINES).key_for(), callback)

    def subscribe_line_details(self, line_id: str, callback: Subscriber) -> Unsubscribe:
        key = get_dataset(Dataset.LINE_DETAILS).key_for(line_id)
        return self.engine.subscribe(key, callback)

    # -------------------------------------------------------------------------
    # Invalidation and introspection
    # -------------------------------------------------------------------------

    async def clear_cache(self, dataset: str | Dataset | None = None) -> None:
        """Clear one fixed-key dataset, or the whole cache.

        Per-line datasets and unknown names clear everything.
        """
        spec = None
        if dataset is not None:
            try:
                spec = get_dataset(dataset)
            except UnknownDatasetError:
                logger.warning(f"Unknown dataset {dataset}, clearing all")

        if spec is not None and spec.fixed_key is not None:
            await self.engine.clear(spec.fixed_key)
            logger.info(f"Cleared {spec.dataset.value} cache")
        else:
            await self.engine.clear()
            logger.info("Cleared all cache")

    def get_cache_stats(self) -> dict[str, Any]:
        return self.engine.stats().to_dict()

    def get_cache_status(self) -> dict[str, Any]:
        """Age and location of the hot datasets plus engine counters."""
        return {
            Dataset.LIVE_BUSES.value: self.engine.status(
                get_dataset(Dataset.LIVE_BUSES).key_for()
            ).to_dict(),
            Dataset.ALL_LINES.value: self.engine.status(
                get_dataset(Dataset.ALL_LINES).key_for()
            ).to_dict(),
            "cache_stats": self.get_cache_stats(),
        }

    def is_data_ready(self, dataset: str | Dataset) -> bool:
        """True if a fixed-key dataset is in memory and younger than its TTL."""
        try:
            spec = get_dataset(dataset)
        except UnknownDatasetError:
            return False
        if spec.fixed_key is None:
            return False

        status = self.engine.status(spec.fixed_key)
        return (
            status.exists
            and status.in_memory
            and status.age is not None
            and status.age < spec.policy.ttl
        )

    def get_data_readiness(self) -> dict[str, bool]:
        return {
            Dataset.LIVE_BUSES.value: self.is_data_ready(Dataset.LIVE_BUSES),
            Dataset.ALL_LINES.value: self.is_data_ready(Dataset.ALL_LINES),
            "cache_ready": self.engine.memory_size > 0,
        }
