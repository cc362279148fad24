"""Prometheus metrics for transitcache.

Provides metrics collection and exposure:
- Cache metrics (hits, misses, durable hits, background refreshes)
- Upstream fetch metrics (latency, failures)
- Durable store errors
- Memory tier size

All series carry a ``namespace`` label so several engines in one process
stay distinguishable.

Usage:
    from transitcache.observability.metrics import get_metrics

    metrics = get_metrics()
    metrics.cache_hits_total.labels(namespace="transit_cache:").inc()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from prometheus_client import REGISTRY, Counter, Gauge, Histogram
from prometheus_client import generate_latest as prometheus_generate_latest

from transitcache.config import settings

logger = logging.getLogger(__name__)


class NoOpMetric:
    """No-op metric for when metrics are disabled."""

    def labels(self, **kwargs: Any) -> "NoOpMetric":
        """Return self for chaining."""
        return self

    def inc(self, amount: float = 1) -> None:
        """No-op."""
        pass

    def dec(self, amount: float = 1) -> None:
        """No-op."""
        pass

    def set(self, value: float) -> None:
        """No-op."""
        pass

    def observe(self, value: float) -> None:
        """No-op."""
        pass


@dataclass
class MetricsRegistry:
    """Registry for Prometheus metrics."""

    cache_hits_total: Any = field(default_factory=NoOpMetric)
    cache_misses_total: Any = field(default_factory=NoOpMetric)
    cache_durable_hits_total: Any = field(default_factory=NoOpMetric)
    cache_background_refreshes_total: Any = field(default_factory=NoOpMetric)
    cache_memory_entries: Any = field(default_factory=NoOpMetric)
    fetch_duration_seconds: Any = field(default_factory=NoOpMetric)
    fetch_failures_total: Any = field(default_factory=NoOpMetric)
    store_errors_total: Any = field(default_factory=NoOpMetric)

    # Internal state
    _initialized: bool = field(default=False, repr=False)
    _registry: Any = field(default=None, repr=False)

    @property
    def enabled(self) -> bool:
        return self._registry is not None

    def initialize(self) -> None:
        """Initialize Prometheus metrics."""
        if self._initialized:
            return

        if not settings.enable_metrics:
            logger.info("Metrics are disabled")
            self._initialized = True
            return

        self._registry = REGISTRY

        self.cache_hits_total = Counter(
            "transitcache_cache_hits_total",
            "Cache hits served from memory",
            ["namespace"],
        )

        self.cache_misses_total = Counter(
            "transitcache_cache_misses_total",
            "Cache misses requiring a blocking fetch",
            ["namespace"],
        )

        self.cache_durable_hits_total = Counter(
            "transitcache_cache_durable_hits_total",
            "Cache hits served from the durable store",
            ["namespace"],
        )

        self.cache_background_refreshes_total = Counter(
            "transitcache_cache_background_refreshes_total",
            "Background refreshes scheduled",
            ["namespace"],
        )

        self.cache_memory_entries = Gauge(
            "transitcache_cache_memory_entries",
            "Entries held in the memory tier",
            ["namespace"],
        )

        self.fetch_duration_seconds = Histogram(
            "transitcache_fetch_duration_seconds",
            "Upstream fetch latency in seconds",
            ["namespace"],
            buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        self.fetch_failures_total = Counter(
            "transitcache_fetch_failures_total",
            "Upstream fetches that raised",
            ["namespace"],
        )

        self.store_errors_total = Counter(
            "transitcache_store_errors_total",
            "Durable store operations that failed",
            ["namespace", "operation"],
        )

        self._initialized = True
        logger.info("Prometheus metrics initialized")

    def generate_latest(self) -> bytes:
        """Generate Prometheus metrics in exposition format."""
        if self._registry is None:
            return b"# Metrics disabled\n"
        return prometheus_generate_latest(self._registry)


# Global metrics registry
metrics_registry = MetricsRegistry()


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry.

    Initializes metrics on first access.
    """
    if not metrics_registry._initialized:
        metrics_registry.initialize()
    return metrics_registry
