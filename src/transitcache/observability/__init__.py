"""Observability module for transitcache.

Provides metrics and structured logging:
- Prometheus counters for cache hits, misses and refreshes
- JSON or console logging with cache key context
"""

from transitcache.observability.logging import (
    LogContext,
    cache_key_var,
    configure_logging,
    dataset_var,
    get_logger,
)
from transitcache.observability.metrics import (
    MetricsRegistry,
    NoOpMetric,
    get_metrics,
    metrics_registry,
)

__all__ = [
    # Logging
    "configure_logging",
    "get_logger",
    "LogContext",
    "cache_key_var",
    "dataset_var",
    # Metrics
    "MetricsRegistry",
    "NoOpMetric",
    "metrics_registry",
    "get_metrics",
]
