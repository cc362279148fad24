"""Background jobs for transitcache."""

from transitcache.jobs.scheduler import RefreshScheduler, ScheduledJob

__all__ = [
    "RefreshScheduler",
    "ScheduledJob",
]
