"""Interval job scheduler.

Runs recurring coroutine jobs on fixed intervals, independent of whether
anyone is reading the data they refresh:
- One asyncio task per job, started and stopped with the scheduler
- A failing tick is logged and the job keeps its schedule
- Jobs can be paused, resumed or triggered manually

Example:
    scheduler = RefreshScheduler()
    scheduler.add_job("live_buses", service.refresh_live_buses, interval=30)
    scheduler.add_job("all_lines", service.refresh_all_lines, interval=1800)

    await scheduler.start()
    ...
    await scheduler.stop()
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

JobFn = Callable[[], Awaitable[Any]]


@dataclass
class ScheduledJob:
    """A scheduled job definition."""

    name: str
    func: JobFn = field(repr=False)
    interval: float
    enabled: bool = True
    run_immediately: bool = False
    last_run: datetime | None = None
    next_run: datetime | None = None
    runs: int = 0
    failures: int = 0
    last_error: str | None = None


class RefreshScheduler:
    """Interval scheduler for background cache maintenance.

    Each job sleeps for its interval, then runs once; the next sleep starts
    after the run completes, so slow ticks never overlap.
    """

    def __init__(self) -> None:
        self._jobs: dict[str, ScheduledJob] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def add_job(
        self,
        name: str,
        func: JobFn,
        interval: float,
        enabled: bool = True,
        run_immediately: bool = False,
    ) -> ScheduledJob:
        """Add a scheduled job.

        Args:
            name: Unique job name
            func: Coroutine function run on every tick
            interval: Seconds between the end of one run and the next
            enabled: Whether the job runs on its ticks
            run_immediately: Run once right after start instead of waiting

        Returns:
            ScheduledJob instance
        """
        if interval <= 0:
            raise ValueError(f"Job interval must be positive: {interval}")
        if name in self._jobs:
            raise ValueError(f"Job already scheduled: {name}")

        job = ScheduledJob(
            name=name,
            func=func,
            interval=interval,
            enabled=enabled,
            run_immediately=run_immediately,
        )
        self._jobs[name] = job

        if self._running:
            self._spawn(job)

        logger.info(f"Scheduled job added: {name} (every {interval}s)")
        return job

    def remove_job(self, name: str) -> bool:
        """Remove a scheduled job.

        Returns:
            True if removed, False if not found
        """
        job = self._jobs.pop(name, None)
        if job is None:
            return False

        task = self._tasks.pop(name, None)
        if task is not None:
            task.cancel()
        logger.info(f"Scheduled job removed: {name}")
        return True

    def enable_job(self, name: str) -> bool:
        """Enable a scheduled job."""
        if name in self._jobs:
            self._jobs[name].enabled = True
            return True
        return False

    def disable_job(self, name: str) -> bool:
        """Disable a scheduled job."""
        if name in self._jobs:
            self._jobs[name].enabled = False
            return True
        return False

    def get_job(self, name: str) -> ScheduledJob | None:
        return self._jobs.get(name)

    def list_jobs(self) -> list[ScheduledJob]:
        """List all scheduled jobs."""
        return list(self._jobs.values())

    async def start(self) -> None:
        """Start a task for every job."""
        if self._running:
            return

        self._running = True
        for job in self._jobs.values():
            self._spawn(job)
        logger.info(f"Scheduler started with {len(self._jobs)} jobs")

    async def stop(self) -> None:
        """Cancel every job task and wait for them to finish."""
        if not self._running:
            return

        self._running = False
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Scheduler stopped")

    async def run_now(self, name: str) -> bool:
        """Manually trigger a scheduled job immediately.

        Returns:
            True if the job ran without raising, False if it failed or
            was not found
        """
        job = self._jobs.get(name)
        if job is None:
            return False

        logger.info(f"Manually triggered scheduled job: {name}")
        return await self._run_job(job)

    def _spawn(self, job: ScheduledJob) -> None:
        self._tasks[job.name] = asyncio.ensure_future(self._job_loop(job))

    async def _job_loop(self, job: ScheduledJob) -> None:
        """Tick a job until cancelled."""
        if job.run_immediately and job.enabled:
            await self._run_job(job)

        while self._running:
            job.next_run = datetime.now(UTC) + timedelta(seconds=job.interval)
            await asyncio.sleep(job.interval)
            if job.enabled:
                await self._run_job(job)

    async def _run_job(self, job: ScheduledJob) -> bool:
        """Run one tick, keeping failures inside the job."""
        job.last_run = datetime.now(UTC)
        job.runs += 1
        try:
            await job.func()
        except Exception as e:
            job.failures += 1
            job.last_error = str(e)
            logger.warning(f"Scheduled job {job.name} failed: {e}")
            return False

        job.last_error = None
        return True
