"""
In-process job scheduler.

Runs registered coroutines when their crontab comes due. A failing job is
logged and counted; it never stops the loop or the other jobs.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from celery.schedules import crontab

from skintrader.config.schedule import parse_cron, utcnow
from skintrader.utils.logging import clear_correlation_id, get_logger, set_correlation_id

logger = get_logger(__name__)

MAX_SLEEP_SECONDS = 60.0

JobFunc = Callable[[], Awaitable[Any]]


@dataclass
class ScheduledJob:
    """A registered periodic job and its run history."""
    name: str
    schedule: crontab
    func: JobFunc
    last_run_at: datetime
    runs: int = 0
    failures: int = 0
    last_error: Optional[str] = None
    last_result: Any = None


class JobScheduler:
    """Cron-style scheduler running on the asyncio event loop."""

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self.clock = clock
        self.jobs: Dict[str, ScheduledJob] = {}
        self._running = False
        self._wakeup: Optional[asyncio.Event] = None

    def add_job(self, name: str, schedule: Union[str, crontab], func: JobFunc) -> ScheduledJob:
        """
        Register a job.

        Args:
            name: Unique job name
            schedule: crontab or five-field cron expression
            func: Coroutine function to run

        Returns:
            The registered job; its first run is the next matching time
        """
        if name in self.jobs:
            raise ValueError(f"Job already registered: {name}")
        if isinstance(schedule, str):
            schedule = parse_cron(schedule, self.clock)

        job = ScheduledJob(name=name, schedule=schedule, func=func, last_run_at=self.clock())
        self.jobs[name] = job
        logger.info("Job registered", job=name, schedule=str(schedule))
        return job

    async def run_job(self, job: ScheduledJob) -> bool:
        """Run one job with failure isolation; returns True on success."""
        set_correlation_id(f"job:{job.name}:{job.runs + 1}")
        job.last_run_at = self.clock()
        job.runs += 1
        logger.info("Job started", job=job.name)
        try:
            job.last_result = await job.func()
        except Exception as e:
            job.failures += 1
            job.last_error = str(e)
            logger.error("Job failed", job=job.name, error=str(e), exc_info=True)
            return False
        finally:
            clear_correlation_id()

        job.last_error = None
        logger.info("Job completed", job=job.name)
        return True

    async def run_pending(self) -> List[str]:
        """Run every job that is due now, in registration order."""
        ran = []
        for job in list(self.jobs.values()):
            if job.schedule.is_due(job.last_run_at).is_due:
                await self.run_job(job)
                ran.append(job.name)
        return ran

    def seconds_until_next(self) -> float:
        if not self.jobs:
            return MAX_SLEEP_SECONDS
        remaining = min(
            job.schedule.remaining_estimate(job.last_run_at).total_seconds()
            for job in self.jobs.values()
        )
        return max(0.0, min(remaining, MAX_SLEEP_SECONDS))

    async def run(self) -> None:
        """Loop until ``stop`` is called."""
        self._running = True
        self._wakeup = asyncio.Event()
        logger.info("Scheduler started", jobs=list(self.jobs))

        while self._running:
            await self.run_pending()
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=self.seconds_until_next() or 1.0)
            except asyncio.TimeoutError:
                pass

        logger.info("Scheduler stopped")

    def stop(self) -> None:
        self._running = False
        if self._wakeup is not None:
            self._wakeup.set()
