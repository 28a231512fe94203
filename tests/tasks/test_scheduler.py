"""
Tests for the in-process cron scheduler.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from skintrader.tasks.scheduler import MAX_SLEEP_SECONDS, JobScheduler


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class TestJobScheduler:
    """Test cases for JobScheduler."""

    def setup_method(self):
        self.clock = FakeClock(datetime(2024, 5, 1, 10, 30, tzinfo=timezone.utc))
        self.scheduler = JobScheduler(clock=self.clock)

    def test_duplicate_job_name(self):
        self.scheduler.add_job("relist-holdings", "0 * * * *", AsyncMock())

        with pytest.raises(ValueError):
            self.scheduler.add_job("relist-holdings", "0 * * * *", AsyncMock())

    def test_invalid_cron_expression(self):
        with pytest.raises(ValueError):
            self.scheduler.add_job("broken", "0 * *", AsyncMock())

    @pytest.mark.asyncio
    async def test_job_runs_when_due(self):
        func = AsyncMock(return_value={"listed": 1})
        job = self.scheduler.add_job("relist-holdings", "0 * * * *", func)

        assert await self.scheduler.run_pending() == []

        self.clock.advance(minutes=30, seconds=1)
        assert await self.scheduler.run_pending() == ["relist-holdings"]
        assert job.runs == 1
        assert job.last_result == {"listed": 1}

        # Not due again within the same hour
        self.clock.advance(minutes=10)
        assert await self.scheduler.run_pending() == []
        func.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failing_job_does_not_affect_others(self):
        failing = AsyncMock(side_effect=RuntimeError("marketplace down"))
        healthy = AsyncMock(return_value={})
        self.scheduler.add_job("purchase-sweep", "0 * * * *", failing)
        self.scheduler.add_job("relist-holdings", "0 * * * *", healthy)

        self.clock.advance(hours=1)
        ran = await self.scheduler.run_pending()

        assert ran == ["purchase-sweep", "relist-holdings"]
        healthy.assert_awaited_once()
        job = self.scheduler.jobs["purchase-sweep"]
        assert job.failures == 1
        assert job.last_error == "marketplace down"

    @pytest.mark.asyncio
    async def test_run_job_reports_success(self):
        job = self.scheduler.add_job("full-resync", "0 0 */10 * *", AsyncMock(return_value={}))

        assert await self.scheduler.run_job(job) is True
        assert job.last_error is None

    def test_seconds_until_next_is_capped(self):
        assert self.scheduler.seconds_until_next() == MAX_SLEEP_SECONDS

        self.scheduler.add_job("full-resync", "0 0 */10 * *", AsyncMock())
        assert 0 <= self.scheduler.seconds_until_next() <= MAX_SLEEP_SECONDS

    @pytest.mark.asyncio
    async def test_run_until_stopped(self):
        async def stop_scheduler():
            self.scheduler.stop()

        self.scheduler.add_job("relist-holdings", "0 * * * *", stop_scheduler)
        self.clock.advance(hours=1)

        await self.scheduler.run()

        assert self.scheduler.jobs["relist-holdings"].runs == 1
