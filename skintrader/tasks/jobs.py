"""
Periodic trading jobs.
"""

from typing import Any, Dict

from skintrader.config.schedule import PURCHASE_JOB, RELIST_JOB, RESYNC_JOB, build_schedule
from skintrader.config.settings import Settings
from skintrader.services.analyzer.price_analyzer import PriceAnalyzer
from skintrader.services.arbitrage_detector import ArbitrageTrader
from skintrader.services.synchronizer import MarketSynchronizer
from skintrader.tasks.scheduler import JobScheduler
from skintrader.utils.logging import get_logger

logger = get_logger(__name__)


class TradingJobs:
    """The job bodies the scheduler and the CLI run."""

    def __init__(
        self,
        synchronizer: MarketSynchronizer,
        analyzer: PriceAnalyzer,
        trader: ArbitrageTrader,
    ):
        self.synchronizer = synchronizer
        self.analyzer = analyzer
        self.trader = trader

    async def relist_holdings(self) -> Dict[str, Any]:
        return await self.trader.relist_holdings()

    async def purchase_sweep(self) -> Dict[str, Any]:
        """Refresh owned items, then try the best listing of every reliable class."""
        await self.synchronizer.sync_holdings()
        await self.synchronizer.refresh_balance()
        return await self.trader.purchase_best_available()

    async def full_resync(self) -> Dict[str, Any]:
        """Mirror the whole market and recompute statistics from the new trades."""
        summary = await self.synchronizer.sync()
        summary["statistics"] = await self.analyzer.recompute_all()
        return summary

    async def recompute_statistics(self) -> Dict[str, Any]:
        return await self.analyzer.recompute_all()


def register_default_jobs(scheduler: JobScheduler, jobs: TradingJobs, settings: Settings) -> None:
    schedules = build_schedule(settings, scheduler.clock)
    scheduler.add_job(RELIST_JOB, schedules[RELIST_JOB], jobs.relist_holdings)
    scheduler.add_job(PURCHASE_JOB, schedules[PURCHASE_JOB], jobs.purchase_sweep)
    scheduler.add_job(RESYNC_JOB, schedules[RESYNC_JOB], jobs.full_resync)
