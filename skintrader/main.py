"""
Service entry point.

``skintrader serve`` runs the push-feed reactor and the job scheduler
side by side until interrupted. The other commands run a single job once
and exit, which is handy for cron-less deployments and for debugging.
"""

import argparse
import asyncio
import json
import sys
from typing import Any, Awaitable, Callable, Dict, Optional

from skintrader import __version__
from skintrader.config.database import (
    check_database_connection,
    close_database_connection,
    create_database_tables,
    create_engine,
    create_session_factory,
)
from skintrader.config.settings import Settings, get_settings
from skintrader.integrations.errors import ConfigurationError
from skintrader.integrations.factory import create_adapter
from skintrader.repositories.market_repository import MarketRepository
from skintrader.services.analyzer.price_analyzer import PriceAnalyzer
from skintrader.services.arbitrage_detector import ArbitrageTrader
from skintrader.services.event_reactor import EventReactor
from skintrader.services.rate_limiter import RateLimiter
from skintrader.services.synchronizer import MarketSynchronizer
from skintrader.tasks.jobs import TradingJobs, register_default_jobs
from skintrader.tasks.scheduler import JobScheduler
from skintrader.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)

COMMANDS = {
    "serve": "Run the event reactor and the periodic jobs",
    "sync": "Mirror the market and recompute statistics once",
    "stats": "Recompute price statistics from stored trades",
    "purchase": "Run one purchase sweep",
    "relist": "List or reprice owned items once",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="skintrader", description="Skin marketplace arbitrage trader")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--marketplace", choices=["bitskins", "dmarket"], help="Override MARKETPLACE")
    parser.add_argument("--log-level", help="Override LOG_LEVEL")

    subparsers = parser.add_subparsers(dest="command", required=True)
    for name, help_text in COMMANDS.items():
        subparsers.add_parser(name, help=help_text)
    return parser


def load_settings(args: argparse.Namespace) -> Settings:
    settings = get_settings()
    overrides: Dict[str, Any] = {}
    if args.marketplace:
        overrides["MARKETPLACE"] = args.marketplace
    if args.log_level:
        overrides["LOG_LEVEL"] = args.log_level.upper()
    if overrides:
        settings = Settings(**{**settings.model_dump(), **overrides})
    return settings


async def serve(jobs: TradingJobs, trader: ArbitrageTrader, settings: Settings) -> None:
    scheduler = JobScheduler()
    register_default_jobs(scheduler, jobs, settings)

    tasks = [scheduler.run()]
    reactor: Optional[EventReactor] = None
    if settings.MARKETPLACE == "bitskins":
        reactor = EventReactor(trader, settings.BITSKINS_API_KEY, settings)
        tasks.append(reactor.run())
    else:
        logger.info("No push feed for marketplace, running scheduled jobs only", marketplace=settings.MARKETPLACE)

    try:
        await asyncio.gather(*tasks)
    finally:
        scheduler.stop()
        if reactor is not None:
            await reactor.close()


async def run(settings: Settings, command: str) -> int:
    """
    Wire the components together and execute ``command``.

    Returns:
        Process exit code
    """
    try:
        settings.require_credentials()
    except ConfigurationError as e:
        logger.error("Invalid configuration", error=str(e))
        return 1

    engine = create_engine(settings)
    try:
        if not await check_database_connection(engine):
            logger.error("Database unreachable", url=settings.DATABASE_URL.split("@")[-1])
            return 1
        await create_database_tables(engine)

        repository = MarketRepository(create_session_factory(engine), settings.MARKETPLACE)
        rate_limiter = RateLimiter(settings.rate_capacities())

        async with create_adapter(settings, rate_limiter) as adapter:
            synchronizer = MarketSynchronizer(adapter, repository, settings)
            analyzer = PriceAnalyzer(repository)
            trader = ArbitrageTrader(adapter, repository, synchronizer, settings)
            jobs = TradingJobs(synchronizer, analyzer, trader)

            if command == "serve":
                await serve(jobs, trader, settings)
                return 0

            actions: Dict[str, Callable[[], Awaitable[Any]]] = {
                "sync": jobs.full_resync,
                "stats": jobs.recompute_statistics,
                "purchase": jobs.purchase_sweep,
                "relist": jobs.relist_holdings,
            }
            result = await actions[command]()
            print(json.dumps(result, indent=2, default=str))
            return 0
    finally:
        await close_database_connection(engine)


def main(argv=None) -> None:
    args = build_parser().parse_args(argv)
    settings = load_settings(args)
    configure_logging(
        log_level=settings.LOG_LEVEL,
        log_format=settings.LOG_FORMAT,
        log_file=settings.LOG_FILE_PATH,
        marketplace=settings.MARKETPLACE,
    )
    logger.info("Starting skintrader", version=__version__, command=args.command, marketplace=settings.MARKETPLACE)

    try:
        exit_code = asyncio.run(run(settings, args.command))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
        exit_code = 0
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
