"""
Periodic job schedules.

Schedules are celery ``crontab`` objects evaluated in-process by the
asyncio scheduler; no broker or worker is involved.
"""

from datetime import datetime, timezone
from typing import Dict

from celery.schedules import crontab

from skintrader.config.settings import Settings

RELIST_JOB = "relist-holdings"
PURCHASE_JOB = "purchase-sweep"
RESYNC_JOB = "full-resync"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_cron(expression: str, nowfun=utcnow) -> crontab:
    """
    Build a crontab from a five-field cron expression.

    Args:
        expression: "minute hour day_of_month month_of_year day_of_week"
        nowfun: Clock used when evaluating the schedule

    Raises:
        ValueError: If the expression does not have five fields
    """
    fields = expression.split()
    if len(fields) != 5:
        raise ValueError(f"Cron expression needs 5 fields, got {len(fields)}: {expression!r}")

    minute, hour, day_of_month, month_of_year, day_of_week = fields
    return crontab(
        minute=minute,
        hour=hour,
        day_of_month=day_of_month,
        month_of_year=month_of_year,
        day_of_week=day_of_week,
        nowfun=nowfun,
    )


def build_schedule(settings: Settings, nowfun=utcnow) -> Dict[str, crontab]:
    """Schedules for the default jobs, all in UTC."""
    return {
        RELIST_JOB: parse_cron(settings.RELIST_SCHEDULE, nowfun),        # hourly
        PURCHASE_JOB: parse_cron(settings.PURCHASE_SCHEDULE, nowfun),    # daily
        RESYNC_JOB: parse_cron(settings.RESYNC_SCHEDULE, nowfun),        # every 10 days
    }
