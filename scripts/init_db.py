#!/usr/bin/env python3
"""
Database Initialization Script

Creates the market mirror schema, stamps it for Alembic and verifies
that every table is reachable.
"""

import asyncio
import subprocess
import sys
from pathlib import Path

from sqlalchemy import inspect

from skintrader.config.database import (
    check_database_connection,
    close_database_connection,
    create_database_tables,
    create_engine,
)
from skintrader.config.settings import get_settings
from skintrader.models import Base
from skintrader.utils.logging import configure_logging, get_logger

project_root = Path(__file__).parent.parent
logger = get_logger(__name__)


def stamp_alembic_head() -> None:
    """Mark the freshly created schema as current for Alembic."""
    result = subprocess.run(
        ["alembic", "stamp", "head"],
        cwd=project_root,
        capture_output=True,
        text=True,
    )
    if result.returncode == 0:
        logger.info("Alembic stamped at head")
    else:
        logger.warning("Could not stamp Alembic revision", stderr=result.stderr.strip())


async def verify_tables(engine) -> bool:
    """Check every mapped table exists."""
    async with engine.connect() as conn:
        existing = await conn.run_sync(lambda sync_conn: set(inspect(sync_conn).get_table_names()))

    missing = sorted(set(Base.metadata.tables) - existing)
    for table in sorted(Base.metadata.tables):
        if table in missing:
            logger.error("Table missing", table=table)
        else:
            logger.info("Table exists", table=table)
    return not missing


async def main() -> int:
    settings = get_settings()
    configure_logging(log_level=settings.LOG_LEVEL, log_format="console", marketplace=settings.MARKETPLACE)
    logger.info("Starting database initialization")

    engine = create_engine(settings)
    try:
        if not await check_database_connection(engine):
            return 1
        await create_database_tables(engine)
        stamp_alembic_head()
        if not await verify_tables(engine):
            return 1
        logger.info("Database initialization completed")
        return 0
    finally:
        await close_database_connection(engine)


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
