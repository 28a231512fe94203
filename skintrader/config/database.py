"""
Database configuration and connection management.

Engines are built from ``Settings.DATABASE_URL``; PostgreSQL (asyncpg) in
production and SQLite (aiosqlite) for local runs and tests.
"""

from typing import Any, Dict, Iterable, Optional

import structlog
from sqlalchemy import event, text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from skintrader.config.settings import Settings
from skintrader.models.base import Base

logger = structlog.get_logger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def engine_options(settings: Settings) -> Dict[str, Any]:
    """Keyword arguments for ``create_async_engine`` on a server database."""
    options: Dict[str, Any] = {
        "echo": False,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
        "connect_args": {
            "command_timeout": 60,
            "server_settings": {"application_name": "skintrader"},
        },
    }
    if settings.environment == "testing":
        # NullPool rejects queue sizing arguments
        options["poolclass"] = NullPool
    else:
        options.update(
            pool_size=settings.DATABASE_POOL_SIZE,
            max_overflow=settings.DATABASE_MAX_OVERFLOW,
            pool_timeout=30,
        )
    return options


def create_engine(settings: Settings) -> AsyncEngine:
    """
    Create the async engine for the configured database.

    Args:
        settings: Application settings

    Returns:
        Configured AsyncEngine
    """
    url = settings.DATABASE_URL
    if url.startswith("sqlite"):
        engine = create_async_engine(url, echo=False)
    else:
        engine = create_async_engine(url, **engine_options(settings))

    if engine.dialect.name == "sqlite":
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Create async session factory bound to an engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def upsert_statement(
    session: AsyncSession,
    model,
    rows: Iterable[Dict[str, Any]],
    index_elements: Iterable[str],
    update_columns: Optional[Iterable[str]] = None,
):
    """
    Build an ``INSERT ... ON CONFLICT DO UPDATE`` for the session's dialect.

    Args:
        session: Session whose bind decides the dialect
        model: Mapped class
        rows: Row dictionaries
        index_elements: Conflict target columns
        update_columns: Columns overwritten on conflict (defaults to all
            non-key columns present in the first row)
    """
    rows = list(rows)
    dialect = session.get_bind().dialect.name
    insert = postgresql.insert if dialect == "postgresql" else sqlite.insert

    stmt = insert(model).values(rows)
    keys = set(index_elements)
    if update_columns is None:
        update_columns = [c for c in rows[0] if c not in keys]

    update_columns = list(update_columns)
    if not update_columns:
        return stmt.on_conflict_do_nothing(index_elements=list(keys))

    return stmt.on_conflict_do_update(
        index_elements=list(index_elements),
        set_={c: getattr(stmt.excluded, c) for c in update_columns},
    )


async def create_database_tables(engine: AsyncEngine) -> None:
    """Create database tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created", dialect=engine.dialect.name)


async def check_database_connection(engine: AsyncEngine) -> bool:
    """
    Check if database connection is working.

    Returns:
        bool: True if connection is working, False otherwise
    """
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connection check successful")
        return True
    except Exception as e:
        logger.error("Database connection check failed", error=str(e))
        return False


async def close_database_connection(engine: AsyncEngine) -> None:
    """Close database connection pool."""
    await engine.dispose()
    logger.info("Database connection pool closed")
