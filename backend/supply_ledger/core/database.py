"""
Database configuration - SQLAlchemy 2.0 Async
Project: Supply Ledger (healthcare supplies ERP)

Defines the engine, the session factory and the ledger store dependency for FastAPI.
"""

import logging
from functools import lru_cache

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from supply_ledger.core.config import settings
from supply_ledger.store import LedgerStore, SqlAlchemyLedgerStore

logger = logging.getLogger(__name__)

# ------------------------------------------------------------
# Async SQLAlchemy 2.0 engine
# ------------------------------------------------------------
engine: AsyncEngine = create_async_engine(
    settings.database_url,
    echo=settings.debug,  # Log SQL in debug mode
    pool_pre_ping=True,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
)


# ------------------------------------------------------------
# Session factory
# ------------------------------------------------------------
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


@lru_cache()
def get_store() -> LedgerStore:
    """
    Dependency injection for FastAPI.

    Every store operation opens its own short-lived session from
    AsyncSessionLocal, so a single store instance is shared by all requests.

    Returns:
        LedgerStore: the SQLAlchemy-backed ledger store

    Example:
        @router.post("/invoices")
        async def create_invoice(store: LedgerStore = Depends(get_store)):
            ...
    """
    return SqlAlchemyLedgerStore(AsyncSessionLocal)


async def init_db() -> None:
    """
    Check that the database is reachable.

    Runs a test query at startup.
    """
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connection established")
    except Exception as e:
        logger.error("Database connection failed: %s", e)
        raise


async def close_db() -> None:
    """
    Dispose of the connection pool.

    Called during application shutdown.
    """
    await engine.dispose()
    logger.info("Database connections closed")
