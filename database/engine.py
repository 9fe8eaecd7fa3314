"""
Database Persistence Layer - Core Engine.

============================================================
ENGINE-OWNED PERSISTENCE
============================================================

Async SQLAlchemy engine and session handling for the tables
this engine owns: clusters, cases, trust scores, abuse
signals, enforcement flags, action records, notices, alerts
and job leases.

Requirements:
- SQLAlchemy 2.0 async ORM (asyncpg in production)
- Explicit transaction boundaries per unit of work
- Hard failures on persistence errors (PersistenceError)

============================================================
"""

import os
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from dotenv import load_dotenv

from core.exceptions import DataSourceUnavailableError, PersistenceError

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

# =============================================================
# DECLARATIVE BASE
# =============================================================

Base = declarative_base()

# =============================================================
# DATABASE ENGINE
# =============================================================

DEFAULT_DATABASE_URL = "postgresql+asyncpg://fraud_engine@localhost:5432/fraud_engine"


def get_database_url() -> str:
    """Get async database URL from environment."""
    url = os.getenv("DATABASE_URL")
    if url and url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
    
    if not url:
        url = DEFAULT_DATABASE_URL
        logger.warning(f"DATABASE_URL not set, using default: {url.split('@')[-1]}")
    
    return url


def create_database_engine(
    database_url: Optional[str] = None,
    echo: bool = False,
    **engine_kwargs,
) -> AsyncEngine:
    """
    Create the async SQLAlchemy engine.
    
    Args:
        database_url: Overrides DATABASE_URL
        echo: Log SQL statements
        **engine_kwargs: Passed to create_async_engine (pool sizing)
        
    Returns:
        AsyncEngine
    """
    url = database_url or get_database_url()
    logger.info(f"Creating database engine for: {url.split('@')[-1]}")
    return create_async_engine(url, echo=echo, future=True, **engine_kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind=engine,
        autoflush=False,
        expire_on_commit=False,
    )


# =============================================================
# SESSION MANAGEMENT
# =============================================================


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker,
    operation: str = "unit_of_work",
) -> AsyncIterator[AsyncSession]:
    """
    Async context manager for explicit transaction boundaries.
    
    Commits only if no exception occurs.
    Rolls back on ANY exception; SQLAlchemy errors are re-raised
    as PersistenceError.
    
    Usage:
        async with session_scope(factory, "save_clusters") as session:
            repo = FarmingRepository(session)
            await repo.upsert_cluster(cluster)
    """
    session = session_factory()
    try:
        yield session
        await session.commit()
        logger.debug(f"Transaction committed: {operation}")
    except SQLAlchemyError as e:
        logger.error(f"Transaction failed, rolling back ({operation}): {e}")
        await session.rollback()
        raise PersistenceError(
            f"Transaction failed: {e}",
            operation=operation,
            cause=e,
        ) from e
    except BaseException:
        await session.rollback()
        raise
    finally:
        await session.close()


# =============================================================
# DATABASE INITIALIZATION
# =============================================================


def import_all_models() -> None:
    """Register every engine-owned table with Base.metadata."""
    from farming_detection import models as _farming  # noqa: F401
    from trust_scoring import models as _trust  # noqa: F401
    from abuse_detection import models as _abuse  # noqa: F401
    from remediation import models as _remediation  # noqa: F401
    from monitoring import models as _monitoring  # noqa: F401
    from orchestrator import models as _orchestrator  # noqa: F401


async def verify_database_connection(engine: AsyncEngine) -> bool:
    """
    Verify database connection is working.
    
    Raises:
        DataSourceUnavailableError if connection fails
    """
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connection verified successfully")
        return True
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Database connection failed: {e}")
        raise DataSourceUnavailableError(
            f"Cannot connect to database: {e}",
            domain="database",
            operation="connect",
            cause=e,
        ) from e


async def create_all_tables(engine: AsyncEngine) -> None:
    """
    Create all engine-owned tables.
    
    Raises:
        PersistenceError if table creation fails
    """
    import_all_models()
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info(f"Database tables ready: {sorted(Base.metadata.tables)}")
    except SQLAlchemyError as e:
        logger.error(f"Failed to create database tables: {e}")
        raise PersistenceError(
            f"Table creation failed: {e}",
            operation="create_all",
            cause=e,
        ) from e


async def initialize_database(engine: AsyncEngine) -> None:
    """
    Full database initialization sequence.
    
    1. Verify connection
    2. Create tables if not exist
    """
    logger.info("=" * 60)
    logger.info("INITIALIZING FRAUD ENGINE PERSISTENCE")
    logger.info("=" * 60)
    
    await verify_database_connection(engine)
    await create_all_tables(engine)


__all__ = [
    "Base",
    "DEFAULT_DATABASE_URL",
    "get_database_url",
    "create_database_engine",
    "create_session_factory",
    "session_scope",
    "import_all_models",
    "verify_database_connection",
    "create_all_tables",
    "initialize_database",
]
