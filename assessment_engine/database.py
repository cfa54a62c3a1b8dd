"""
assessment_engine/database.py
Database configuration, session dependency and bounded retry helper
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Sequence

from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker, AsyncEngine

# Import Base from orm.base to avoid circular imports
from assessment_engine.orm.base import Base
import assessment_engine.orm  # ensures all models are registered
from assessment_engine.config import settings

logger = logging.getLogger(__name__)

DATABASE_URL = settings.DATABASE_URL

if not DATABASE_URL:
    raise ValueError("DATABASE_URL environment variable is not set")


def build_engine(database_url: str) -> AsyncEngine:
    """
    Create the async engine with pool settings suited to the dialect.

    SQLite in-memory databases use a static pool and take no pool sizing.
    """
    if "sqlite" in database_url.lower():
        if ":memory:" in database_url:
            return create_async_engine(database_url, echo=False, future=True)
        # SQLite: busy timeout lets concurrent writers queue instead of failing
        return create_async_engine(
            database_url,
            echo=False,
            future=True,
            pool_pre_ping=True,
            pool_size=10,
            max_overflow=20,
            pool_timeout=30,
            connect_args={
                "timeout": 30.0,
            }
        )

    # PostgreSQL/MySQL: Use standard pool with larger size
    return create_async_engine(
        database_url,
        echo=False,
        future=True,
        pool_pre_ping=True,
        pool_size=20,
        max_overflow=30,
        pool_timeout=30,
        pool_recycle=3600,
    )


def build_sessionmaker(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = build_engine(DATABASE_URL)
AsyncSessionLocal = build_sessionmaker(engine)


async def get_db():
    """Dependency for getting async database session"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db(bind: Optional[AsyncEngine] = None):
    """Create any missing tables."""
    bind = bind or engine
    logger.info("Initializing database...")

    try:
        logger.info(f"Database dialect: {bind.url.get_backend_name()}")
        async with bind.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database initialization complete")
    except Exception as e:
        logger.error(f"Database initialization failed: {str(e)}")
        raise


async def close_db():
    """Close database connection"""
    await engine.dispose()
    logger.info("Database connection closed")


async def with_retry(
    operation: Callable[[], Awaitable[Any]],
    db: Optional[AsyncSession] = None,
    max_retries: int = 3,
    backoff_ms: Sequence[int] = (50, 150, 300)
) -> Any:
    """
    Execute an idempotent operation with retry on OperationalError.

    Only reads and Submit go through here. The session is rolled back
    before each new attempt.
    """
    for attempt in range(max_retries):
        try:
            return await operation()
        except OperationalError as e:
            if db is not None:
                await db.rollback()
            if attempt >= max_retries - 1:
                raise
            delay = backoff_ms[min(attempt, len(backoff_ms) - 1)] / 1000
            logger.warning(f"Retry {attempt + 1}/{max_retries} after storage error: {e}. Waiting {delay}s")
            await asyncio.sleep(delay)
