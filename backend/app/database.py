"""
Database configuration and session management.
Uses SQLAlchemy async engine (asyncpg in production, aiosqlite for local dev and tests).
"""
import logging

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker

from app.config import settings
from app.models.base import Base

logger = logging.getLogger(__name__)


def enable_sqlite_immediate_transactions(async_engine: AsyncEngine) -> None:
    """
    Make every SQLite transaction start with BEGIN IMMEDIATE.

    The quota ledger relies on its first write taking the database write
    lock; with pysqlite's deferred BEGIN a second writer can fail with
    "database is locked" instead of waiting.
    """
    @event.listens_for(async_engine.sync_engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(async_engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine_for_url(url: str) -> AsyncEngine:
    """Create an async engine with pool options suited to the backend."""
    if url.startswith("sqlite"):
        sqlite_engine = create_async_engine(url, echo=False, future=True)
        enable_sqlite_immediate_transactions(sqlite_engine)
        return sqlite_engine

    return create_async_engine(
        url,
        echo=False,  # Disable SQLAlchemy query logging
        future=True,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


# Create async engine
engine = create_engine_for_url(settings.database_url)

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncSession:
    """
    Dependency for FastAPI routes to get database session.
    Usage: db: AsyncSession = Depends(get_db)
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db():
    """
    Initialize database: create tables.
    Called on application startup.
    Users are created automatically via Firebase authentication.
    """
    from app.models.user import User  # noqa: F401
    from app.models.generation_event import GenerationEvent  # noqa: F401
    from app.models.quota_window_lock import QuotaWindowLock  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured")
