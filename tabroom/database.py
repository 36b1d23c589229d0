"""
tabroom/database.py
Async engine and session factory for the entity store
"""
import logging

from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker, AsyncEngine

from tabroom.config.settings import settings
from tabroom.orm.base import Base
import tabroom.orm  # ensures all models are registered

logger = logging.getLogger(__name__)


def build_engine(database_url: str = None, echo: bool = None, **engine_kwargs) -> AsyncEngine:
    """
    Create an async engine.

    SQLite only enforces foreign keys when asked to, so every new
    connection turns the pragma on.
    """
    url = database_url or settings.DATABASE_URL
    if not url:
        raise ValueError("DATABASE_URL environment variable is not set")

    engine = create_async_engine(
        url,
        echo=settings.SQL_ECHO if echo is None else echo,
        future=True,
        **engine_kwargs
    )

    if "sqlite" in url.lower():
        @event.listens_for(engine.sync_engine, "connect")
        def _enable_sqlite_fks(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def build_sessionmaker(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = build_engine()
AsyncSessionLocal = build_sessionmaker(engine)


async def get_db():
    """Dependency for getting async database session"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db(bind: AsyncEngine = None):
    """Create all tables. Idempotent."""
    target = bind or engine
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")


async def close_db():
    """Dispose the connection pool."""
    await engine.dispose()
    logger.info("Database connections closed")
