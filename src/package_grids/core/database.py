"""Database connection management with async SQLAlchemy."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from package_grids.core.config import settings
from package_grids.core.logging import get_logger

logger = get_logger(__name__)


class DBErrorMessage:
    """Standardized database error messages."""
    CREATE_ENGINE_NO_URL = "DATABASE_URL is not configured"
    CREATE_ENGINE_MIN_DB_POOL_SIZE = "DATABASE_POOL_SIZE must be at least 1"
    CREATE_ENGINE_NEGATIVE_MAX_OVERFLOW = "DATABASE_MAX_OVERFLOW must be non-negative"
    CREATE_ENGINE_FAILED = "Failed to create database engine"

    SESSION_FAILED = "Database session failed"
    CLOSE_DATABASE_FAILED = "Failed to close database connections"


def enable_sqlite_foreign_keys(async_engine: AsyncEngine) -> None:
    """Turn on foreign key enforcement for every new SQLite connection.

    SQLite ships with it off, which would skip ON DELETE CASCADE for
    memberships and let rows point at missing packages or grids.
    """

    @event.listens_for(async_engine.sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection: Any, connection_record: Any) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def create_engine() -> AsyncEngine:
    """Create AsyncEngine with connection pooling configuration.

    SQLite URLs get no pool sizing, since aiosqlite in-memory databases use
    a static pool that rejects those options.

    Returns:
        AsyncEngine: Configured async SQLAlchemy engine

    Raises:
        ValueError: If database URL is invalid or settings are misconfigured
    """
    try:
        if not settings.database_url:
            raise ValueError(DBErrorMessage.CREATE_ENGINE_NO_URL)

        is_sqlite = settings.database_url.startswith("sqlite")
        engine_kwargs: dict[str, Any] = {"echo": settings.database_echo}

        if not is_sqlite:
            if settings.database_pool_size < 1:
                raise ValueError(DBErrorMessage.CREATE_ENGINE_MIN_DB_POOL_SIZE)

            if settings.database_max_overflow < 0:
                raise ValueError(DBErrorMessage.CREATE_ENGINE_NEGATIVE_MAX_OVERFLOW)

            engine_kwargs.update(
                pool_size=settings.database_pool_size,
                max_overflow=settings.database_max_overflow,
                pool_pre_ping=True,
                pool_recycle=3600,
            )

        logger.info(
            "Creating async database engine",
            url=settings.database_url.split("@")[1] if "@" in settings.database_url else "***",
            pool_size=engine_kwargs.get("pool_size"),
            max_overflow=engine_kwargs.get("max_overflow"),
        )

        async_engine = create_async_engine(settings.database_url, **engine_kwargs)
        if is_sqlite:
            enable_sqlite_foreign_keys(async_engine)
        return async_engine
    except ValueError:
        raise
    except Exception as e:
        logger.error(f"Failed to create database engine, due to configuration error: {e}")
        raise ValueError(DBErrorMessage.CREATE_ENGINE_FAILED) from e


engine: AsyncEngine = create_engine()

async_session_maker: async_sessionmaker[AsyncSession] = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncIterator[AsyncSession]:
    """Provide a session that is rolled back if the block raises.

    Example:
        async with session_scope() as session:
            catalog = PackageGrids(session)
            result = await catalog.create_grid({"name": "Web"})
    """
    factory = session_factory or async_session_maker
    async with factory() as session:
        try:
            yield session
        except Exception as e:
            await session.rollback()
            logger.error("Database session error occurred", error=str(e))
            raise


async def init_models(bind: AsyncEngine | None = None) -> None:
    """Create all tables. Intended for development and tests; use Alembic elsewhere."""
    from package_grids.models import Base

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def check_database_connection() -> bool:
    """Check if database connection is available.

    Returns:
        bool: True if connection successful, False otherwise
    """
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.debug("Database connection check passed")
        return True
    except Exception as e:
        logger.error(f"Database connection check failed with error: {e}")
        return False


async def close_database() -> None:
    """Close all database connections.

    Raises:
        RuntimeError: If graceful shutdown fails
    """
    try:
        logger.info("Closing database connections")
        await engine.dispose()
    except Exception as e:
        logger.error(f"Error closing database connections: {e}")
        raise RuntimeError(DBErrorMessage.CLOSE_DATABASE_FAILED) from e
