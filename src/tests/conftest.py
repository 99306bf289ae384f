"""Shared pytest fixtures for test suite."""

import os
from collections.abc import AsyncGenerator
from pathlib import Path

# Set test environment variables BEFORE any package imports
# This ensures tracing and the real package sync are disabled at import time
os.environ["ENVIRONMENT"] = "testing"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["OTEL_ENABLED"] = "false"  # Disable OpenTelemetry to prevent background threads
os.environ["SYNC_ENABLED"] = "false"  # Tests opt in with a fake routine
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from package_grids.core.config import Settings
from package_grids.core.database import enable_sqlite_foreign_keys
from package_grids.models import Base, Package
from package_grids.services import PackageGrids, SyncTrigger


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Get settings configured for testing.

    Returns:
        Settings: Test environment settings
    """
    return Settings(
        environment="testing",
        log_level="WARNING",
        otel_enabled=False,
        sync_enabled=False,
    )


# ===== Database Fixtures =====


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """Create a fresh SQLite database file per test.

    A file rather than ``:memory:`` lets the background sync open its own
    connection and see committed rows.

    Yields:
        AsyncEngine: Test database engine with all tables created
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_foreign_keys(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the per-test database."""
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Database session for one test.

    Catalog operations commit, so isolation comes from the per-test
    database file rather than a rolled-back transaction.

    Yields:
        AsyncSession: Database session for testing
    """
    async with session_factory() as session:
        yield session


# ===== Catalog Fixtures =====


class RecordingSync:
    """Sync routine stand-in that records the packages it was called with."""

    def __init__(self) -> None:
        self.calls: list[Package] = []

    async def __call__(self, package: Package) -> None:
        self.calls.append(package)


@pytest.fixture
def recording_sync() -> RecordingSync:
    return RecordingSync()


@pytest.fixture
def sync_trigger(recording_sync: RecordingSync) -> SyncTrigger:
    """Enabled trigger wired to the recording routine."""
    return SyncTrigger(routine=recording_sync, enabled=True)


@pytest.fixture
def catalog(db_session: AsyncSession, sync_trigger: SyncTrigger) -> PackageGrids:
    """PackageGrids over the test session with a recording sync.

    Example:
        async def test_create(catalog: PackageGrids):
            result = await catalog.create_grid({"name": "Web"})
            assert isinstance(result, Ok)
    """
    return PackageGrids(db_session, sync_trigger=sync_trigger)
