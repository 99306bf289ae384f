from typing import Any, Optional

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from package_grids.core.logging import get_logger
from package_grids.models.package import Package
from package_grids.repositories.base import BaseRepository

logger = get_logger(__name__)

# Columns written by the package data sync, never by catalog callers.
SYNC_FIELDS = frozenset({
    "description",
    "repository_url",
    "homepage_url",
    "latest_version",
    "downloads",
    "synced_at",
})


class PackageRepository:
    """Repository for Package entities using composition pattern."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._base_repo = BaseRepository(session, Package)
        self._logger = get_logger(f"{__name__}.PackageRepository")

    @property
    def base(self) -> BaseRepository[Package]:
        return self._base_repo

    async def insert(self, package: Package) -> Package:
        return await self._base_repo.insert(package)

    async def save(self, package: Package) -> Package:
        return await self._base_repo.save(package)

    async def get(self, package_id: int) -> Optional[Package]:
        return await self._base_repo.get(package_id)

    async def get_or_404(self, package_id: int) -> Package:
        """Get package by id or raise NotFoundError."""
        return await self._base_repo.get_or_404(package_id)

    async def delete(self, package_id: int) -> bool:
        return await self._base_repo.delete(package_id)

    async def list(self) -> list[Package]:
        return await self._base_repo.list()

    async def name_taken(self, name: str, exclude_id: int | None = None) -> bool:
        """Check whether another package already uses ``name``."""
        criteria = [Package.name == name]
        if exclude_id is not None:
            criteria.append(Package.id != exclude_id)
        return await self._base_repo.exists(*criteria)

    async def store_sync_data(self, package_id: int, **fields: Any) -> Optional[Package]:
        """Write sync-owned fields for a package.

        Raises:
            ValueError: If a field outside SYNC_FIELDS is given
        """
        unknown = set(fields) - SYNC_FIELDS
        if unknown:
            raise ValueError(f"Not sync-owned fields: {', '.join(sorted(unknown))}")

        self._logger.debug(
            "Storing synced package data",
            package_id=package_id,
            fields=sorted(fields)
        )
        return await self._base_repo.update(package_id, **fields)

    async def commit(self) -> None:
        await self._base_repo.commit()

    async def rollback(self) -> None:
        await self._base_repo.rollback()

    @staticmethod
    def query() -> Select[tuple[Package]]:
        """Base SELECT used for filtered, paginated listings."""
        return select(Package)
