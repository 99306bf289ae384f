from sqlalchemy.ext.asyncio import AsyncSession

from package_grids.core.logging import get_logger
from package_grids.models.grid import Grid
from package_grids.models.package import Package
from package_grids.models.package_in_grid import PackageInGrid
from package_grids.repositories.base import BaseRepository

logger = get_logger(__name__)


class PackageInGridRepository:
    """Repository for package-in-grid memberships.

    Memberships have no surrogate id. Lookups and deletes go through the
    ``(package_id, grid_id)`` pair.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._base_repo = BaseRepository(session, PackageInGrid)
        self._packages = BaseRepository(session, Package)
        self._grids = BaseRepository(session, Grid)
        self._logger = get_logger(f"{__name__}.PackageInGridRepository")

    @property
    def base(self) -> BaseRepository[PackageInGrid]:
        return self._base_repo

    async def insert(self, membership: PackageInGrid) -> PackageInGrid:
        return await self._base_repo.insert(membership)

    async def exists(self, package_id: int, grid_id: int) -> bool:
        return await self._base_repo.exists(
            PackageInGrid.package_id == package_id,
            PackageInGrid.grid_id == grid_id,
        )

    async def package_exists(self, package_id: int) -> bool:
        return await self._packages.exists(Package.id == package_id)

    async def grid_exists(self, grid_id: int) -> bool:
        return await self._grids.exists(Grid.id == grid_id)

    async def delete_pair(self, package_id: int, grid_id: int) -> int:
        """Delete the membership for exactly this pair.

        Returns:
            Number of rows deleted (0 or 1 with the composite key in place)
        """
        deleted = await self._base_repo.delete_where(
            PackageInGrid.package_id == package_id,
            PackageInGrid.grid_id == grid_id,
        )
        self._logger.debug(
            "Deleted package-in-grid membership",
            package_id=package_id,
            grid_id=grid_id,
            deleted=deleted
        )
        return deleted

    async def commit(self) -> None:
        await self._base_repo.commit()

    async def rollback(self) -> None:
        await self._base_repo.rollback()
