from typing import Optional

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from package_grids.core.logging import get_logger
from package_grids.models.grid import Grid
from package_grids.repositories.base import BaseRepository

logger = get_logger(__name__)


class GridRepository:
    """Repository for Grid entities using composition pattern.

    Standard CRUD operations are delegated to BaseRepository[Grid]; slug
    lookups and alphabetical listing are grid-specific.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._base_repo = BaseRepository(session, Grid)
        self._logger = get_logger(f"{__name__}.GridRepository")

    @property
    def base(self) -> BaseRepository[Grid]:
        return self._base_repo

    # ========================================================================
    # DELEGATED CRUD METHODS
    # ========================================================================

    async def insert(self, grid: Grid) -> Grid:
        return await self._base_repo.insert(grid)

    async def save(self, grid: Grid) -> Grid:
        return await self._base_repo.save(grid)

    async def get(self, grid_id: int) -> Optional[Grid]:
        return await self._base_repo.get(grid_id)

    async def get_or_404(self, grid_id: int) -> Grid:
        """Get grid by id or raise NotFoundError."""
        return await self._base_repo.get_or_404(grid_id)

    async def delete(self, grid_id: int) -> bool:
        return await self._base_repo.delete(grid_id)

    async def list(self) -> list[Grid]:
        """All grids in storage order."""
        return await self._base_repo.list()

    async def commit(self) -> None:
        await self._base_repo.commit()

    async def rollback(self) -> None:
        await self._base_repo.rollback()

    # ========================================================================
    # CUSTOM GRID METHODS
    # ========================================================================

    async def get_by_slug_or_404(self, slug: str) -> Grid:
        """Get grid by its unique slug or raise NotFoundError."""
        return await self._base_repo.get_by_or_404(slug=slug)

    async def list_alphabetically(self) -> "list[Grid]":
        """All grids ordered by name, ascending."""
        return await self._base_repo.list(Grid.name.asc(), Grid.id.asc())

    async def slug_taken(self, slug: str, exclude_id: int | None = None) -> bool:
        """Check whether another grid already uses ``slug``."""
        criteria = [Grid.slug == slug]
        if exclude_id is not None:
            criteria.append(Grid.id != exclude_id)
        taken = await self._base_repo.exists(*criteria)
        if taken:
            self._logger.debug("Grid slug already taken", slug=slug)
        return taken

    @staticmethod
    def query() -> Select[tuple[Grid]]:
        """Base SELECT used for filtered, paginated listings."""
        return select(Grid)
