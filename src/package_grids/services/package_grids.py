"""Catalog operations for grids, packages and package-in-grid memberships.

``PackageGrids`` is the entry point a web layer calls. It is built per
request around one ``AsyncSession``:

    async with session_scope() as session:
        catalog = PackageGrids(session)
        match await catalog.create_grid({"name": "Web", "description": "Web frameworks"}):
            case Ok(grid):
                ...
            case Error(changeset):
                render_form(changeset)

Writes commit on success. Expected failures (validation, uniqueness, stale
deletes, bad filters) come back as ``Error`` values. Only the single-entity
lookups raise, with ``NotFoundError``. Storage faults propagate as
``RepositoryError``.
"""

from typing import Any, Awaitable, Callable, Mapping, Optional, TypeVar

from sqlalchemy import Select, inspect
from sqlalchemy.ext.asyncio import AsyncSession

from package_grids.changesets import (
    DOES_NOT_EXIST,
    STALE,
    TAKEN,
    Changeset,
    grid_changeset,
    package_changeset,
    package_in_grid_changeset,
)
from package_grids.core.logging import get_logger
from package_grids.core.result import Error, Ok, Result
from package_grids.models import Grid, Package, PackageInGrid
from package_grids.query.filters import (
    GRID_FILTERS,
    PACKAGE_FILTERS,
    FilterConfig,
    FilterError,
    parse_filter_params,
)
from package_grids.query.pagination import PageRequest, PageResult, SortSpec, paginate
from package_grids.repositories import (
    ConflictError,
    GridRepository,
    PackageInGridRepository,
    PackageRepository,
)
from package_grids.services.sync import SyncTrigger

logger = get_logger(__name__)

ModelType = TypeVar("ModelType", Grid, Package, PackageInGrid)

NOT_A_MEMBER = "is not in this grid"

GRID_SORT_FIELDS = tuple(Grid.__table__.columns.keys())
PACKAGE_SORT_FIELDS = tuple(Package.__table__.columns.keys())


class PackageGrids:
    """Grid, package and membership operations over one database session.

    Args:
        session: Session used for every storage round trip
        sync_trigger: Launches the package data sync after package creation
    """

    def __init__(self, session: AsyncSession, sync_trigger: Optional[SyncTrigger] = None) -> None:
        self._session = session
        self._grids = GridRepository(session)
        self._packages = PackageRepository(session)
        self._memberships = PackageInGridRepository(session)
        self._sync = sync_trigger or SyncTrigger()
        self._logger = get_logger(f"{__name__}.PackageGrids")

    # ========================================================================
    # SHARED HELPERS
    # ========================================================================

    async def _paginate(
        self,
        resource: str,
        filter_key: str,
        config: FilterConfig,
        query: Select[Any],
        sortable: tuple[str, ...],
        params: Optional[Mapping[str, Any]],
    ) -> Result[PageResult[Any], FilterError]:
        params = dict(params or {})

        sort_result = SortSpec.from_params(params, sortable)
        filter_result = parse_filter_params(config, params.get(filter_key))

        if isinstance(sort_result, Error) or isinstance(filter_result, Error):
            error = FilterError()
            for result in (sort_result, filter_result):
                if isinstance(result, Error):
                    for key, messages in result.reason.errors.items():
                        for message in messages:
                            error.add(key, message)
            self._logger.info("Rejected listing params", resource=resource, errors=error.errors)
            return Error(error)

        sort = sort_result.value
        query = sort.apply(filter_result.value.apply(query), config.model)
        page = await paginate(self._session, query, PageRequest.from_params(params))

        return Ok(PageResult(
            resource=resource,
            page=page,
            sort_field=sort.field,
            sort_direction=sort.direction,
        ))

    async def _persist(
        self,
        repo: Any,
        write: Callable[[ModelType], Awaitable[ModelType]],
        changeset: Changeset[ModelType],
        conflict_field: str,
    ) -> Result[ModelType, Changeset[ModelType]]:
        """Apply, write and commit a valid changeset.

        A constraint violation that slipped past the pre-checks (a concurrent
        writer) rolls the transaction back and lands on the changeset.
        """
        entity = changeset.apply_changes()
        try:
            await write(entity)
            await repo.commit()
        except ConflictError as e:
            await repo.rollback()
            if inspect(entity).persistent:
                # the rollback expired the row being updated
                await self._session.refresh(entity)
            message = DOES_NOT_EXIST if "foreign key" in str(e).lower() else TAKEN
            changeset.add_error(conflict_field, message)
            self._logger.info(
                "Write rejected by storage constraint",
                model=type(entity).__name__,
                action=changeset.action,
                field=conflict_field,
            )
            return Error(changeset)
        return Ok(entity)

    def _invalid(self, changeset: Changeset[Any]) -> Error[Changeset[Any]]:
        self._logger.info(
            "Invalid changeset",
            model=type(changeset.data).__name__,
            action=changeset.action,
            errors=changeset.errors,
        )
        return Error(changeset)

    async def _delete_by_id(
        self,
        repo: Any,
        entity: ModelType,
    ) -> Result[ModelType, Changeset[ModelType]]:
        if not await repo.delete(entity.id):
            changeset: Changeset[ModelType] = Changeset(entity, action="delete")
            return self._invalid(changeset.add_error("id", STALE))
        await repo.commit()
        self._logger.info("Deleted entity", model=type(entity).__name__, entity_id=entity.id)
        return Ok(entity)

    # ========================================================================
    # GRIDS
    # ========================================================================

    async def paginate_grids(
        self, params: Optional[Mapping[str, Any]] = None
    ) -> Result[PageResult[Grid], FilterError]:
        """Filtered, sorted page of grids.

        Params: ``sort_field`` (default "inserted_at"), ``sort_direction``
        (default "desc"), ``page`` and a ``grid`` mapping of filters such as
        ``{"name_contains": "web"}``.
        """
        return await self._paginate(
            "grids", "grid", GRID_FILTERS, GridRepository.query(), GRID_SORT_FIELDS, params
        )

    async def list_grids(self) -> list[Grid]:
        return await self._grids.list()

    async def list_grids_alphabetically(self) -> list[Grid]:
        return await self._grids.list_alphabetically()

    async def get_grid(self, grid_id: int) -> Grid:
        """Raises NotFoundError if the grid does not exist."""
        return await self._grids.get_or_404(grid_id)

    async def get_grid_by_slug(self, slug: str) -> Grid:
        """Raises NotFoundError if no grid has this slug."""
        return await self._grids.get_by_slug_or_404(slug)

    async def create_grid(
        self, attrs: Optional[Mapping[str, Any]] = None
    ) -> Result[Grid, Changeset[Grid]]:
        changeset = grid_changeset(Grid(), attrs).with_action("insert")
        if changeset.valid and await self._grids.slug_taken(changeset.get_field("slug")):
            changeset.add_error("slug", TAKEN)
        if not changeset.valid:
            return self._invalid(changeset)
        return await self._persist(self._grids, self._grids.insert, changeset, "slug")

    async def update_grid(
        self, grid: Grid, attrs: Optional[Mapping[str, Any]] = None
    ) -> Result[Grid, Changeset[Grid]]:
        changeset = grid_changeset(grid, attrs).with_action("update")
        if (
            changeset.valid
            and "slug" in changeset.changes
            and await self._grids.slug_taken(changeset.changes["slug"], exclude_id=grid.id)
        ):
            changeset.add_error("slug", TAKEN)
        if not changeset.valid:
            return self._invalid(changeset)
        if not changeset.changes:
            return Ok(grid)
        return await self._persist(self._grids, self._grids.save, changeset, "slug")

    async def delete_grid(self, grid: Grid) -> Result[Grid, Changeset[Grid]]:
        """Delete by id. An already-deleted grid comes back as an error changeset."""
        return await self._delete_by_id(self._grids, grid)

    def change_grid(
        self, grid: Optional[Grid] = None, attrs: Optional[Mapping[str, Any]] = None
    ) -> Changeset[Grid]:
        """Preview a grid change without touching storage."""
        return grid_changeset(grid if grid is not None else Grid(), attrs)

    # ========================================================================
    # PACKAGES
    # ========================================================================

    async def paginate_packages(
        self, params: Optional[Mapping[str, Any]] = None
    ) -> Result[PageResult[Package], FilterError]:
        """Filtered, sorted page of packages; filters go under ``package``."""
        return await self._paginate(
            "packages", "package", PACKAGE_FILTERS, PackageRepository.query(),
            PACKAGE_SORT_FIELDS, params,
        )

    async def list_packages(self) -> list[Package]:
        return await self._packages.list()

    async def get_package(self, package_id: int) -> Package:
        """Raises NotFoundError if the package does not exist."""
        return await self._packages.get_or_404(package_id)

    async def create_package(
        self, attrs: Optional[Mapping[str, Any]] = None
    ) -> Result[Package, Changeset[Package]]:
        """Create a package and start its data sync without waiting for it.

        The returned package has only its name set; registry fields appear
        once the sync has run, if it succeeds at all.
        """
        changeset = package_changeset(Package(), attrs).with_action("insert")
        if changeset.valid and await self._packages.name_taken(changeset.get_field("name")):
            changeset.add_error("name", TAKEN)
        if not changeset.valid:
            return self._invalid(changeset)

        result = await self._persist(self._packages, self._packages.insert, changeset, "name")
        if isinstance(result, Ok):
            self._sync.trigger(result.value)
        return result

    async def update_package(
        self, package: Package, attrs: Optional[Mapping[str, Any]] = None
    ) -> Result[Package, Changeset[Package]]:
        changeset = package_changeset(package, attrs).with_action("update")
        if (
            changeset.valid
            and "name" in changeset.changes
            and await self._packages.name_taken(changeset.changes["name"], exclude_id=package.id)
        ):
            changeset.add_error("name", TAKEN)
        if not changeset.valid:
            return self._invalid(changeset)
        if not changeset.changes:
            return Ok(package)
        return await self._persist(self._packages, self._packages.save, changeset, "name")

    async def delete_package(self, package: Package) -> Result[Package, Changeset[Package]]:
        """Delete by id. An already-deleted package comes back as an error changeset."""
        return await self._delete_by_id(self._packages, package)

    def change_package(
        self, package: Optional[Package] = None, attrs: Optional[Mapping[str, Any]] = None
    ) -> Changeset[Package]:
        """Preview a package change without touching storage."""
        return package_changeset(package if package is not None else Package(), attrs)

    # ========================================================================
    # PACKAGE-IN-GRID MEMBERSHIPS
    # ========================================================================

    async def create_package_in_grid(
        self, attrs: Optional[Mapping[str, Any]] = None
    ) -> Result[PackageInGrid, Changeset[PackageInGrid]]:
        changeset = package_in_grid_changeset(PackageInGrid(), attrs).with_action("insert")
        if changeset.valid:
            package_id = changeset.get_field("package_id")
            grid_id = changeset.get_field("grid_id")
            if not await self._memberships.package_exists(package_id):
                changeset.add_error("package_id", DOES_NOT_EXIST)
            if not await self._memberships.grid_exists(grid_id):
                changeset.add_error("grid_id", DOES_NOT_EXIST)
            if changeset.valid and await self._memberships.exists(package_id, grid_id):
                changeset.add_error("package_id", TAKEN)
        if not changeset.valid:
            return self._invalid(changeset)
        return await self._persist(self._memberships, self._memberships.insert, changeset, "package_id")

    async def delete_package_in_grid(
        self, package_in_grid: PackageInGrid
    ) -> Result[PackageInGrid, Changeset[PackageInGrid]]:
        """Delete the membership matching exactly this (package_id, grid_id) pair.

        One row deleted returns the input. Zero rows is not a fault: it comes
        back as an error changeset describing the attempted delete.
        """
        deleted = await self._memberships.delete_pair(
            package_in_grid.package_id, package_in_grid.grid_id
        )
        if deleted:
            await self._memberships.commit()
        if deleted == 1:
            return Ok(package_in_grid)

        changeset = self.change_package_in_grid(package_in_grid).with_action("delete")
        return self._invalid(changeset.add_error("package_id", NOT_A_MEMBER))

    def change_package_in_grid(
        self,
        package_in_grid: Optional[PackageInGrid] = None,
        attrs: Optional[Mapping[str, Any]] = None,
    ) -> Changeset[PackageInGrid]:
        """Preview a membership change without touching storage."""
        return package_in_grid_changeset(
            package_in_grid if package_in_grid is not None else PackageInGrid(), attrs
        )
