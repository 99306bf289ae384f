"""Test PackageGrids catalog operations."""

import asyncio
from unittest.mock import patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from package_grids.changesets import BLANK, DOES_NOT_EXIST, STALE, TAKEN
from package_grids.core.result import Error, Ok
from package_grids.models import Grid, Package, PackageInGrid
from package_grids.repositories import GridRepository, NotFoundError, PackageRepository
from package_grids.services import PackageGrids, SyncTrigger
from package_grids.services.package_grids import NOT_A_MEMBER


async def count_rows(session: AsyncSession, model: type) -> int:
    return (await session.execute(select(func.count()).select_from(model))).scalar() or 0


async def make_grid(catalog: PackageGrids, name: str, **attrs: str) -> Grid:
    result = await catalog.create_grid({"name": name, **attrs})
    assert isinstance(result, Ok), result
    return result.value


async def make_package(catalog: PackageGrids, name: str) -> Package:
    result = await catalog.create_package({"name": name})
    assert isinstance(result, Ok), result
    return result.value


class TestGrids:
    """Test grid create/read/update/delete."""

    async def test_create_and_get_by_slug(self, catalog: PackageGrids) -> None:
        """Test a created grid is found by the slug derived from its name."""
        result = await catalog.create_grid({"name": "Web", "description": "Web frameworks"})

        assert isinstance(result, Ok)
        grid = result.value
        assert grid.id is not None
        assert grid.slug == "web"

        found = await catalog.get_grid_by_slug("web")
        assert found.id == grid.id
        assert found.description == "Web frameworks"

    async def test_create_invalid(self, catalog: PackageGrids, db_session: AsyncSession) -> None:
        """Test validation failures come back as an insert changeset."""
        result = await catalog.create_grid({"description": "No name"})

        assert isinstance(result, Error)
        assert result.reason.action == "insert"
        assert result.reason.errors["name"] == [BLANK]
        assert await count_rows(db_session, Grid) == 0

    async def test_create_duplicate_slug(
        self, catalog: PackageGrids, db_session: AsyncSession
    ) -> None:
        await make_grid(catalog, "Web")

        result = await catalog.create_grid({"name": "web"})

        assert isinstance(result, Error)
        assert result.reason.errors == {"slug": [TAKEN]}
        assert await count_rows(db_session, Grid) == 1

    async def test_create_duplicate_slug_caught_by_storage(
        self, catalog: PackageGrids, db_session: AsyncSession
    ) -> None:
        """Test the unique index still guards a slug the pre-check missed."""
        await make_grid(catalog, "Web")

        with patch.object(GridRepository, "slug_taken", return_value=False):
            result = await catalog.create_grid({"name": "Web"})

        assert isinstance(result, Error)
        assert result.reason.errors == {"slug": [TAKEN]}
        assert await count_rows(db_session, Grid) == 1

    async def test_get_grid_missing(self, catalog: PackageGrids) -> None:
        with pytest.raises(NotFoundError):
            await catalog.get_grid(404)

    async def test_get_grid_by_slug_missing(self, catalog: PackageGrids) -> None:
        with pytest.raises(NotFoundError):
            await catalog.get_grid_by_slug("nope")

    async def test_update(self, catalog: PackageGrids) -> None:
        grid = await make_grid(catalog, "Web")

        result = await catalog.update_grid(grid, {"name": "Web Frameworks", "slug": "web-frameworks"})

        assert isinstance(result, Ok)
        reloaded = await catalog.get_grid(grid.id)
        assert reloaded.name == "Web Frameworks"
        assert reloaded.slug == "web-frameworks"

    async def test_update_keeps_slug_when_renamed(self, catalog: PackageGrids) -> None:
        """Test renaming alone does not move the grid to a new slug."""
        grid = await make_grid(catalog, "Web")

        result = await catalog.update_grid(grid, {"name": "Web Frameworks"})

        assert isinstance(result, Ok)
        assert result.value.slug == "web"

    async def test_update_to_taken_slug(self, catalog: PackageGrids) -> None:
        await make_grid(catalog, "Web")
        json_grid = await make_grid(catalog, "JSON")

        result = await catalog.update_grid(json_grid, {"slug": "web"})

        assert isinstance(result, Error)
        assert result.reason.action == "update"
        assert result.reason.errors == {"slug": [TAKEN]}

    async def test_update_without_changes(self, catalog: PackageGrids) -> None:
        grid = await make_grid(catalog, "Web")

        result = await catalog.update_grid(grid, {"name": "Web"})

        assert result == Ok(grid)

    async def test_update_blank_name(self, catalog: PackageGrids) -> None:
        grid = await make_grid(catalog, "Web")

        result = await catalog.update_grid(grid, {"name": ""})

        assert isinstance(result, Error)
        assert result.reason.errors == {"name": [BLANK]}

    async def test_update_slug_clash_caught_by_storage(self, catalog: PackageGrids) -> None:
        """Test the rejected changeset still holds the stored grid."""
        await make_grid(catalog, "Web")
        json_grid = await make_grid(catalog, "JSON")

        with patch.object(GridRepository, "slug_taken", return_value=False):
            result = await catalog.update_grid(json_grid, {"slug": "web"})

        assert isinstance(result, Error)
        assert result.reason.errors == {"slug": [TAKEN]}
        assert result.reason.data.name == "JSON"
        assert result.reason.data.slug == "json"

        reloaded = await catalog.get_grid(json_grid.id)
        assert reloaded.slug == "json"

    async def test_delete_twice(self, catalog: PackageGrids) -> None:
        """Test deleting an already-deleted grid is reported, not raised."""
        grid = await make_grid(catalog, "Web")

        first = await catalog.delete_grid(grid)
        second = await catalog.delete_grid(grid)

        assert first == Ok(grid)
        assert isinstance(second, Error)
        assert second.reason.action == "delete"
        assert second.reason.errors == {"id": [STALE]}
        with pytest.raises(NotFoundError):
            await catalog.get_grid(grid.id)

    async def test_delete_removes_memberships(
        self, catalog: PackageGrids, db_session: AsyncSession
    ) -> None:
        grid = await make_grid(catalog, "Web")
        package = await make_package(catalog, "phoenix")
        await catalog.create_package_in_grid({"package_id": package.id, "grid_id": grid.id})

        assert isinstance(await catalog.delete_grid(grid), Ok)

        assert await count_rows(db_session, PackageInGrid) == 0
        assert await count_rows(db_session, Package) == 1

    async def test_list_grids(self, catalog: PackageGrids) -> None:
        await make_grid(catalog, "Testing")
        await make_grid(catalog, "JSON")

        assert len(await catalog.list_grids()) == 2
        assert [grid.name for grid in await catalog.list_grids_alphabetically()] == [
            "JSON",
            "Testing",
        ]

    async def test_change_grid_preview(self, catalog: PackageGrids) -> None:
        """Test previews validate without an action and without writing."""
        changeset = catalog.change_grid(attrs={"name": "Web Frameworks"})

        assert changeset.valid
        assert changeset.action is None
        assert changeset.changes["slug"] == "web-frameworks"
        assert await catalog.list_grids() == []

    async def test_change_grid_empty(self, catalog: PackageGrids) -> None:
        changeset = catalog.change_grid()

        assert not changeset.valid
        assert changeset.changes == {}


class TestPaginateGrids:
    """Test filtered, sorted and paginated grid listings."""

    async def test_default_sort_is_newest_first(self, catalog: PackageGrids) -> None:
        for name in ("First", "Second", "Third"):
            await make_grid(catalog, name)

        result = await catalog.paginate_grids()

        assert isinstance(result, Ok)
        assert [grid.name for grid in result.value.entries] == ["Third", "Second", "First"]
        assert result.value.sort_field == "inserted_at"
        assert result.value.sort_direction == "desc"

    async def test_sort_by_name(self, catalog: PackageGrids) -> None:
        for name in ("Testing", "HTTP", "JSON"):
            await make_grid(catalog, name)

        result = await catalog.paginate_grids({"sort_field": "name", "sort_direction": "asc"})

        assert isinstance(result, Ok)
        assert [grid.name for grid in result.value.entries] == ["HTTP", "JSON", "Testing"]

    async def test_filter_results_satisfy_predicate(self, catalog: PackageGrids) -> None:
        for name in ("Web Frameworks", "Web Servers", "JSON", "HTTP Clients"):
            await make_grid(catalog, name)

        result = await catalog.paginate_grids({"grid": {"name_contains": "web"}})

        assert isinstance(result, Ok)
        names = [grid.name for grid in result.value.entries]
        assert sorted(names) == ["Web Frameworks", "Web Servers"]
        assert all("web" in name.lower() for name in names)
        assert result.value.total_entries == 2

    async def test_unknown_filter_key(self, catalog: PackageGrids) -> None:
        """Test filtering on a column outside the allow-list is rejected."""
        await make_grid(catalog, "Web")

        result = await catalog.paginate_grids({"grid": {"slug_equals": "web"}})

        assert isinstance(result, Error)
        assert result.reason.errors == {"slug_equals": ["is not a filterable field"]}

    async def test_invalid_sort_and_filter_reported_together(
        self, catalog: PackageGrids
    ) -> None:
        result = await catalog.paginate_grids(
            {"sort_field": "nope", "grid": {"name_like": "web"}}
        )

        assert isinstance(result, Error)
        assert set(result.reason.errors) == {"sort_field", "name_like"}

    async def test_pages(self, catalog: PackageGrids) -> None:
        """Test page math over 17 grids."""
        for i in range(17):
            await make_grid(catalog, f"Grid {i:02d}")

        first = await catalog.paginate_grids({"sort_field": "name", "sort_direction": "asc"})
        second = await catalog.paginate_grids(
            {"sort_field": "name", "sort_direction": "asc", "page": "2"}
        )
        beyond = await catalog.paginate_grids({"page": 5})

        assert isinstance(first, Ok) and isinstance(second, Ok) and isinstance(beyond, Ok)
        assert len(first.value.entries) == 15
        assert [grid.name for grid in second.value.entries] == ["Grid 15", "Grid 16"]
        assert beyond.value.entries == []
        for page in (first.value, second.value, beyond.value):
            assert page.total_entries == 17
            assert page.total_pages == 2
            assert page.page_size == 15
            assert page.distance == 5

    async def test_huge_page_is_empty(self, catalog: PackageGrids) -> None:
        await make_grid(catalog, "Web")

        result = await catalog.paginate_grids({"page": "99999999999999999999"})

        assert isinstance(result, Ok)
        assert result.value.entries == []
        assert result.value.total_entries == 1

    async def test_invalid_page_means_first(self, catalog: PackageGrids) -> None:
        await make_grid(catalog, "Web")

        result = await catalog.paginate_grids({"page": "last"})

        assert isinstance(result, Ok)
        assert result.value.page_number == 1
        assert len(result.value.entries) == 1

    async def test_as_dict(self, catalog: PackageGrids) -> None:
        grid = await make_grid(catalog, "Web")

        result = await catalog.paginate_grids()

        assert isinstance(result, Ok)
        assert result.value.as_dict() == {
            "grids": [grid],
            "page_number": 1,
            "page_size": 15,
            "total_pages": 1,
            "total_entries": 1,
            "distance": 5,
            "sort_field": "inserted_at",
            "sort_direction": "desc",
        }


class TestPackages:
    """Test package operations and the sync trigger."""

    async def test_create_returns_before_sync_runs(
        self, catalog: PackageGrids, recording_sync
    ) -> None:
        """Test creation succeeds without waiting on the sync."""
        result = await catalog.create_package({"name": "phoenix"})

        assert isinstance(result, Ok)
        package = result.value
        assert package.latest_version is None
        assert recording_sync.calls == []

        await asyncio.sleep(0)
        assert recording_sync.calls == [package]

    async def test_create_invalid_does_not_sync(
        self, catalog: PackageGrids, recording_sync
    ) -> None:
        result = await catalog.create_package({"name": "  "})
        await asyncio.sleep(0)

        assert isinstance(result, Error)
        assert result.reason.errors == {"name": [BLANK]}
        assert recording_sync.calls == []

    async def test_create_duplicate_name(
        self, catalog: PackageGrids, db_session: AsyncSession, recording_sync
    ) -> None:
        await make_package(catalog, "phoenix")

        result = await catalog.create_package({"name": "phoenix"})
        await asyncio.sleep(0)

        assert isinstance(result, Error)
        assert result.reason.errors == {"name": [TAKEN]}
        assert await count_rows(db_session, Package) == 1
        assert len(recording_sync.calls) == 1

    async def test_sync_failure_is_invisible(self, db_session: AsyncSession) -> None:
        """Test a failing sync neither fails creation nor raises later."""
        attempted = asyncio.Event()

        async def failing_sync(package: Package) -> None:
            attempted.set()
            raise RuntimeError("registry down")

        catalog = PackageGrids(
            db_session, sync_trigger=SyncTrigger(routine=failing_sync, enabled=True)
        )

        result = await catalog.create_package({"name": "phoenix"})

        assert isinstance(result, Ok)
        await asyncio.wait_for(attempted.wait(), timeout=1)
        await asyncio.sleep(0)
        assert (await catalog.get_package(result.value.id)).name == "phoenix"

    async def test_disabled_sync(self, db_session: AsyncSession, recording_sync) -> None:
        catalog = PackageGrids(
            db_session, sync_trigger=SyncTrigger(routine=recording_sync, enabled=False)
        )

        assert isinstance(await catalog.create_package({"name": "phoenix"}), Ok)
        await asyncio.sleep(0)

        assert recording_sync.calls == []

    async def test_get_package(self, catalog: PackageGrids) -> None:
        package = await make_package(catalog, "phoenix")

        assert (await catalog.get_package(package.id)).name == "phoenix"
        with pytest.raises(NotFoundError):
            await catalog.get_package(package.id + 1)

    async def test_update_rename(self, catalog: PackageGrids, recording_sync) -> None:
        package = await make_package(catalog, "phoenix")
        await make_package(catalog, "plug")

        renamed = await catalog.update_package(package, {"name": "phoenix_live_view"})
        clash = await catalog.update_package(package, {"name": "plug"})

        assert isinstance(renamed, Ok)
        assert renamed.value.name == "phoenix_live_view"
        assert isinstance(clash, Error)
        assert clash.reason.errors == {"name": [TAKEN]}

    async def test_update_clash_caught_by_storage(
        self, catalog: PackageGrids, db_session: AsyncSession
    ) -> None:
        """Test the rejected changeset still holds the stored package."""
        package = await make_package(catalog, "phoenix")
        await make_package(catalog, "plug")

        with patch.object(PackageRepository, "name_taken", return_value=False):
            result = await catalog.update_package(package, {"name": "plug"})

        assert isinstance(result, Error)
        assert result.reason.errors == {"name": [TAKEN]}
        assert result.reason.changes == {"name": "plug"}
        assert result.reason.data.name == "phoenix"
        assert await count_rows(db_session, Package) == 2

    async def test_delete_twice(self, catalog: PackageGrids) -> None:
        package = await make_package(catalog, "phoenix")

        assert await catalog.delete_package(package) == Ok(package)
        second = await catalog.delete_package(package)

        assert isinstance(second, Error)
        assert second.reason.errors == {"id": [STALE]}

    async def test_list_packages(self, catalog: PackageGrids) -> None:
        await make_package(catalog, "phoenix")
        await make_package(catalog, "plug")

        assert sorted(p.name for p in await catalog.list_packages()) == ["phoenix", "plug"]

    async def test_paginate_packages(self, catalog: PackageGrids) -> None:
        for name in ("phoenix", "phoenix_html", "plug"):
            await make_package(catalog, name)

        result = await catalog.paginate_packages(
            {"package": {"name_does_not_contain": "html"}, "sort_field": "name", "sort_direction": "asc"}
        )

        assert isinstance(result, Ok)
        assert [p.name for p in result.value.entries] == ["phoenix", "plug"]
        assert "packages" in result.value.as_dict()

    async def test_paginate_packages_rejects_description_filter(
        self, catalog: PackageGrids
    ) -> None:
        result = await catalog.paginate_packages({"package": {"description_contains": "web"}})

        assert isinstance(result, Error)

    async def test_change_package_preview(self, catalog: PackageGrids) -> None:
        changeset = catalog.change_package(attrs={"name": "phoenix", "downloads": 5})

        assert changeset.valid
        assert changeset.changes == {"name": "phoenix"}


class TestPackageInGrid:
    """Test membership operations."""

    @pytest.fixture
    async def grid(self, catalog: PackageGrids) -> Grid:
        return await make_grid(catalog, "Web")

    @pytest.fixture
    async def package(self, catalog: PackageGrids) -> Package:
        return await make_package(catalog, "phoenix")

    async def test_create(self, catalog: PackageGrids, grid: Grid, package: Package) -> None:
        result = await catalog.create_package_in_grid(
            {"package_id": package.id, "grid_id": grid.id}
        )

        assert isinstance(result, Ok)
        assert (result.value.package_id, result.value.grid_id) == (package.id, grid.id)

    async def test_create_duplicate(
        self,
        catalog: PackageGrids,
        db_session: AsyncSession,
        grid: Grid,
        package: Package,
    ) -> None:
        """Test a second membership for the same pair is a validation error."""
        attrs = {"package_id": package.id, "grid_id": grid.id}
        await catalog.create_package_in_grid(attrs)

        result = await catalog.create_package_in_grid(attrs)

        assert isinstance(result, Error)
        assert result.reason.errors == {"package_id": [TAKEN]}
        assert await count_rows(db_session, PackageInGrid) == 1

    async def test_create_for_missing_rows(self, catalog: PackageGrids) -> None:
        result = await catalog.create_package_in_grid({"package_id": 404, "grid_id": 405})

        assert isinstance(result, Error)
        assert result.reason.errors == {
            "package_id": [DOES_NOT_EXIST],
            "grid_id": [DOES_NOT_EXIST],
        }

    async def test_create_missing_ids(self, catalog: PackageGrids) -> None:
        result = await catalog.create_package_in_grid({})

        assert isinstance(result, Error)
        assert result.reason.errors == {"package_id": [BLANK], "grid_id": [BLANK]}

    async def test_delete(
        self,
        catalog: PackageGrids,
        db_session: AsyncSession,
        grid: Grid,
        package: Package,
    ) -> None:
        created = await catalog.create_package_in_grid(
            {"package_id": package.id, "grid_id": grid.id}
        )
        assert isinstance(created, Ok)

        result = await catalog.delete_package_in_grid(created.value)

        assert result == Ok(created.value)
        assert await count_rows(db_session, PackageInGrid) == 0

    async def test_delete_missing_pair(
        self,
        catalog: PackageGrids,
        db_session: AsyncSession,
        grid: Grid,
        package: Package,
    ) -> None:
        """Test a zero-row delete is reported and leaves other memberships alone."""
        other_grid = await make_grid(catalog, "Other")
        await catalog.create_package_in_grid({"package_id": package.id, "grid_id": other_grid.id})

        result = await catalog.delete_package_in_grid(
            PackageInGrid(package_id=package.id, grid_id=grid.id)
        )

        assert isinstance(result, Error)
        assert result.reason.action == "delete"
        assert result.reason.errors == {"package_id": [NOT_A_MEMBER]}
        assert result.reason.data.grid_id == grid.id
        assert await count_rows(db_session, PackageInGrid) == 1

    async def test_change_preview(self, catalog: PackageGrids) -> None:
        changeset = catalog.change_package_in_grid(attrs={"package_id": "1", "grid_id": "2"})

        assert changeset.valid
        assert changeset.changes == {"package_id": 1, "grid_id": 2}
