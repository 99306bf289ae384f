"""Database seed script with sample grids and packages.

Creates the tables if needed, then adds a few grids, packages and
memberships through the catalog operations, so validation and slug
derivation apply exactly as they do for real callers.

Usage:
    python seed.py
    SYNC_ENABLED=true python seed.py   # also fetch registry data for new packages

Features:
    - Idempotent: existing grids (by slug) and packages (by name) are reused
    - Package data sync is off unless SYNC_ENABLED is set
"""

import asyncio
import os

from package_grids.core.database import close_database, init_models, session_scope
from package_grids.core.logging import configure_logging, get_logger
from package_grids.core.result import Error, Ok
from package_grids.core.tracing import configure_tracing
from package_grids.models import Grid, Package, slugify
from package_grids.repositories import GridRepository, PackageRepository
from package_grids.services import PackageGrids, SyncTrigger

configure_logging()
configure_tracing()
logger = get_logger(__name__)

GRIDS = [
    {"name": "Web Frameworks", "description": "Frameworks for building web applications"},
    {"name": "HTTP Clients", "description": "Libraries for talking to HTTP APIs"},
    {"name": "JSON", "description": "JSON encoding and decoding"},
    {"name": "Testing", "description": "Test runners, mocks and factories"},
]

PACKAGES = {
    "Web Frameworks": ["phoenix", "plug", "raxx"],
    "HTTP Clients": ["req", "finch", "tesla", "httpoison"],
    "JSON": ["jason", "poison"],
    "Testing": ["ex_machina", "mox", "stream_data"],
}


async def seed_grid(catalog: PackageGrids, repo: GridRepository, attrs: dict[str, str]) -> Grid:
    slug = slugify(attrs["name"])
    if await repo.slug_taken(slug):
        logger.info("Grid already exists", slug=slug)
        return await repo.get_by_slug_or_404(slug)

    match await catalog.create_grid(attrs):
        case Ok(grid):
            logger.info("Created grid", slug=grid.slug)
            return grid
        case Error(changeset):
            raise RuntimeError(f"Could not seed grid {attrs['name']!r}: {changeset.errors}")


async def seed_package(catalog: PackageGrids, repo: PackageRepository, name: str) -> Package:
    if await repo.name_taken(name):
        logger.info("Package already exists", name=name)
        existing = await repo.base.get_by_or_404(name=name)
        return existing

    match await catalog.create_package({"name": name}):
        case Ok(package):
            logger.info("Created package", name=package.name)
            return package
        case Error(changeset):
            raise RuntimeError(f"Could not seed package {name!r}: {changeset.errors}")


async def seed() -> None:
    await init_models()

    sync_enabled = os.environ.get("SYNC_ENABLED", "").lower() in ("1", "true", "yes")
    trigger = SyncTrigger(enabled=sync_enabled)

    async with session_scope() as session:
        catalog = PackageGrids(session, sync_trigger=trigger)
        grid_repo = GridRepository(session)
        package_repo = PackageRepository(session)

        for grid_attrs in GRIDS:
            grid = await seed_grid(catalog, grid_repo, grid_attrs)
            for name in PACKAGES[grid_attrs["name"]]:
                package = await seed_package(catalog, package_repo, name)
                result = await catalog.create_package_in_grid(
                    {"package_id": package.id, "grid_id": grid.id}
                )
                if isinstance(result, Error):
                    logger.info(
                        "Membership not created",
                        grid=grid.slug,
                        package=package.name,
                        errors=result.reason.errors,
                    )

    if sync_enabled:
        # let scheduled syncs finish before the loop closes
        pending = [t for t in asyncio.all_tasks() if t is not asyncio.current_task()]
        await asyncio.gather(*pending, return_exceptions=True)

    await close_database()
    logger.info("Seeding complete")


if __name__ == "__main__":
    asyncio.run(seed())
