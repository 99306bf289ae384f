"""Repository layer for database operations.

Repositories encapsulate database operations and provide a clean API for
the catalog operations in package_grids.services.
"""

from package_grids.repositories.base import (
    BaseRepository,
    ConflictError,
    NotFoundError,
    RepositoryError,
)
from package_grids.repositories.grid import GridRepository
from package_grids.repositories.package import SYNC_FIELDS, PackageRepository
from package_grids.repositories.package_in_grid import PackageInGridRepository

__all__ = [
    "BaseRepository",
    "ConflictError",
    "GridRepository",
    "NotFoundError",
    "PackageInGridRepository",
    "PackageRepository",
    "RepositoryError",
    "SYNC_FIELDS",
]
