"""Database models."""

from package_grids.models.base import Base, IntegerIDMixin, TimestampMixin
from package_grids.models.grid import Grid, slugify
from package_grids.models.package import Package
from package_grids.models.package_in_grid import PackageInGrid

__all__ = [
    "Base",
    "IntegerIDMixin",
    "TimestampMixin",
    "Grid",
    "Package",
    "PackageInGrid",
    "slugify",
]
