"""Catalog operations and the package data sync."""

from package_grids.services.package_grids import PackageGrids
from package_grids.services.sync import SyncPackageData, SyncTrigger

__all__ = ["PackageGrids", "SyncPackageData", "SyncTrigger"]
