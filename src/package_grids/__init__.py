"""Grids, packages and package-in-grid membership for the package catalog."""

__version__ = "0.1.0"
