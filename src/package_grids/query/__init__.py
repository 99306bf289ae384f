"""Filtering, sorting and pagination for listings."""

from package_grids.query.filters import (
    GRID_FILTERS,
    PACKAGE_FILTERS,
    Condition,
    FieldKind,
    Filter,
    FilterConfig,
    FilterError,
    parse_filter_params,
)
from package_grids.query.pagination import (
    DEFAULT_SORT_DIRECTION,
    DEFAULT_SORT_FIELD,
    PAGE_SIZE,
    PAGINATION_DISTANCE,
    Page,
    PageRequest,
    PageResult,
    SortSpec,
    paginate,
)

__all__ = [
    "DEFAULT_SORT_DIRECTION",
    "DEFAULT_SORT_FIELD",
    "GRID_FILTERS",
    "PACKAGE_FILTERS",
    "PAGE_SIZE",
    "PAGINATION_DISTANCE",
    "Condition",
    "FieldKind",
    "Filter",
    "FilterConfig",
    "FilterError",
    "Page",
    "PageRequest",
    "PageResult",
    "SortSpec",
    "paginate",
    "parse_filter_params",
]
