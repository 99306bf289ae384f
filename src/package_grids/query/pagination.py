"""Sorting and page-number pagination for filtered listings.

Page size and the pagination distance are fixed: every listing returns 15
rows per page, and callers get ``distance = 5`` back as a hint for how many
page links to render on each side of the current one.
"""

import math
from dataclasses import dataclass
from typing import Any, Generic, Mapping, Sequence, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from package_grids.core.logging import get_logger
from package_grids.core.result import Error, Ok, Result
from package_grids.core.tracing import trace_database
from package_grids.query.filters import FilterError
from package_grids.repositories.base import RepositoryError

logger = get_logger(__name__)

T = TypeVar("T")

PAGE_SIZE = 15
PAGINATION_DISTANCE = 5
DEFAULT_SORT_FIELD = "inserted_at"
DEFAULT_SORT_DIRECTION = "desc"
SORT_DIRECTIONS = ("asc", "desc")


@dataclass(frozen=True)
class SortSpec:
    """Validated ``sort_field`` / ``sort_direction`` pair."""

    field: str = DEFAULT_SORT_FIELD
    direction: str = DEFAULT_SORT_DIRECTION

    @classmethod
    def from_params(
        cls, params: Mapping[str, Any], sortable: Sequence[str]
    ) -> Result["SortSpec", FilterError]:
        field = params.get("sort_field") or DEFAULT_SORT_FIELD
        direction = params.get("sort_direction") or DEFAULT_SORT_DIRECTION

        error = FilterError()
        if field not in sortable:
            error.add("sort_field", f"must be one of: {', '.join(sortable)}")
        if direction not in SORT_DIRECTIONS:
            error.add("sort_direction", f"must be one of: {', '.join(SORT_DIRECTIONS)}")
        if error:
            return Error(error)
        return Ok(cls(field, direction))

    def apply(self, query: Select[Any], model: type) -> Select[Any]:
        """Order by the sort field, then by primary key in the same direction.

        The primary key only breaks ties between rows with equal sort values,
        so pages stay stable across requests.
        """
        column = getattr(model, self.field)
        tie_break = getattr(model, "id", None)
        if self.direction == "asc":
            query = query.order_by(column.asc())
            return query.order_by(tie_break.asc()) if tie_break is not None else query
        query = query.order_by(column.desc())
        return query.order_by(tie_break.desc()) if tie_break is not None else query


@dataclass(frozen=True)
class PageRequest:
    """Requested page number; size is fixed at ``PAGE_SIZE``."""

    page: int = 1
    page_size: int = PAGE_SIZE

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "PageRequest":
        """Read ``page`` from params. Missing or unusable values mean page 1."""
        raw = params.get("page")
        try:
            page = int(raw) if raw not in (None, "") else 1
        except (TypeError, ValueError):
            page = 1
        return cls(page=max(page, 1))

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of rows plus the totals needed to render page links."""

    entries: list[T]
    page_number: int
    page_size: int
    total_pages: int
    total_entries: int


@dataclass(frozen=True)
class PageResult(Generic[T]):
    """A page of rows with the sort and distance echoed back for rendering."""

    resource: str
    page: Page[T]
    sort_field: str
    sort_direction: str
    distance: int = PAGINATION_DISTANCE

    @property
    def entries(self) -> list[T]:
        return self.page.entries

    @property
    def page_number(self) -> int:
        return self.page.page_number

    @property
    def page_size(self) -> int:
        return self.page.page_size

    @property
    def total_pages(self) -> int:
        return self.page.total_pages

    @property
    def total_entries(self) -> int:
        return self.page.total_entries

    def as_dict(self) -> dict[str, Any]:
        """Flat mapping with the rows under the resource name (``grids``, ``packages``)."""
        return {
            self.resource: self.page.entries,
            "page_number": self.page.page_number,
            "page_size": self.page.page_size,
            "total_pages": self.page.total_pages,
            "total_entries": self.page.total_entries,
            "distance": self.distance,
            "sort_field": self.sort_field,
            "sort_direction": self.sort_direction,
        }


def total_pages_for(total_entries: int, page_size: int = PAGE_SIZE) -> int:
    return math.ceil(total_entries / page_size)


@trace_database("paginate")
async def paginate(
    session: AsyncSession,
    query: Select[Any],
    page_request: PageRequest,
) -> Page[Any]:
    """Run ``query`` for one page and count all of its rows.

    A count over the filtered query without ordering, then the ordered page
    fetch with offset/limit. Pages past the last row skip the fetch.

    Raises:
        RepositoryError: For database errors
    """
    try:
        count_query = select(func.count()).select_from(query.order_by(None).subquery())
        total_entries = (await session.execute(count_query)).scalar() or 0

        entries: list[Any] = []
        # past the last row; also keeps huge page numbers out of OFFSET
        if page_request.offset < total_entries:
            page_query = query.offset(page_request.offset).limit(page_request.page_size)
            entries = list((await session.execute(page_query)).scalars().all())
    except SQLAlchemyError as e:
        logger.error("Failed to paginate query", page=page_request.page, error=str(e))
        raise RepositoryError(f"Failed to paginate: {e}") from e

    logger.debug(
        "Paginated query",
        page=page_request.page,
        returned=len(entries),
        total_entries=total_entries,
    )

    return Page(
        entries=entries,
        page_number=page_request.page,
        page_size=page_request.page_size,
        total_pages=total_pages_for(total_entries, page_request.page_size),
        total_entries=total_entries,
    )
