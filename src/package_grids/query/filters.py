"""Allow-listed text filters for grid and package listings.

Raw filters arrive as a flat mapping of ``<field>_<comparator>`` keys to
string values, the shape an HTML filter form submits:

    {"name_contains": "web", "description_does_not_contain": "legacy"}

Only fields declared in a ``FilterConfig`` can be filtered on. Any other key
is reported back as an error instead of being ignored, so callers cannot
reach columns that were never meant to be queried.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from sqlalchemy import ColumnElement, Select, and_, or_

from package_grids.core.logging import get_logger
from package_grids.core.result import Error, Ok, Result
from package_grids.models import Grid, Package

logger = get_logger(__name__)

UNION_KEY = "filter_union"
UNIONS = ("all", "any")


class FieldKind(str, Enum):
    """Comparison family of a filterable field."""

    TEXT = "text"


COMPARATORS: dict[FieldKind, tuple[str, ...]] = {
    FieldKind.TEXT: ("equals", "does_not_equal", "contains", "does_not_contain"),
}


class FilterError:
    """Field-keyed problems found while parsing filter, sort or page params."""

    def __init__(self, errors: dict[str, list[str]] | None = None) -> None:
        self.errors: dict[str, list[str]] = errors or {}

    def add(self, key: str, message: str) -> None:
        self.errors.setdefault(key, []).append(message)

    def __bool__(self) -> bool:
        return bool(self.errors)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, FilterError) and other.errors == self.errors

    def __repr__(self) -> str:
        return f"FilterError({self.errors!r})"


@dataclass(frozen=True)
class FilterConfig:
    """Which columns of ``model`` may be filtered, and how."""

    model: type
    fields: Mapping[str, FieldKind]

    def split_key(self, key: str) -> tuple[str, str] | None:
        """Split ``name_contains`` into ``("name", "contains")`` if both are known."""
        for name, kind in self.fields.items():
            prefix = f"{name}_"
            if key.startswith(prefix) and key[len(prefix):] in COMPARATORS[kind]:
                return name, key[len(prefix):]
        return None


GRID_FILTERS = FilterConfig(
    model=Grid,
    fields={"name": FieldKind.TEXT, "description": FieldKind.TEXT},
)

PACKAGE_FILTERS = FilterConfig(
    model=Package,
    fields={"name": FieldKind.TEXT},
)


def _like_pattern(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


@dataclass(frozen=True)
class Condition:
    """One predicate: ``field`` compared to ``value`` with ``comparator``."""

    field: str
    comparator: str
    value: str

    def clause(self, model: type) -> ColumnElement[bool]:
        column = getattr(model, self.field)
        if self.comparator == "equals":
            return column == self.value
        if self.comparator == "does_not_equal":
            return or_(column.is_(None), column != self.value)
        if self.comparator == "contains":
            return column.ilike(_like_pattern(self.value), escape="\\")
        if self.comparator == "does_not_contain":
            return or_(column.is_(None), ~column.ilike(_like_pattern(self.value), escape="\\"))
        raise ValueError(f"Unsupported comparator {self.comparator!r}")


@dataclass(frozen=True)
class Filter:
    """A validated set of conditions joined by AND (``all``) or OR (``any``)."""

    config: FilterConfig
    conditions: tuple[Condition, ...] = field(default_factory=tuple)
    union: str = "all"

    def apply(self, query: Select[Any]) -> Select[Any]:
        if not self.conditions:
            return query
        clauses = [condition.clause(self.config.model) for condition in self.conditions]
        joined = and_(*clauses) if self.union == "all" else or_(*clauses)
        return query.where(joined)


def parse_filter_params(
    config: FilterConfig, raw: Mapping[str, Any] | None
) -> Result[Filter, FilterError]:
    """Validate raw filter params against ``config``.

    Returns every problem at once: unknown keys, unsupported comparators,
    non-string values and an invalid ``filter_union``. Blank values are
    accepted and produce no condition.
    """
    if raw is None:
        return Ok(Filter(config))
    if not isinstance(raw, Mapping):
        return Error(FilterError({"filter": ["must be a map of filter keys to values"]}))

    error = FilterError()
    conditions: list[Condition] = []
    union = "all"

    for key, value in raw.items():
        key = str(key)
        if key == UNION_KEY:
            if value in UNIONS:
                union = value
            elif value not in (None, ""):
                error.add(key, f"must be one of: {', '.join(UNIONS)}")
            continue

        parts = config.split_key(key)
        if parts is None:
            error.add(key, "is not a filterable field")
            continue
        if value is None:
            continue
        if not isinstance(value, str):
            error.add(key, "must be a string")
            continue
        if value == "":
            continue

        field_name, comparator = parts
        conditions.append(Condition(field_name, comparator, value))

    if error:
        logger.debug(
            "Rejected filter params",
            model=config.model.__name__,
            errors=error.errors,
        )
        return Error(error)

    return Ok(Filter(config, tuple(conditions), union))
