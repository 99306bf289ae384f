"""Change descriptions for grids, packages and package-in-grid rows.

A ``Changeset`` pairs an entity with the attributes a caller wants to apply
to it, after casting and validation. It is what create/update operations
return on failure, and what form-rendering callers use to preview
validation without touching storage.

Casting is done by pydantic models that declare which attributes a caller may
set and their constraints. Keys outside that set are dropped, blank strings
become None, and pydantic errors are reported per field.
"""

from typing import Annotated, Any, Generic, Mapping, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from package_grids.models import Grid, Package, PackageInGrid, slugify

ModelType = TypeVar("ModelType")

BLANK = "can't be blank"
TAKEN = "has already been taken"
DOES_NOT_EXIST = "does not exist"
STALE = "is stale"

SLUG_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"


class _Attrs(BaseModel):
    """Base for attribute schemas. Every field is optional at the cast stage."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    @field_validator("*", mode="before")
    @classmethod
    def blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class GridAttrs(_Attrs):
    name: Annotated[str, Field(max_length=255)] | None = None
    description: str | None = None
    slug: Annotated[str, Field(max_length=255, pattern=SLUG_PATTERN)] | None = None


class PackageAttrs(_Attrs):
    name: Annotated[str, Field(max_length=255)] | None = None


class PackageInGridAttrs(_Attrs):
    package_id: Annotated[int, Field(gt=0)] | None = None
    grid_id: Annotated[int, Field(gt=0)] | None = None


class Changeset(Generic[ModelType]):
    """Validated changes for an entity plus field-keyed errors.

    Attributes:
        data: Entity the changes apply to (new or already persisted)
        params: Attributes as supplied by the caller
        changes: Cast attributes whose value differs from ``data``
        errors: Field name -> list of messages
        action: None for previews, otherwise "insert", "update" or "delete"
    """

    def __init__(
        self,
        data: ModelType,
        params: Mapping[str, Any] | None = None,
        changes: dict[str, Any] | None = None,
        errors: dict[str, list[str]] | None = None,
        action: str | None = None,
    ) -> None:
        self.data = data
        self.params = dict(params or {})
        self.changes = changes or {}
        self.errors = errors or {}
        self.action = action

    @property
    def valid(self) -> bool:
        return not self.errors

    def get_field(self, field: str) -> Any:
        """Value of ``field`` with pending changes taking precedence over data."""
        if field in self.changes:
            return self.changes[field]
        return getattr(self.data, field, None)

    def put_change(self, field: str, value: Any) -> None:
        if getattr(self.data, field, None) == value:
            self.changes.pop(field, None)
        else:
            self.changes[field] = value

    def add_error(self, field: str, message: str) -> "Changeset[ModelType]":
        self.errors.setdefault(field, []).append(message)
        return self

    def validate_required(self, *fields: str) -> "Changeset[ModelType]":
        for field in fields:
            value = self.get_field(field)
            if value is None or (isinstance(value, str) and not value.strip()):
                self.add_error(field, BLANK)
        return self

    def with_action(self, action: str) -> "Changeset[ModelType]":
        self.action = action
        return self

    def apply_changes(self) -> ModelType:
        """Copy pending changes onto ``data`` and return it."""
        for field, value in self.changes.items():
            setattr(self.data, field, value)
        return self.data

    def __repr__(self) -> str:
        return (
            f"Changeset(data={self.data!r}, action={self.action!r}, "
            f"changes={self.changes!r}, errors={self.errors!r}, valid={self.valid})"
        )


def cast(
    data: ModelType,
    params: Mapping[str, Any] | None,
    schema: type[_Attrs],
) -> Changeset[ModelType]:
    """Cast raw params through ``schema`` into a changeset for ``data``."""
    raw = {str(key): value for key, value in (params or {}).items()}
    allowed = {key: value for key, value in raw.items() if key in schema.model_fields}
    changeset: Changeset[ModelType] = Changeset(data, params=raw)

    try:
        cast_attrs = schema.model_validate(allowed).model_dump(exclude_unset=True)
    except ValidationError as exc:
        failed = set()
        for error in exc.errors():
            field = str(error["loc"][0]) if error["loc"] else "base"
            failed.add(field)
            changeset.add_error(field, error["msg"])
        # keep the fields that did cast so a re-rendered form shows them
        cast_attrs = {}
        for key, value in allowed.items():
            if key in failed:
                continue
            try:
                partial = schema.model_validate({key: value}).model_dump(exclude_unset=True)
            except ValidationError:
                continue
            cast_attrs.update(partial)

    for field, value in cast_attrs.items():
        changeset.put_change(field, value)
    return changeset


def grid_changeset(grid: Grid, attrs: Mapping[str, Any] | None = None) -> Changeset[Grid]:
    """Changeset for a grid. A missing slug is derived from the name."""
    changeset = cast(grid, attrs, GridAttrs)
    name = changeset.get_field("name")
    if changeset.get_field("slug") is None and "slug" not in changeset.errors and name:
        changeset.put_change("slug", slugify(name))
    return changeset.validate_required("name", "slug")


def package_changeset(
    package: Package, attrs: Mapping[str, Any] | None = None
) -> Changeset[Package]:
    """Changeset for a package. Only the name is caller-settable."""
    return cast(package, attrs, PackageAttrs).validate_required("name")


def package_in_grid_changeset(
    package_in_grid: PackageInGrid, attrs: Mapping[str, Any] | None = None
) -> Changeset[PackageInGrid]:
    return cast(package_in_grid, attrs, PackageInGridAttrs).validate_required(
        "package_id", "grid_id"
    )
