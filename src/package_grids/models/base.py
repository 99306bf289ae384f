"""Base model classes and mixins for SQLAlchemy models."""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import DateTime, Integer, func
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class IntegerIDMixin:
    """Mixin that adds an autoincrementing integer primary key."""

    @declared_attr
    def id(cls) -> Mapped[int]:
        """Primary key."""
        return mapped_column(Integer, primary_key=True, autoincrement=True)


class TimestampMixin:
    """Mixin that adds inserted_at and updated_at timestamp columns.

    Values are generated client-side so they are available on the instance
    right after a flush, without expiring and reloading the attributes.
    """

    @declared_attr
    def inserted_at(cls) -> Mapped[datetime]:
        """Timestamp when the record was inserted."""
        return mapped_column(
            DateTime(timezone=True),
            nullable=False,
            default=utcnow,
            server_default=func.now(),
        )

    @declared_attr
    def updated_at(cls) -> Mapped[datetime]:
        """Timestamp when the record was last updated."""
        return mapped_column(
            DateTime(timezone=True),
            nullable=False,
            default=utcnow,
            server_default=func.now(),
            onupdate=utcnow,
        )


def generate_repr(*attrs: str) -> Any:
    """Generate a __repr__ method for model classes.

    Args:
        *attrs: Attribute names to include in the repr string.

    Returns:
        A __repr__ method that displays the specified attributes.

    Example:
        __repr__ = generate_repr("id", "name", "slug")
    """

    def __repr__(self: Any) -> str:
        class_name = self.__class__.__name__
        attr_strs = [f"{attr}={getattr(self, attr, None)!r}" for attr in attrs]
        return f"{class_name}({', '.join(attr_strs)})"

    return __repr__
