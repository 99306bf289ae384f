"""Grid model for named collections of packages."""

import re
from typing import TYPE_CHECKING

from sqlalchemy import Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from package_grids.models.base import Base, IntegerIDMixin, TimestampMixin, generate_repr

if TYPE_CHECKING:
    from package_grids.models.package_in_grid import PackageInGrid

_NON_SLUG_CHARS = re.compile(r"[^a-z0-9]+")


def slugify(value: str) -> str:
    """Derive a URL slug from a grid name ("Web Frameworks" -> "web-frameworks")."""
    return _NON_SLUG_CHARS.sub("-", value.lower()).strip("-")


class Grid(Base, IntegerIDMixin, TimestampMixin):
    """A named collection that packages can be grouped into.

    Attributes:
        id: Primary key
        name: Display name (e.g., "Web Frameworks")
        description: Free-form description
        slug: Unique URL identifier, used for external lookups
        inserted_at: Record creation timestamp
        updated_at: Record last update timestamp
        memberships: Package-in-grid rows for this grid
    """

    __tablename__ = "grids"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    slug: Mapped[str] = mapped_column(String(255), nullable=False)

    memberships: Mapped[list["PackageInGrid"]] = relationship(
        "PackageInGrid",
        back_populates="grid",
        passive_deletes=True,
        lazy="raise",
    )

    __table_args__ = (
        Index("idx_grids_slug", "slug", unique=True),
        Index("idx_grids_name", "name"),
    )

    __repr__ = generate_repr("id", "name", "slug")
