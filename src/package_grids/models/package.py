"""Package model for catalogued software packages."""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import BigInteger, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from package_grids.models.base import Base, IntegerIDMixin, TimestampMixin, generate_repr

if TYPE_CHECKING:
    from package_grids.models.package_in_grid import PackageInGrid


class Package(Base, IntegerIDMixin, TimestampMixin):
    """Represents a software package tracked by the catalog.

    Only ``name`` is supplied by callers. The remaining descriptive fields are
    filled in after creation by the package data sync and may be empty until
    it has run.

    Attributes:
        id: Primary key
        name: Package name on the registry (e.g., "phoenix")
        description: Package description
        repository_url: Source code repository URL
        homepage_url: Project homepage URL
        latest_version: Latest released version string
        downloads: All-time download count
        synced_at: When the sync last stored registry data, None if never
        inserted_at: Record creation timestamp
        updated_at: Record last update timestamp
        memberships: Package-in-grid rows for this package
    """

    __tablename__ = "packages"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    repository_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    homepage_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    latest_version: Mapped[str | None] = mapped_column(String(50), nullable=True)
    downloads: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    memberships: Mapped[list["PackageInGrid"]] = relationship(
        "PackageInGrid",
        back_populates="package",
        passive_deletes=True,
        lazy="raise",
    )

    __table_args__ = (
        Index("idx_packages_name", "name", unique=True),
    )

    __repr__ = generate_repr("id", "name")
