"""Join model linking packages to the grids they belong to."""

from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from package_grids.models.base import Base, TimestampMixin, generate_repr

if TYPE_CHECKING:
    from package_grids.models.grid import Grid
    from package_grids.models.package import Package


class PackageInGrid(Base, TimestampMixin):
    """Membership of one package in one grid.

    Identity is the ``(package_id, grid_id)`` pair. It doubles as the
    uniqueness constraint, so a package appears at most once per grid.

    Attributes:
        package_id: Foreign key to packages table
        grid_id: Foreign key to grids table
        inserted_at: Record creation timestamp
        updated_at: Record last update timestamp
        package: Related package record
        grid: Related grid record
    """

    __tablename__ = "package_in_grid"

    package_id: Mapped[int] = mapped_column(
        ForeignKey("packages.id", ondelete="CASCADE"),
        primary_key=True,
    )
    grid_id: Mapped[int] = mapped_column(
        ForeignKey("grids.id", ondelete="CASCADE"),
        primary_key=True,
    )

    package: Mapped["Package"] = relationship(
        "Package",
        back_populates="memberships",
        lazy="raise",
    )
    grid: Mapped["Grid"] = relationship(
        "Grid",
        back_populates="memberships",
        lazy="raise",
    )

    __table_args__ = (
        Index("idx_package_in_grid_grid_id", "grid_id"),
    )

    __repr__ = generate_repr("package_id", "grid_id")
