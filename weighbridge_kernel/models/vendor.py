"""
Module: weighbridge_kernel.models.vendor
Responsibility: ORM persistence for vendors and their plant links.
Architecture position: Kernel > Models.  May import from db/base.py and
    sibling models only.

Invariants enforced:
    - code (VEN-YYYY-XXXX) is unique; gst_number is unique when present.
    - A vendor may only appear on entries at plants it is linked to
      (checked by EntryService against ``vendor_plants``).
"""

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, Column, ForeignKey, Index, String, Table, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from weighbridge_kernel.db.base import Base, TrackedBase, UUIDString

if TYPE_CHECKING:
    from weighbridge_kernel.models.plant import Plant


vendor_plants = Table(
    "vendor_plants",
    Base.metadata,
    Column("vendor_id", UUIDString(), ForeignKey("vendors.id"), primary_key=True),
    Column("plant_id", UUIDString(), ForeignKey("plants.id"), primary_key=True),
    Index("idx_vendor_plants_plant", "plant_id"),
)


class Vendor(TrackedBase):
    """Counterparty supplying (purchase) or buying (sale) material."""

    __tablename__ = "vendors"

    __table_args__ = (
        UniqueConstraint("code", name="uq_vendor_code"),
        UniqueConstraint("gst_number", name="uq_vendor_gst_number"),
        Index("idx_vendor_active", "is_active"),
        Index("idx_vendor_name", "name"),
    )

    code: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_person: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    gst_number: Mapped[str | None] = mapped_column(String(20), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    linked_plants: Mapped[list["Plant"]] = relationship(
        secondary=vendor_plants,
        lazy="selectin",
    )

    def is_linked_to(self, plant_id: UUID) -> bool:
        return any(p.id == plant_id for p in self.linked_plants)

    def __repr__(self) -> str:
        return f"<Vendor {self.code}: {self.name}>"
