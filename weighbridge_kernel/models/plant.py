"""
Module: weighbridge_kernel.models.plant
Responsibility: ORM persistence for plants (weighbridge sites).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - code (PLT-YYYY-XX) and name are unique.
    - Soft delete via is_active; inactive plants are excluded at every read.
"""

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from weighbridge_kernel.db.base import TrackedBase


class Plant(TrackedBase):
    """A weighbridge site.  Entries, invoices and operators belong to one."""

    __tablename__ = "plants"

    __table_args__ = (
        UniqueConstraint("code", name="uq_plant_code"),
        UniqueConstraint("name", name="uq_plant_name"),
        Index("idx_plant_active", "is_active"),
    )

    code: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    state: Mapped[str | None] = mapped_column(String(100), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Plant {self.code}: {self.name}>"
