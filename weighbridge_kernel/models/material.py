"""
Module: weighbridge_kernel.models.material
Responsibility: ORM persistence for purchasable material types.
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from sqlalchemy import Boolean, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from weighbridge_kernel.db.base import TrackedBase


class Material(TrackedBase):
    __tablename__ = "materials"

    __table_args__ = (UniqueConstraint("name", name="uq_material_name"),)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Material {self.name}>"
