"""
Module: weighbridge_kernel.models.vehicle
Responsibility: ORM persistence for vehicles crossing the weighbridge.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - (vehicle_number, vehicle_type) is unique; code (VEH-YYYY-XXXX) is unique.
    - tare_weight, once known, is the unladen reference for variance checks.
      It is learned from the first settled weighment when never set.
"""

from decimal import Decimal

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from weighbridge_kernel.db.base import TrackedBase, enum_type
from weighbridge_kernel.domain.values import VehicleType


class Vehicle(TrackedBase):
    __tablename__ = "vehicles"

    __table_args__ = (
        UniqueConstraint("code", name="uq_vehicle_code"),
        UniqueConstraint("vehicle_number", "vehicle_type", name="uq_vehicle_number_type"),
        Index("idx_vehicle_active", "is_active"),
    )

    code: Mapped[str] = mapped_column(String(20), nullable=False)
    vehicle_number: Mapped[str] = mapped_column(String(30), nullable=False)
    vehicle_type: Mapped[VehicleType] = mapped_column(enum_type(VehicleType), nullable=False)
    capacity: Mapped[Decimal | None] = mapped_column(nullable=True)
    tare_weight: Mapped[Decimal | None] = mapped_column(nullable=True)
    owner_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    driver_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    driver_phone: Mapped[str | None] = mapped_column(String(30), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Vehicle {self.vehicle_number} ({self.vehicle_type.value})>"
