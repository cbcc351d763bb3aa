"""
Module: weighbridge_kernel.models.entry
Responsibility: ORM persistence for weighbridge entries (one vehicle visit,
    two weighments).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - exit_weight is written at most once, by a guarded UPDATE
      (``WHERE exit_weight IS NULL``) in EntryService.  After that both
      weighments are immutable.
    - status is OPEN exactly while exit_weight is NULL.
    - invoice_id is the claim marker: set by a compare-and-set UPDATE when an
      invoice bills the entry, cleared only when that invoice is deleted.
    - Derived columns (gross_weight, quantity, variance_*) are never client
      supplied; they are recomputed from the weighments.

Failure modes:
    - IntegrityError on duplicate entry_number (uq_entry_number).
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from weighbridge_kernel.db.base import TrackedBase, UUIDString, enum_type
from weighbridge_kernel.domain.values import EntryStatus, EntryType, PalletteType


class Entry(TrackedBase):
    __tablename__ = "entries"

    __table_args__ = (
        UniqueConstraint("entry_number", name="uq_entry_number"),
        Index("idx_entry_plant_date", "plant_id", "entry_date"),
        Index("idx_entry_vendor", "vendor_id"),
        Index("idx_entry_status", "status"),
        Index("idx_entry_invoice", "invoice_id"),
        Index("idx_entry_active", "is_active"),
    )

    entry_number: Mapped[str] = mapped_column(String(30), nullable=False)
    entry_type: Mapped[EntryType] = mapped_column(enum_type(EntryType), nullable=False)
    status: Mapped[EntryStatus] = mapped_column(
        enum_type(EntryStatus), nullable=False, default=EntryStatus.OPEN
    )

    vendor_id: Mapped[UUID] = mapped_column(UUIDString(), ForeignKey("vendors.id"), nullable=False)
    vehicle_id: Mapped[UUID] = mapped_column(UUIDString(), ForeignKey("vehicles.id"), nullable=False)
    plant_id: Mapped[UUID] = mapped_column(UUIDString(), ForeignKey("plants.id"), nullable=False)
    material_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("materials.id"), nullable=True
    )

    # Weighments
    entry_weight: Mapped[Decimal] = mapped_column(nullable=False)
    exit_weight: Mapped[Decimal | None] = mapped_column(nullable=True)
    manual_weight: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Purchase quality
    moisture: Mapped[Decimal | None] = mapped_column(nullable=True)
    dust: Mapped[Decimal | None] = mapped_column(nullable=True)

    # Sale packing
    pallette_type: Mapped[PalletteType | None] = mapped_column(
        enum_type(PalletteType), nullable=True
    )
    no_of_bags: Mapped[int | None] = mapped_column(Integer, nullable=True)
    weight_per_bag: Mapped[Decimal | None] = mapped_column(nullable=True)
    packed_weight: Mapped[Decimal | None] = mapped_column(nullable=True)

    # Derived on settlement
    gross_weight: Mapped[Decimal | None] = mapped_column(nullable=True)
    moisture_weight: Mapped[Decimal | None] = mapped_column(nullable=True)
    dust_weight: Mapped[Decimal | None] = mapped_column(nullable=True)
    expected_weight: Mapped[Decimal | None] = mapped_column(nullable=True)
    quantity: Mapped[Decimal | None] = mapped_column(nullable=True)
    rate: Mapped[Decimal | None] = mapped_column(nullable=True)
    total_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    variance_flag: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    variance_pct: Mapped[Decimal | None] = mapped_column(nullable=True)
    variance_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    settled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Review workflow
    is_reviewed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reviewed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    review_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    flagged: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    flag_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    driver_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    driver_phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    entry_date: Mapped[datetime] = mapped_column(nullable=False)

    invoice_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("invoices.id"), nullable=True
    )
    pdf_path: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    @property
    def is_settled(self) -> bool:
        return self.exit_weight is not None

    def __repr__(self) -> str:
        return f"<Entry {self.entry_number} ({self.entry_type.value}, {self.status.value})>"
