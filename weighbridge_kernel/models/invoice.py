"""
Module: weighbridge_kernel.models.invoice
Responsibility: ORM persistence for vendor invoices built from settled entries.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - invoice_number (INV-YYYY-XXXXXXX) is unique.
    - entry_ids keeps the caller's order.  Each listed entry carries this
      invoice's id as its claim marker while the invoice is active.
    - Stored status only moves draft -> sent -> paid.  ``overdue`` is derived.
    - cgst + sgst (or igst) equals the GST total exactly.

Breakdown and rate columns are JSON with Decimal values stored as strings.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from weighbridge_kernel.db.base import TrackedBase, UUIDString, enum_type
from weighbridge_kernel.domain.values import EntryType, GstType, InvoiceStatus


class Invoice(TrackedBase):
    __tablename__ = "invoices"

    __table_args__ = (
        UniqueConstraint("invoice_number", name="uq_invoice_number"),
        Index("idx_invoice_vendor", "vendor_id"),
        Index("idx_invoice_plant_date", "plant_id", "invoice_date"),
        Index("idx_invoice_status", "status"),
        Index("idx_invoice_active", "is_active"),
    )

    invoice_number: Mapped[str] = mapped_column(String(30), nullable=False)
    invoice_type: Mapped[EntryType] = mapped_column(enum_type(EntryType), nullable=False)

    vendor_id: Mapped[UUID] = mapped_column(UUIDString(), ForeignKey("vendors.id"), nullable=False)
    plant_id: Mapped[UUID] = mapped_column(UUIDString(), ForeignKey("plants.id"), nullable=False)
    entry_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    start_date: Mapped[date] = mapped_column(nullable=False)
    end_date: Mapped[date] = mapped_column(nullable=False)

    total_quantity: Mapped[Decimal] = mapped_column(nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)

    gst_applicable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    gst_type: Mapped[GstType | None] = mapped_column(enum_type(GstType), nullable=True)
    gst_rate: Mapped[Decimal | None] = mapped_column(nullable=True)
    cgst: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    sgst: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    igst: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    final_amount: Mapped[Decimal] = mapped_column(nullable=False)

    material_rates: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    palette_rates: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    material_breakdown: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    palette_breakdown: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    invoice_date: Mapped[date] = mapped_column(nullable=False)
    due_date: Mapped[date] = mapped_column(nullable=False)
    status: Mapped[InvoiceStatus] = mapped_column(
        enum_type(InvoiceStatus), nullable=False, default=InvoiceStatus.DRAFT
    )
    pdf_path: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Invoice {self.invoice_number} ({self.status.value})>"
