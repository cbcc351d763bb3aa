"""
Domain events published after a mutation commits.

Subscribers (receipt rendering, projections, notifications) receive these
frozen records.  They describe what happened; they carry no ORM state.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from weighbridge_kernel.domain.values import EntryType


@dataclass(frozen=True)
class EntrySettled:
    entry_id: UUID
    entry_number: str
    entry_type: EntryType
    plant_id: UUID
    vendor_id: UUID
    quantity: Decimal
    variance_flag: bool | None
    settled_at: datetime


@dataclass(frozen=True)
class InvoiceCreated:
    invoice_id: UUID
    invoice_number: str
    vendor_id: UUID
    plant_id: UUID
    entry_ids: tuple[UUID, ...]
    final_amount: Decimal
