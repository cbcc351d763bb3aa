"""
DTOs -- immutable data crossing the service boundary.

Responsibility:
    Inputs to service operations (drafts, changes, weighments) and the
    read models they return (``*Info``, receipts, pages).  Services convert
    ORM rows with ``from_model()``; nothing outside the service layer ever
    sees an ORM instance, and cached values are always DTOs.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  ``from_model()`` converters are only
    invoked from the service and selector layers.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Generic, TypeVar
from uuid import UUID

from weighbridge_kernel.domain.values import (
    EntryStatus,
    EntryType,
    GstType,
    InvoiceStatus,
    PalletteType,
    VehicleType,
)

if TYPE_CHECKING:
    from weighbridge_kernel.models.entry import Entry as EntryModel
    from weighbridge_kernel.models.invoice import Invoice as InvoiceModel
    from weighbridge_kernel.models.material import Material as MaterialModel
    from weighbridge_kernel.models.plant import Plant as PlantModel
    from weighbridge_kernel.models.vehicle import Vehicle as VehicleModel
    from weighbridge_kernel.models.vendor import Vendor as VendorModel

T = TypeVar("T")


class _Unset:
    """Marker for 'field not supplied' in partial updates."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


class _Changes:
    """Mixin for partial-update DTOs whose fields default to UNSET."""

    def supplied(self) -> dict[str, Any]:
        """Only the fields the caller actually set."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not UNSET
        }


@dataclass(frozen=True)
class Page(Generic[T]):
    items: tuple[T, ...]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.total else 0


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EntryDraft:
    """First weighment of a vehicle."""

    entry_type: EntryType
    vendor_id: UUID
    vehicle_id: UUID
    entry_weight: Decimal
    plant_id: UUID | None = None
    material_id: UUID | None = None
    moisture: Decimal | None = None
    dust: Decimal | None = None
    pallette_type: PalletteType | None = None
    no_of_bags: int | None = None
    weight_per_bag: Decimal | None = None
    rate: Decimal | None = None
    manual_weight: bool = False
    driver_name: str | None = None
    driver_phone: str | None = None
    entry_date: datetime | None = None


@dataclass(frozen=True)
class ExitWeighment:
    """Second weighment plus any figures first known at exit."""

    exit_weight: Decimal
    moisture: Decimal | None = None
    dust: Decimal | None = None
    pallette_type: PalletteType | None = None
    no_of_bags: int | None = None
    weight_per_bag: Decimal | None = None


@dataclass(frozen=True)
class EntryChanges(_Changes):
    vendor_id: Any = UNSET
    vehicle_id: Any = UNSET
    material_id: Any = UNSET
    entry_weight: Any = UNSET
    exit_weight: Any = UNSET
    moisture: Any = UNSET
    dust: Any = UNSET
    rate: Any = UNSET
    pallette_type: Any = UNSET
    no_of_bags: Any = UNSET
    weight_per_bag: Any = UNSET
    manual_weight: Any = UNSET
    driver_name: Any = UNSET
    driver_phone: Any = UNSET
    entry_date: Any = UNSET
    variance_flag: Any = UNSET
    variance_reason: Any = UNSET


@dataclass(frozen=True)
class EntryInfo:
    id: UUID
    entry_number: str
    entry_type: EntryType
    status: EntryStatus
    vendor_id: UUID
    vehicle_id: UUID
    plant_id: UUID
    material_id: UUID | None
    entry_weight: Decimal
    exit_weight: Decimal | None
    manual_weight: bool
    moisture: Decimal | None
    dust: Decimal | None
    pallette_type: PalletteType | None
    no_of_bags: int | None
    weight_per_bag: Decimal | None
    packed_weight: Decimal | None
    gross_weight: Decimal | None
    moisture_weight: Decimal | None
    dust_weight: Decimal | None
    expected_weight: Decimal | None
    quantity: Decimal | None
    rate: Decimal | None
    total_amount: Decimal | None
    variance_flag: bool | None
    variance_pct: Decimal | None
    variance_reason: str | None
    is_reviewed: bool
    reviewed_by_id: UUID | None
    reviewed_at: datetime | None
    review_notes: str | None
    flagged: bool
    flag_reason: str | None
    driver_name: str | None
    driver_phone: str | None
    entry_date: datetime
    settled_at: datetime | None
    invoice_id: UUID | None
    pdf_path: str | None
    created_by_id: UUID

    @property
    def is_settled(self) -> bool:
        return self.status == EntryStatus.SETTLED

    @classmethod
    def from_model(cls, model: EntryModel) -> EntryInfo:
        return cls(**{f.name: getattr(model, f.name) for f in fields(cls)})


@dataclass(frozen=True)
class EntryReceipt:
    """Weighment slip for a settled, variance-clean entry."""

    entry_id: UUID
    entry_number: str
    entry_type: EntryType
    plant_name: str
    vendor_name: str
    vehicle_number: str
    material_name: str | None
    entry_weight: Decimal
    exit_weight: Decimal
    gross_weight: Decimal
    moisture_weight: Decimal | None
    dust_weight: Decimal | None
    quantity: Decimal
    rate: Decimal | None
    total_amount: Decimal | None
    driver_name: str | None
    entry_date: datetime
    settled_at: datetime | None


# ---------------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InvoiceDraft:
    vendor_id: UUID
    plant_id: UUID
    entry_ids: tuple[UUID, ...]
    invoice_type: EntryType | None = None
    start_date: date | None = None
    end_date: date | None = None
    invoice_date: date | None = None
    due_date: date | None = None
    gst_applicable: bool = False
    gst_type: GstType | None = None
    gst_rate: Decimal | None = None
    material_rates: dict[UUID, Decimal] = field(default_factory=dict)
    palette_rates: dict[PalletteType, Decimal] = field(default_factory=dict)


@dataclass(frozen=True)
class MaterialBreakdown:
    """Purchase-invoice line for one material."""

    material_id: UUID
    material_name: str
    total_quantity: Decimal
    total_moisture_quantity: Decimal
    total_dust_quantity: Decimal
    final_quantity: Decimal
    rate: Decimal | None
    total_amount: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class PaletteBreakdown:
    """Sale-invoice line for one pallette type."""

    pallette_type: PalletteType
    total_bags: int
    weight_per_bag: Decimal | None
    total_packed_weight: Decimal
    total_quantity: Decimal
    rate: Decimal | None
    total_amount: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class InvoiceInfo:
    id: UUID
    invoice_number: str
    invoice_type: EntryType
    vendor_id: UUID
    plant_id: UUID
    entry_ids: tuple[UUID, ...]
    start_date: date
    end_date: date
    total_quantity: Decimal
    total_amount: Decimal
    gst_applicable: bool
    gst_type: GstType | None
    gst_rate: Decimal | None
    cgst: Decimal
    sgst: Decimal
    igst: Decimal
    final_amount: Decimal
    material_breakdown: tuple[MaterialBreakdown, ...]
    palette_breakdown: tuple[PaletteBreakdown, ...]
    invoice_date: date
    due_date: date
    status: InvoiceStatus
    pdf_path: str | None
    created_by_id: UUID

    @property
    def total_gst(self) -> Decimal:
        return self.cgst + self.sgst + self.igst

    def effective_status(self, today: date) -> InvoiceStatus:
        """Stored status, or OVERDUE for an unpaid invoice past its due date."""
        if self.status != InvoiceStatus.PAID and today > self.due_date:
            return InvoiceStatus.OVERDUE
        return self.status

    @classmethod
    def from_model(cls, model: InvoiceModel) -> InvoiceInfo:
        return cls(
            id=model.id,
            invoice_number=model.invoice_number,
            invoice_type=model.invoice_type,
            vendor_id=model.vendor_id,
            plant_id=model.plant_id,
            entry_ids=tuple(UUID(e) for e in model.entry_ids),
            start_date=model.start_date,
            end_date=model.end_date,
            total_quantity=model.total_quantity,
            total_amount=model.total_amount,
            gst_applicable=model.gst_applicable,
            gst_type=model.gst_type,
            gst_rate=model.gst_rate,
            cgst=model.cgst,
            sgst=model.sgst,
            igst=model.igst,
            final_amount=model.final_amount,
            material_breakdown=tuple(
                MaterialBreakdown(
                    material_id=UUID(row["material_id"]),
                    material_name=row["material_name"],
                    total_quantity=Decimal(row["total_quantity"]),
                    total_moisture_quantity=Decimal(row["total_moisture_quantity"]),
                    total_dust_quantity=Decimal(row["total_dust_quantity"]),
                    final_quantity=Decimal(row["final_quantity"]),
                    rate=Decimal(row["rate"]) if row.get("rate") is not None else None,
                    total_amount=Decimal(row["total_amount"]),
                )
                for row in (model.material_breakdown or [])
            ),
            palette_breakdown=tuple(
                PaletteBreakdown(
                    pallette_type=PalletteType(row["pallette_type"]),
                    total_bags=int(row["total_bags"]),
                    weight_per_bag=(
                        Decimal(row["weight_per_bag"])
                        if row.get("weight_per_bag") is not None
                        else None
                    ),
                    total_packed_weight=Decimal(row["total_packed_weight"]),
                    total_quantity=Decimal(row["total_quantity"]),
                    rate=Decimal(row["rate"]) if row.get("rate") is not None else None,
                    total_amount=Decimal(row["total_amount"]),
                )
                for row in (model.palette_breakdown or [])
            ),
            invoice_date=model.invoice_date,
            due_date=model.due_date,
            status=model.status,
            pdf_path=model.pdf_path,
            created_by_id=model.created_by_id,
        )


# ---------------------------------------------------------------------------
# Reference entities
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PlantDraft:
    name: str
    location: str | None = None
    address: str | None = None
    state: str | None = None


@dataclass(frozen=True)
class PlantChanges(_Changes):
    name: Any = UNSET
    location: Any = UNSET
    address: Any = UNSET
    state: Any = UNSET


@dataclass(frozen=True)
class PlantInfo:
    id: UUID
    code: str
    name: str
    location: str | None
    address: str | None
    state: str | None

    @classmethod
    def from_model(cls, model: PlantModel) -> PlantInfo:
        return cls(**{f.name: getattr(model, f.name) for f in fields(cls)})


@dataclass(frozen=True)
class PlantSummary:
    id: UUID
    code: str
    name: str


@dataclass(frozen=True)
class VendorDraft:
    name: str
    contact_person: str | None = None
    phone: str | None = None
    email: str | None = None
    address: str | None = None
    gst_number: str | None = None
    linked_plant_ids: tuple[UUID, ...] = ()


@dataclass(frozen=True)
class VendorChanges(_Changes):
    name: Any = UNSET
    contact_person: Any = UNSET
    phone: Any = UNSET
    email: Any = UNSET
    address: Any = UNSET
    gst_number: Any = UNSET
    linked_plant_ids: Any = UNSET


@dataclass(frozen=True)
class VendorInfo:
    id: UUID
    code: str
    name: str
    contact_person: str | None
    phone: str | None
    email: str | None
    address: str | None
    gst_number: str | None
    linked_plants: tuple[PlantSummary, ...]

    @classmethod
    def from_model(cls, model: VendorModel) -> VendorInfo:
        plants = sorted(
            (p for p in model.linked_plants if p.is_active), key=lambda p: p.code
        )
        return cls(
            id=model.id,
            code=model.code,
            name=model.name,
            contact_person=model.contact_person,
            phone=model.phone,
            email=model.email,
            address=model.address,
            gst_number=model.gst_number,
            linked_plants=tuple(PlantSummary(p.id, p.code, p.name) for p in plants),
        )


@dataclass(frozen=True)
class VehicleDraft:
    vehicle_number: str
    vehicle_type: VehicleType
    capacity: Decimal | None = None
    tare_weight: Decimal | None = None
    owner_name: str | None = None
    driver_name: str | None = None
    driver_phone: str | None = None


@dataclass(frozen=True)
class VehicleChanges(_Changes):
    vehicle_number: Any = UNSET
    vehicle_type: Any = UNSET
    capacity: Any = UNSET
    tare_weight: Any = UNSET
    owner_name: Any = UNSET
    driver_name: Any = UNSET
    driver_phone: Any = UNSET


@dataclass(frozen=True)
class VehicleInfo:
    id: UUID
    code: str
    vehicle_number: str
    vehicle_type: VehicleType
    capacity: Decimal | None
    tare_weight: Decimal | None
    owner_name: str | None
    driver_name: str | None
    driver_phone: str | None

    @classmethod
    def from_model(cls, model: VehicleModel) -> VehicleInfo:
        return cls(**{f.name: getattr(model, f.name) for f in fields(cls)})


@dataclass(frozen=True)
class MaterialDraft:
    name: str


@dataclass(frozen=True)
class MaterialInfo:
    id: UUID
    name: str

    @classmethod
    def from_model(cls, model: MaterialModel) -> MaterialInfo:
        return cls(id=model.id, name=model.name)


@dataclass(frozen=True)
class LookupItem:
    """Dropdown option."""

    id: UUID | str
    label: str


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DashboardSummary:
    total_entries: int
    open_entries: int
    settled_entries: int
    purchase_entries: int
    sale_entries: int
    purchase_quantity: Decimal
    sale_quantity: Decimal
    flagged_entries: int
    variance_flagged_entries: int
    reviewed_entries: int
    invoice_count: int
    invoiced_amount: Decimal
    invoice_amount_by_status: dict[str, Decimal]
