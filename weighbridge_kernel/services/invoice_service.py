"""
InvoiceService -- bills settled entries to a vendor.

Responsibility:
    Builds an invoice from a set of settled entries of one vendor, plant and
    entry type: claims the entries, totals them, breaks them down by
    material (purchase) or pallette type (sale), applies GST, numbers the
    invoice and persists it.  Also moves invoices through their status
    lifecycle and releases entries when an invoice is deleted.

Architecture position:
    Kernel > Services -- imperative shell.  GST arithmetic lives in
    ``domain.gst``.

Invariants enforced:
    - An entry is billed on at most one active invoice.  The claim is a
      single compare-and-set UPDATE
      (``SET invoice_id = :id WHERE id IN (..) AND invoice_id IS NULL``);
      if it touches fewer rows than requested, the whole invoice rolls back.
    - Creation is all-or-nothing: number allocation, invoice row and entry
      claims share one savepoint.
    - Totals, breakdowns and GST are computed from the entries as re-read
      after the claim.  From the claim on, ``EntryService`` refuses
      corrections, so the invoice always bills what its entries hold.
    - cgst + sgst (or igst) equals the GST total; final = total + GST.
    - Stored status moves draft -> sent -> paid only.

Failure modes:
    - EntryNotFoundError, VendorNotFoundError, PlantNotFoundError,
      InvoiceNotFoundError (NOT_FOUND).
    - EntryAlreadyInvoicedError, EntryNotSettledError,
      InvalidStatusTransitionError, ConflictError (CONFLICT).
    - EntryMismatchError, InvalidPeriodError, ValidationError (VALIDATION).
    - SequenceUnavailableError (DEPENDENCY).
"""

from __future__ import annotations

from collections import OrderedDict
from datetime import date, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from weighbridge_kernel.domain.auth import EVERYONE, MANAGERS, AuthContext
from weighbridge_kernel.domain.cache_keys import ENTRIES, INVOICES
from weighbridge_kernel.domain.clock import Clock, SystemClock
from weighbridge_kernel.domain.dtos import (
    InvoiceDraft,
    InvoiceInfo,
    MaterialBreakdown,
    Page,
    PaletteBreakdown,
)
from weighbridge_kernel.domain.events import InvoiceCreated
from weighbridge_kernel.domain.filters import InvoiceFilter
from weighbridge_kernel.domain.gst import GstBreakdown, calculate_gst
from weighbridge_kernel.domain.numbering import INVOICE_PREFIX
from weighbridge_kernel.domain.values import (
    EntryStatus,
    EntryType,
    InvoiceStatus,
    PalletteType,
    quantize_money,
    quantize_weight,
    to_decimal,
)
from weighbridge_kernel.exceptions import (
    ConflictError,
    EntryAlreadyInvoicedError,
    EntryMismatchError,
    EntryNotFoundError,
    EntryNotSettledError,
    InvalidPeriodError,
    InvalidStatusTransitionError,
    InvoiceNotFoundError,
    PlantNotFoundError,
    ValidationError,
    VendorNotFoundError,
)
from weighbridge_kernel.logging_config import LogContext, get_logger
from weighbridge_kernel.models.entry import Entry
from weighbridge_kernel.models.invoice import Invoice
from weighbridge_kernel.models.material import Material
from weighbridge_kernel.models.plant import Plant
from weighbridge_kernel.models.vendor import Vendor
from weighbridge_kernel.services.base import BaseService, paginate
from weighbridge_kernel.services.cache_service import CacheService
from weighbridge_kernel.services.event_publisher import EventPublisher
from weighbridge_kernel.services.sequence_service import SequenceService

logger = get_logger("services.invoice")

DEFAULT_DUE_DAYS = 30

ALLOWED_TRANSITIONS = {
    InvoiceStatus.DRAFT: frozenset({InvoiceStatus.SENT}),
    InvoiceStatus.SENT: frozenset({InvoiceStatus.PAID}),
    InvoiceStatus.PAID: frozenset(),
}

ZERO = Decimal("0")


def _jsonable(value: Any) -> Any:
    """Breakdown values as JSON-safe primitives; Decimals keep full precision as strings."""
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, PalletteType):
        return value.value
    return value


def _row(breakdown) -> dict[str, Any]:
    return {k: _jsonable(v) for k, v in breakdown.to_dict().items()}


class InvoiceService(BaseService[Invoice]):
    """
    Invoice lifecycle service.

    Usage:
        with session_scope() as session:
            service = InvoiceService(session, cache)
            info = service.create_invoice(ctx, InvoiceDraft(vendor_id, plant_id, entry_ids))
    """

    def __init__(
        self,
        session: Session,
        cache: CacheService,
        clock: Clock | None = None,
        sequences: SequenceService | None = None,
        events: EventPublisher | None = None,
        due_days: int = DEFAULT_DUE_DAYS,
    ):
        super().__init__(session)
        self.cache = cache
        self.clock = clock or SystemClock()
        self.sequences = sequences or SequenceService(session)
        self.events = events or EventPublisher()
        self.due_days = due_days

    def _load(self, ctx: AuthContext, invoice_id: UUID) -> Invoice:
        invoice = self.session.get(Invoice, invoice_id)
        if invoice is None or not invoice.is_active:
            raise InvoiceNotFoundError(invoice_id)
        ctx.check_plant_access(invoice.plant_id)
        return invoice

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_invoice(self, ctx: AuthContext, draft: InvoiceDraft) -> InvoiceInfo:
        """
        Bill ``draft.entry_ids`` on a new draft invoice.

        Raises:
            EntryAlreadyInvoicedError: any entry is claimed by an active
                invoice, including one created concurrently.  No invoice is
                persisted.
            EntryMismatchError: an entry belongs to another vendor, plant,
                type or period, or has no rate.
            EntryNotSettledError: an entry is still open.
        """
        ctx.require_role(MANAGERS, "create invoices")
        plant_id = ctx.require_plant(draft.plant_id)

        entry_ids = list(dict.fromkeys(draft.entry_ids))
        if not entry_ids:
            raise ValidationError("At least one entry is required")
        if len(entry_ids) != len(draft.entry_ids):
            raise ValidationError("Duplicate entry ids")
        if draft.gst_applicable and draft.gst_type is None:
            raise ValidationError("gst_type is required when GST is applicable")

        vendor = self.session.get(Vendor, draft.vendor_id)
        if vendor is None or not vendor.is_active:
            raise VendorNotFoundError(draft.vendor_id)
        plant = self.session.get(Plant, plant_id)
        if plant is None or not plant.is_active:
            raise PlantNotFoundError(plant_id)

        entries = self._load_entries(entry_ids)
        invoice_type = self._check_entries(draft, entries, vendor.id, plant_id)
        start_date, end_date = self._period(draft, entries)

        material_rates = {UUID(str(k)): to_decimal(v) for k, v in draft.material_rates.items()}
        palette_rates = {PalletteType(k): to_decimal(v) for k, v in draft.palette_rates.items()}
        for rate in (*material_rates.values(), *palette_rates.values()):
            if rate < 0:
                raise ValidationError(f"rate cannot be negative, got {rate}")
        self._price(entries, invoice_type, material_rates, palette_rates)

        invoice_date = draft.invoice_date or self.clock.today()
        due_date = draft.due_date or invoice_date + timedelta(days=self.due_days)
        if due_date < invoice_date:
            raise ValidationError("due_date cannot be before invoice_date")

        with self.session.begin_nested():
            number = self.sequences.next_document_number(INVOICE_PREFIX, invoice_date.year)
            invoice = Invoice(
                invoice_number=number,
                invoice_type=invoice_type,
                vendor_id=vendor.id,
                plant_id=plant_id,
                entry_ids=[str(e) for e in entry_ids],
                start_date=start_date,
                end_date=end_date,
                total_quantity=ZERO,
                total_amount=ZERO,
                final_amount=ZERO,
                gst_applicable=bool(draft.gst_applicable),
                material_rates={str(k): str(v) for k, v in material_rates.items()},
                palette_rates={k.value: str(v) for k, v in palette_rates.items()},
                invoice_date=invoice_date,
                due_date=due_date,
                status=InvoiceStatus.DRAFT,
                created_by_id=ctx.user_id,
            )
            self.session.add(invoice)
            self.session.flush()
            self._claim(invoice, entry_ids, ctx.user_id)

            # Claimed rows are locked against corrections; bill what they hold now.
            entries = self._load_entries(entry_ids, reload=True)
            self._check_entries(draft, entries, vendor.id, plant_id, invoice_id=invoice.id)
            invoice.start_date, invoice.end_date = self._period(draft, entries)
            pricing = self._price(entries, invoice_type, material_rates, palette_rates)

            total_amount = quantize_money(sum((amount for _, amount in pricing.values()), ZERO))
            gst = calculate_gst(total_amount, draft.gst_rate, draft.gst_type, draft.gst_applicable)
            invoice.total_quantity = quantize_weight(sum((e.quantity for e in entries), ZERO))
            invoice.total_amount = total_amount
            invoice.gst_type = gst.gst_type
            invoice.gst_rate = gst.gst_rate if draft.gst_applicable else None
            invoice.cgst = gst.cgst
            invoice.sgst = gst.sgst
            invoice.igst = gst.igst
            invoice.final_amount = gst.final_amount
            if invoice_type == EntryType.PURCHASE:
                invoice.material_breakdown = [
                    _row(b) for b in self._material_breakdown(entries, pricing, material_rates)
                ]
                invoice.palette_breakdown = []
            else:
                invoice.material_breakdown = []
                invoice.palette_breakdown = [
                    _row(b) for b in self._palette_breakdown(entries, pricing, palette_rates)
                ]

            for entry in entries:
                rate, amount = pricing[entry.id]
                if entry.rate is None:
                    entry.rate = rate
                    entry.total_amount = amount
            self.session.flush()

        self._invalidate(invoice.id, entry_ids)
        self.events.publish_after_commit(
            self.session,
            InvoiceCreated(
                invoice_id=invoice.id,
                invoice_number=number,
                vendor_id=vendor.id,
                plant_id=plant_id,
                entry_ids=tuple(entry_ids),
                final_amount=gst.final_amount,
            ),
        )
        with LogContext.bind(
            invoice_id=invoice.id, invoice_number=number, actor_id=ctx.user_id, plant_id=plant_id
        ):
            logger.info(
                "invoice_created",
                extra={
                    "entry_count": len(entry_ids),
                    "total_amount": total_amount,
                    "final_amount": gst.final_amount,
                },
            )
        return InvoiceInfo.from_model(invoice)

    def _load_entries(self, entry_ids: list[UUID], reload: bool = False) -> list[Entry]:
        stmt = select(Entry).where(Entry.id.in_(entry_ids))
        if reload:
            stmt = stmt.execution_options(populate_existing=True)
        rows = self.session.execute(stmt).scalars().all()
        by_id = {e.id: e for e in rows}
        entries = []
        for entry_id in entry_ids:
            entry = by_id.get(entry_id)
            if entry is None or not entry.is_active:
                raise EntryNotFoundError(entry_id)
            entries.append(entry)
        return entries

    def _check_entries(
        self,
        draft: InvoiceDraft,
        entries: list[Entry],
        vendor_id: UUID,
        plant_id: UUID,
        invoice_id: UUID | None = None,
    ) -> EntryType:
        invoice_type = EntryType(draft.invoice_type) if draft.invoice_type else entries[0].entry_type
        claimed = []
        for entry in entries:
            if not entry.is_settled:
                raise EntryNotSettledError(entry.id, "invoice")
            if entry.vendor_id != vendor_id:
                raise EntryMismatchError(entry.id, "entry belongs to another vendor")
            if entry.plant_id != plant_id:
                raise EntryMismatchError(entry.id, "entry belongs to another plant")
            if entry.entry_type != invoice_type:
                raise EntryMismatchError(entry.id, f"entry is not a {invoice_type.value} entry")
            if entry.invoice_id is not None and entry.invoice_id != invoice_id:
                claimed.append(entry.id)
        if claimed:
            raise EntryAlreadyInvoicedError(claimed)
        return invoice_type

    def _period(self, draft: InvoiceDraft, entries: list[Entry]) -> tuple[date, date]:
        entry_days = [e.entry_date.date() for e in entries]
        start_date = draft.start_date or min(entry_days)
        end_date = draft.end_date or max(entry_days)
        if start_date > end_date:
            raise InvalidPeriodError(start_date, end_date)
        for entry, day in zip(entries, entry_days):
            if day < start_date or day > end_date:
                raise EntryMismatchError(entry.id, "entry date is outside the billing period")
        return start_date, end_date

    def _price(
        self,
        entries: list[Entry],
        invoice_type: EntryType,
        material_rates: dict[UUID, Decimal],
        palette_rates: dict[PalletteType, Decimal],
    ) -> dict[UUID, tuple[Decimal, Decimal]]:
        """Rate and amount per entry; the entry's own rate wins over invoice rates."""
        pricing = {}
        for entry in entries:
            if entry.rate is not None:
                rate = entry.rate
            elif invoice_type == EntryType.PURCHASE:
                rate = material_rates.get(entry.material_id)
            else:
                rate = palette_rates.get(entry.pallette_type or PalletteType.LOOSE)
            if rate is None:
                raise EntryMismatchError(entry.id, "no rate for entry")
            amount = entry.total_amount
            if amount is None or entry.rate is None:
                amount = quantize_money(entry.quantity * rate)
            pricing[entry.id] = (rate, amount)
        return pricing

    def _claim(self, invoice: Invoice, entry_ids: list[UUID], actor_id: UUID) -> None:
        claimed = self.session.execute(
            update(Entry)
            .where(
                Entry.id.in_(entry_ids),
                Entry.invoice_id.is_(None),
                Entry.is_active.is_(True),
                Entry.status == EntryStatus.SETTLED,
            )
            .values(invoice_id=invoice.id, updated_by_id=actor_id)
            .execution_options(synchronize_session=False)
        ).rowcount
        if claimed != len(entry_ids):
            won = set(
                self.session.execute(
                    select(Entry.id).where(
                        Entry.id.in_(entry_ids), Entry.invoice_id == invoice.id
                    )
                ).scalars()
            )
            lost = [e for e in entry_ids if e not in won]
            logger.warning(
                "invoice_claim_conflict",
                extra={"requested": len(entry_ids), "claimed": claimed},
            )
            raise EntryAlreadyInvoicedError(lost)

    def _material_breakdown(self, entries, pricing, material_rates) -> list[MaterialBreakdown]:
        groups: OrderedDict[UUID, list[Entry]] = OrderedDict()
        for entry in entries:
            groups.setdefault(entry.material_id, []).append(entry)
        names = {
            m.id: m.name
            for m in self.session.execute(
                select(Material).where(Material.id.in_(list(groups)))
            ).scalars()
        }
        rows = []
        for material_id, group in groups.items():
            rows.append(
                MaterialBreakdown(
                    material_id=material_id,
                    material_name=names.get(material_id, ""),
                    total_quantity=quantize_weight(sum((e.gross_weight for e in group), ZERO)),
                    total_moisture_quantity=quantize_weight(
                        sum((e.moisture_weight or ZERO for e in group), ZERO)
                    ),
                    total_dust_quantity=quantize_weight(
                        sum((e.dust_weight or ZERO for e in group), ZERO)
                    ),
                    final_quantity=quantize_weight(sum((e.quantity for e in group), ZERO)),
                    rate=material_rates.get(material_id),
                    total_amount=quantize_money(sum((pricing[e.id][1] for e in group), ZERO)),
                )
            )
        return sorted(rows, key=lambda r: r.material_name)

    def _palette_breakdown(self, entries, pricing, palette_rates) -> list[PaletteBreakdown]:
        rows = []
        for pallette_type in PalletteType:
            group = [e for e in entries if (e.pallette_type or PalletteType.LOOSE) == pallette_type]
            if not group:
                continue
            per_bag = {e.weight_per_bag for e in group if e.weight_per_bag is not None}
            rows.append(
                PaletteBreakdown(
                    pallette_type=pallette_type,
                    total_bags=sum(e.no_of_bags or 0 for e in group),
                    weight_per_bag=per_bag.pop() if len(per_bag) == 1 else None,
                    total_packed_weight=quantize_weight(
                        sum((e.packed_weight or ZERO for e in group), ZERO)
                    ),
                    total_quantity=quantize_weight(sum((e.quantity for e in group), ZERO)),
                    rate=palette_rates.get(pallette_type),
                    total_amount=quantize_money(sum((pricing[e.id][1] for e in group), ZERO)),
                )
            )
        return rows

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_invoice(self, ctx: AuthContext, invoice_id: UUID) -> InvoiceInfo:
        ctx.require_role(EVERYONE, "view invoices")

        def compute() -> InvoiceInfo:
            invoice = self.session.get(Invoice, invoice_id)
            if invoice is None or not invoice.is_active:
                raise InvoiceNotFoundError(invoice_id)
            return InvoiceInfo.from_model(invoice)

        info = self.cache.get_or_set(
            self.cache.keys.item(INVOICES, invoice_id), self.cache.ttl.short, compute
        )
        ctx.check_plant_access(info.plant_id)
        return info

    def list_invoices(self, ctx: AuthContext, query: InvoiceFilter | None = None) -> Page[InvoiceInfo]:
        """
        Invoices visible to the caller.

        Filtering by ``overdue`` selects unpaid invoices whose due date is
        before ``query.as_of`` (today when not given).
        """
        ctx.require_role(EVERYONE, "list invoices")
        query = query or InvoiceFilter()
        query = query.with_changes(plant_id=ctx.resolve_plant(query.plant_id))
        if query.status == InvoiceStatus.OVERDUE and query.as_of is None:
            query = query.with_changes(as_of=self.clock.today())

        def compute() -> Page[InvoiceInfo]:
            stmt = select(Invoice).where(Invoice.is_active.is_(True))
            if query.vendor_id is not None:
                stmt = stmt.where(Invoice.vendor_id == query.vendor_id)
            if query.plant_id is not None:
                stmt = stmt.where(Invoice.plant_id == query.plant_id)
            if query.invoice_type is not None:
                stmt = stmt.where(Invoice.invoice_type == query.invoice_type)
            if query.status == InvoiceStatus.OVERDUE:
                stmt = stmt.where(
                    Invoice.status != InvoiceStatus.PAID, Invoice.due_date < query.as_of
                )
            elif query.status is not None:
                stmt = stmt.where(Invoice.status == query.status)
            if query.date_from is not None:
                stmt = stmt.where(Invoice.invoice_date >= query.date_from)
            if query.date_to is not None:
                stmt = stmt.where(Invoice.invoice_date <= query.date_to)
            stmt = stmt.order_by(Invoice.invoice_date.desc(), Invoice.invoice_number.desc())
            return paginate(self.session, stmt, query, InvoiceInfo.from_model)

        return self.cache.get_or_set(
            self.cache.keys.list(INVOICES, query), self.cache.ttl.short, compute
        )

    def effective_status(self, ctx: AuthContext, invoice_id: UUID) -> InvoiceStatus:
        """Stored status, or overdue when unpaid past the due date."""
        return self.get_invoice(ctx, invoice_id).effective_status(self.clock.today())

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def update_status(self, ctx: AuthContext, invoice_id: UUID, status: InvoiceStatus) -> InvoiceInfo:
        ctx.require_role(MANAGERS, "update invoices")
        invoice = self._load(ctx, invoice_id)
        target = InvoiceStatus(status)
        if target not in ALLOWED_TRANSITIONS.get(invoice.status, frozenset()):
            raise InvalidStatusTransitionError(invoice_id, invoice.status.value, target.value)
        previous = invoice.status
        invoice.status = target
        invoice.updated_by_id = ctx.user_id
        self.session.flush()
        self._invalidate(invoice.id)
        logger.info(
            "invoice_status_changed",
            extra={"invoice_id": invoice.id, "from_status": previous, "to_status": target},
        )
        return InvoiceInfo.from_model(invoice)

    def attach_pdf(self, ctx: AuthContext, invoice_id: UUID, pdf_path: str) -> InvoiceInfo:
        ctx.require_role(MANAGERS, "attach invoice documents")
        invoice = self._load(ctx, invoice_id)
        invoice.pdf_path = pdf_path
        invoice.updated_by_id = ctx.user_id
        self.session.flush()
        self._invalidate(invoice.id)
        return InvoiceInfo.from_model(invoice)

    def delete_invoice(self, ctx: AuthContext, invoice_id: UUID) -> None:
        """Soft delete and release every entry the invoice claimed."""
        ctx.require_role(MANAGERS, "delete invoices")
        invoice = self._load(ctx, invoice_id)
        if invoice.status == InvoiceStatus.PAID:
            raise ConflictError(f"Invoice {invoice.invoice_number} is paid and cannot be deleted")

        entry_ids = [UUID(e) for e in invoice.entry_ids]
        released = self.session.execute(
            update(Entry)
            .where(Entry.invoice_id == invoice.id)
            .values(invoice_id=None, updated_by_id=ctx.user_id)
            .execution_options(synchronize_session=False)
        ).rowcount
        for entry_id in entry_ids:
            entry = self.session.get(Entry, entry_id)
            if entry is not None:
                self.session.expire(entry, ["invoice_id"])

        invoice.is_active = False
        invoice.updated_by_id = ctx.user_id
        self.session.flush()
        self._invalidate(invoice.id, entry_ids)
        logger.info(
            "invoice_deleted",
            extra={"invoice_id": invoice.id, "released_entries": released},
        )

    def _invalidate(self, invoice_id: UUID, entry_ids: list[UUID] = ()) -> None:
        keys = self.cache.keys
        self.cache.invalidate(
            self.session,
            keys=[keys.item(INVOICES, invoice_id)] + [keys.item(ENTRIES, e) for e in entry_ids],
            prefixes=[
                keys.list_prefix(INVOICES),
                keys.list_prefix(ENTRIES),
                keys.reports_prefix(),
                keys.dashboard_prefix(),
            ],
        )
