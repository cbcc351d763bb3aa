"""
EntryService -- weighbridge entries from first weighment to settlement.

Responsibility:
    Creates entries at the first weighment, settles them when the exit
    weight arrives, and runs the supervisor workflow (correction, review,
    flag, soft delete) on settled entries.  Issues receipts for settled,
    variance-clean entries.

Architecture position:
    Kernel > Services -- imperative shell.  Settlement arithmetic lives in
    ``domain.weighment``; this module loads, guards, persists, invalidates
    and publishes.

Invariants enforced:
    - exit_weight is written at most once.  Settlement persists through
      ``UPDATE entries .. WHERE id = :id AND exit_weight IS NULL``; a caller
      that loses the race updates nothing and gets EntryAlreadySettledError.
    - Weighments are immutable after settlement.  Quality, rate and packing
      corrections recompute every derived field.
    - Review and flag apply only to settled entries; a flagged entry cannot
      be marked reviewed.  Reviewed or invoiced entries are locked.
    - Corrections and deletes first run a conditional UPDATE
      (``WHERE invoice_id IS NULL``) on the row, so they cannot slip in
      behind an invoice claim made by another session.
    - Non-admin callers act only on their own plant.  Operators list only
      their own entries from the last 24 hours.
    - Every mutation clears the entry item, all entry lists, report and
      dashboard views, both immediately and after commit.

Failure modes:
    - EntryNotFoundError, VendorNotFoundError, VehicleNotFoundError,
      PlantNotFoundError, MaterialNotFoundError (NOT_FOUND).
    - EntryAlreadySettledError, EntryNotSettledError, EntryLockedError
      (CONFLICT).
    - InvalidWeighmentError, PercentageOutOfRangeError, ValidationError
      (VALIDATION).
    - ForbiddenError / PlantScopeError / ReceiptWithheldError (FORBIDDEN).
    - SequenceUnavailableError (DEPENDENCY) when numbering fails on create.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from weighbridge_kernel.domain.auth import EVERYONE, MANAGERS, AuthContext, Role
from weighbridge_kernel.domain.cache_keys import ENTRIES, VEHICLES
from weighbridge_kernel.domain.clock import Clock, SystemClock
from weighbridge_kernel.domain.dtos import (
    EntryChanges,
    EntryDraft,
    EntryInfo,
    EntryReceipt,
    ExitWeighment,
    Page,
)
from weighbridge_kernel.domain.events import EntrySettled
from weighbridge_kernel.domain.filters import EntryFilter
from weighbridge_kernel.domain.numbering import ENTRY_PREFIX
from weighbridge_kernel.domain.values import (
    EntryStatus,
    EntryType,
    PalletteType,
    quantize_weight,
    to_decimal,
)
from weighbridge_kernel.domain.weighment import (
    WeighmentInput,
    WeighmentResult,
    check_percentage,
    packed_weight_for,
    settle,
)
from weighbridge_kernel.exceptions import (
    EntryAlreadySettledError,
    EntryLockedError,
    EntryNotFoundError,
    EntryNotSettledError,
    InvalidWeighmentError,
    MaterialNotFoundError,
    PlantNotFoundError,
    ReceiptWithheldError,
    ValidationError,
    VehicleNotFoundError,
    VendorNotFoundError,
)
from weighbridge_kernel.logging_config import LogContext, get_logger
from weighbridge_kernel.models.entry import Entry
from weighbridge_kernel.models.material import Material
from weighbridge_kernel.models.plant import Plant
from weighbridge_kernel.models.vehicle import Vehicle
from weighbridge_kernel.models.vendor import Vendor
from weighbridge_kernel.services.base import BaseService, paginate
from weighbridge_kernel.services.cache_service import CacheService
from weighbridge_kernel.services.event_publisher import EventPublisher
from weighbridge_kernel.services.sequence_service import SequenceService

logger = get_logger("services.entry")

OPERATOR_WINDOW = timedelta(hours=24)

_WEIGHMENT_FIELDS = (
    "gross_weight",
    "moisture_weight",
    "dust_weight",
    "quantity",
    "packed_weight",
    "expected_weight",
    "variance_pct",
    "variance_flag",
    "variance_reason",
    "total_amount",
)


def _non_negative_rate(value) -> Decimal | None:
    if value is None:
        return None
    rate = to_decimal(value)
    if rate < 0:
        raise ValidationError(f"rate cannot be negative, got {value}")
    return rate


class EntryService(BaseService[Entry]):
    """
    Entry lifecycle service.

    Usage:
        with session_scope() as session:
            service = EntryService(session, cache, tolerance_pct=config.variance.tolerance_pct)
            info = service.finalize_entry(ctx, entry_id, ExitWeighment(Decimal("1800")))
    """

    def __init__(
        self,
        session: Session,
        cache: CacheService,
        tolerance_pct: Decimal,
        clock: Clock | None = None,
        sequences: SequenceService | None = None,
        events: EventPublisher | None = None,
    ):
        super().__init__(session)
        self.cache = cache
        self.tolerance_pct = to_decimal(tolerance_pct)
        self.clock = clock or SystemClock()
        self.sequences = sequences or SequenceService(session)
        self.events = events or EventPublisher()

    # ------------------------------------------------------------------
    # Loading helpers
    # ------------------------------------------------------------------

    def _load(self, ctx: AuthContext, entry_id: UUID) -> Entry:
        entry = self.session.get(Entry, entry_id)
        if entry is None or not entry.is_active:
            raise EntryNotFoundError(entry_id)
        ctx.check_plant_access(entry.plant_id)
        return entry

    def _vendor(self, vendor_id: UUID) -> Vendor:
        vendor = self.session.get(Vendor, vendor_id)
        if vendor is None or not vendor.is_active:
            raise VendorNotFoundError(vendor_id)
        return vendor

    def _vehicle(self, vehicle_id: UUID) -> Vehicle:
        vehicle = self.session.get(Vehicle, vehicle_id)
        if vehicle is None or not vehicle.is_active:
            raise VehicleNotFoundError(vehicle_id)
        return vehicle

    def _plant(self, plant_id: UUID) -> Plant:
        plant = self.session.get(Plant, plant_id)
        if plant is None or not plant.is_active:
            raise PlantNotFoundError(plant_id)
        return plant

    def _material(self, material_id: UUID) -> Material:
        material = self.session.get(Material, material_id)
        if material is None or not material.is_active:
            raise MaterialNotFoundError(material_id)
        return material

    def _take_unbilled(self, ctx: AuthContext, entry: Entry, reviewed_locks: bool = True) -> None:
        """
        Conditionally write the entry row before changing it.

        The UPDATE waits behind a concurrent invoice claim and matches
        nothing once the entry is invoiced (or reviewed, when
        ``reviewed_locks``), so a caller holding a stale copy cannot write
        over a billed entry.  The row stays locked until the transaction
        ends, and ``entry`` is refreshed from it.
        """
        conditions = [Entry.id == entry.id, Entry.is_active.is_(True), Entry.invoice_id.is_(None)]
        if reviewed_locks:
            conditions.append(Entry.is_reviewed.is_(False))
        taken = self.session.execute(
            update(Entry)
            .where(*conditions)
            .values(updated_by_id=ctx.user_id)
            .execution_options(synchronize_session=False)
        ).rowcount
        self.session.refresh(entry)
        if taken == 1:
            return
        if not entry.is_active:
            raise EntryNotFoundError(entry.id)
        if entry.invoice_id is not None:
            raise EntryLockedError(entry.id, "entry is invoiced")
        raise EntryLockedError(entry.id, "entry is reviewed")

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_entry(self, ctx: AuthContext, draft: EntryDraft) -> EntryInfo:
        """Record the first weighment.  The entry starts OPEN."""
        ctx.require_role(EVERYONE, "create entries")
        entry_type = EntryType(draft.entry_type)
        plant_id = ctx.require_plant(draft.plant_id)

        entry_weight = quantize_weight(draft.entry_weight)
        if entry_weight <= 0:
            raise InvalidWeighmentError(
                entry_type.value, entry_weight, None, "Entry weight must be positive"
            )

        self._vehicle(draft.vehicle_id)
        vendor = self._vendor(draft.vendor_id)
        self._plant(plant_id)
        if not vendor.is_linked_to(plant_id):
            raise ValidationError("Vendor is not linked to this plant")

        material_id = moisture = dust = None
        pallette_type = no_of_bags = weight_per_bag = packed_weight = None
        if entry_type == EntryType.PURCHASE:
            if draft.material_id is None:
                raise ValidationError("material_id is required for purchase entry")
            material_id = self._material(draft.material_id).id
            moisture = check_percentage("moisture", draft.moisture)
            dust = check_percentage("dust", draft.dust)
        else:
            pallette_type = PalletteType(draft.pallette_type) if draft.pallette_type else None
            if pallette_type == PalletteType.PACKED:
                packed_weight = packed_weight_for(draft.no_of_bags, draft.weight_per_bag)
                no_of_bags = int(draft.no_of_bags)
                weight_per_bag = to_decimal(draft.weight_per_bag)

        number = self.sequences.next_document_number(ENTRY_PREFIX, self.clock.today().year)
        entry = Entry(
            entry_number=number,
            entry_type=entry_type,
            status=EntryStatus.OPEN,
            vendor_id=vendor.id,
            vehicle_id=draft.vehicle_id,
            plant_id=plant_id,
            material_id=material_id,
            entry_weight=entry_weight,
            manual_weight=bool(draft.manual_weight),
            moisture=moisture,
            dust=dust,
            pallette_type=pallette_type,
            no_of_bags=no_of_bags,
            weight_per_bag=weight_per_bag,
            packed_weight=packed_weight,
            rate=_non_negative_rate(draft.rate),
            driver_name=draft.driver_name,
            driver_phone=draft.driver_phone,
            entry_date=draft.entry_date or self.clock.now(),
            created_by_id=ctx.user_id,
        )
        self.session.add(entry)
        self.session.flush()
        self._invalidate(entry.id)

        logger.info(
            "entry_created",
            extra={
                "entry_id": entry.id,
                "entry_number": number,
                "entry_type": entry_type,
                "plant_id": plant_id,
                "actor_id": ctx.user_id,
            },
        )
        return EntryInfo.from_model(entry)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_entry(self, ctx: AuthContext, entry_id: UUID) -> EntryInfo:
        ctx.require_role(EVERYONE, "view entries")

        def compute() -> EntryInfo:
            entry = self.session.get(Entry, entry_id)
            if entry is None or not entry.is_active:
                raise EntryNotFoundError(entry_id)
            return EntryInfo.from_model(entry)

        info = self.cache.get_or_set(
            self.cache.keys.item(ENTRIES, entry_id), self.cache.ttl.short, compute
        )
        ctx.check_plant_access(info.plant_id)
        return info

    def effective_filter(self, ctx: AuthContext, query: EntryFilter) -> EntryFilter:
        """
        Narrow ``query`` to what the caller may see.

        Supervisors are pinned to their plant.  Operators are additionally
        pinned to their own entries dated within the last 24 hours (window
        start truncated to the minute so the cache key is stable).
        """
        if ctx.is_admin:
            return query
        scoped = query.with_changes(plant_id=ctx.resolve_plant(query.plant_id))
        if ctx.role == Role.OPERATOR:
            window_start = (self.clock.now() - OPERATOR_WINDOW).replace(second=0, microsecond=0)
            date_from = scoped.date_from
            if date_from is None or date_from < window_start:
                date_from = window_start
            scoped = scoped.with_changes(created_by_id=ctx.user_id, date_from=date_from)
        return scoped

    def list_entries(self, ctx: AuthContext, query: EntryFilter | None = None) -> Page[EntryInfo]:
        ctx.require_role(EVERYONE, "list entries")
        effective = self.effective_filter(ctx, query or EntryFilter())

        def compute() -> Page[EntryInfo]:
            stmt = select(Entry).where(Entry.is_active.is_(True))
            if effective.entry_type is not None:
                stmt = stmt.where(Entry.entry_type == effective.entry_type)
            if effective.status is not None:
                stmt = stmt.where(Entry.status == effective.status)
            if effective.vendor_id is not None:
                stmt = stmt.where(Entry.vendor_id == effective.vendor_id)
            if effective.plant_id is not None:
                stmt = stmt.where(Entry.plant_id == effective.plant_id)
            if effective.vehicle_id is not None:
                stmt = stmt.where(Entry.vehicle_id == effective.vehicle_id)
            if effective.created_by_id is not None:
                stmt = stmt.where(Entry.created_by_id == effective.created_by_id)
            if effective.is_reviewed is not None:
                stmt = stmt.where(Entry.is_reviewed.is_(effective.is_reviewed))
            if effective.flagged is not None:
                stmt = stmt.where(Entry.flagged.is_(effective.flagged))
            if effective.variance_flag is not None:
                stmt = stmt.where(Entry.variance_flag.is_(effective.variance_flag))
            if effective.invoiced is True:
                stmt = stmt.where(Entry.invoice_id.is_not(None))
            elif effective.invoiced is False:
                stmt = stmt.where(Entry.invoice_id.is_(None))
            if effective.date_from is not None:
                stmt = stmt.where(Entry.entry_date >= effective.date_from)
            if effective.date_to is not None:
                stmt = stmt.where(Entry.entry_date <= effective.date_to)
            stmt = stmt.order_by(Entry.entry_date.desc(), Entry.entry_number.desc())
            return paginate(self.session, stmt, effective, EntryInfo.from_model)

        return self.cache.get_or_set(
            self.cache.keys.list(ENTRIES, effective), self.cache.ttl.short, compute
        )

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    def finalize_entry(self, ctx: AuthContext, entry_id: UUID, weighment: ExitWeighment) -> EntryInfo:
        """
        Record the exit weighment and settle the entry.

        Raises:
            EntryNotFoundError: unknown or deleted entry.
            EntryAlreadySettledError: exit weight already recorded, including
                by a concurrent caller that won the race.
            InvalidWeighmentError: weighments in the wrong order.
        """
        ctx.require_role(EVERYONE, "record exit weight")
        with LogContext.bind(entry_id=entry_id, actor_id=ctx.user_id) as log_ctx:
            entry = self._load(ctx, entry_id)
            log_ctx.update(entry_number=entry.entry_number, plant_id=entry.plant_id)
            if entry.exit_weight is not None:
                raise EntryAlreadySettledError(entry_id)

            vehicle = self.session.get(Vehicle, entry.vehicle_id)
            packing = self._exit_packing(entry, weighment)
            is_purchase = entry.entry_type == EntryType.PURCHASE
            moisture = weighment.moisture if weighment.moisture is not None else entry.moisture
            dust = weighment.dust if weighment.dust is not None else entry.dust

            result = settle(
                WeighmentInput(
                    entry_type=entry.entry_type,
                    entry_weight=entry.entry_weight,
                    exit_weight=quantize_weight(weighment.exit_weight),
                    moisture=moisture if is_purchase else None,
                    dust=dust if is_purchase else None,
                    pallette_type=packing.get("pallette_type"),
                    no_of_bags=packing.get("no_of_bags"),
                    weight_per_bag=packing.get("weight_per_bag"),
                    rate=entry.rate,
                    tare_weight=vehicle.tare_weight if vehicle is not None else None,
                ),
                self.tolerance_pct,
            )

            settled_at = self.clock.now()
            values = {name: getattr(result, name) for name in _WEIGHMENT_FIELDS}
            values.update(packing)
            if is_purchase:
                values.update(
                    moisture=check_percentage("moisture", moisture),
                    dust=check_percentage("dust", dust),
                )
            values.update(
                exit_weight=quantize_weight(weighment.exit_weight),
                status=EntryStatus.SETTLED,
                settled_at=settled_at,
                updated_by_id=ctx.user_id,
            )

            claimed = self.session.execute(
                update(Entry)
                .where(
                    Entry.id == entry.id,
                    Entry.exit_weight.is_(None),
                    Entry.is_active.is_(True),
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            ).rowcount
            if claimed != 1:
                logger.warning("entry_settlement_conflict")
                raise EntryAlreadySettledError(entry_id)
            self.session.refresh(entry)

            if vehicle is not None and vehicle.tare_weight is None:
                self._learn_tare(vehicle, result)

            self._invalidate(entry.id)
            self.events.publish_after_commit(
                self.session,
                EntrySettled(
                    entry_id=entry.id,
                    entry_number=entry.entry_number,
                    entry_type=entry.entry_type,
                    plant_id=entry.plant_id,
                    vendor_id=entry.vendor_id,
                    quantity=result.quantity,
                    variance_flag=result.variance_flag,
                    settled_at=settled_at,
                ),
            )
            logger.info(
                "entry_settled",
                extra={
                    "gross_weight": result.gross_weight,
                    "quantity": result.quantity,
                    "expected_weight": result.expected_weight,
                    "variance_pct": result.variance_pct,
                    "variance_flag": result.variance_flag,
                },
            )
            return EntryInfo.from_model(entry)

    def _exit_packing(self, entry: Entry, weighment: ExitWeighment) -> dict:
        """Packing fields for a sale as known at exit; empty for purchases."""
        if entry.entry_type != EntryType.SALE:
            return {}
        pallette_type = weighment.pallette_type or entry.pallette_type
        if pallette_type is None:
            return {"pallette_type": None, "no_of_bags": None, "weight_per_bag": None}
        pallette_type = PalletteType(pallette_type)
        if pallette_type == PalletteType.LOOSE:
            return {"pallette_type": pallette_type, "no_of_bags": None, "weight_per_bag": None}
        no_of_bags = weighment.no_of_bags if weighment.no_of_bags is not None else entry.no_of_bags
        weight_per_bag = (
            weighment.weight_per_bag
            if weighment.weight_per_bag is not None
            else entry.weight_per_bag
        )
        packed_weight_for(no_of_bags, weight_per_bag)
        return {
            "pallette_type": pallette_type,
            "no_of_bags": int(no_of_bags),
            "weight_per_bag": to_decimal(weight_per_bag),
        }

    def _learn_tare(self, vehicle: Vehicle, result: WeighmentResult) -> None:
        """Record the unladen weighment as the vehicle's tare if none is known yet."""
        learned = self.session.execute(
            update(Vehicle)
            .where(Vehicle.id == vehicle.id, Vehicle.tare_weight.is_(None))
            .values(tare_weight=result.unladen_weight)
            .execution_options(synchronize_session=False)
        ).rowcount
        self.session.expire(vehicle, ["tare_weight"])
        if learned:
            keys = self.cache.keys
            self.cache.invalidate(
                self.session,
                keys=[keys.item(VEHICLES, vehicle.id)],
                prefixes=[keys.list_prefix(VEHICLES)],
            )
            logger.info(
                "vehicle_tare_learned",
                extra={"vehicle_id": vehicle.id, "tare_weight": result.unladen_weight},
            )

    # ------------------------------------------------------------------
    # Supervisor workflow
    # ------------------------------------------------------------------

    def update_entry(self, ctx: AuthContext, entry_id: UUID, changes: EntryChanges) -> EntryInfo:
        """
        Correct an entry.

        Open entries accept any field except the exit weight.  Settled
        entries accept corrections only while their variance flag is raised,
        or when the change itself clears the flag; weighments stay fixed.
        Reviewed and invoiced entries are locked.
        """
        ctx.require_role(MANAGERS, "update entries")
        entry = self._load(ctx, entry_id)
        self._take_unbilled(ctx, entry)

        supplied = changes.supplied()
        if not supplied:
            return EntryInfo.from_model(entry)

        clearing = False
        if "variance_flag" in supplied:
            if supplied["variance_flag"] is not False:
                raise ValidationError("variance_flag can only be cleared")
            if not entry.is_settled:
                raise EntryNotSettledError(entry_id, "clear variance on")
            clearing = True

        if entry.is_settled:
            if "entry_weight" in supplied or "exit_weight" in supplied:
                raise EntryLockedError(entry_id, "weighments are immutable after settlement")
            if entry.variance_flag is not True and not clearing:
                raise EntryLockedError(entry_id, "variance is not raised")
        elif "exit_weight" in supplied:
            raise ValidationError("Exit weight is recorded through finalization")

        prior_pallette = entry.pallette_type
        self._apply_changes(entry, supplied)

        if entry.is_settled:
            self._recompute(entry, prior_pallette)
            if clearing:
                entry.variance_flag = False
                entry.variance_reason = supplied.get("variance_reason")
        elif entry.entry_type == EntryType.SALE:
            entry.packed_weight = (
                packed_weight_for(entry.no_of_bags, entry.weight_per_bag)
                if entry.pallette_type == PalletteType.PACKED
                else None
            )

        entry.updated_by_id = ctx.user_id
        self.session.flush()
        self._invalidate(entry.id)
        logger.info(
            "entry_updated",
            extra={"entry_id": entry.id, "fields": sorted(supplied), "cleared_variance": clearing},
        )
        return EntryInfo.from_model(entry)

    def _apply_changes(self, entry: Entry, supplied: dict) -> None:
        if "vendor_id" in supplied:
            vendor = self._vendor(supplied["vendor_id"])
            if not vendor.is_linked_to(entry.plant_id):
                raise ValidationError("Vendor is not linked to this plant")
            entry.vendor_id = vendor.id
        if "vehicle_id" in supplied:
            entry.vehicle_id = self._vehicle(supplied["vehicle_id"]).id
        if "entry_weight" in supplied:
            weight = quantize_weight(supplied["entry_weight"])
            if weight <= 0:
                raise InvalidWeighmentError(
                    entry.entry_type.value, weight, None, "Entry weight must be positive"
                )
            entry.entry_weight = weight
        if "rate" in supplied:
            entry.rate = _non_negative_rate(supplied["rate"])

        if entry.entry_type == EntryType.PURCHASE:
            if "material_id" in supplied:
                if supplied["material_id"] is None:
                    raise ValidationError("material_id is required for purchase entry")
                entry.material_id = self._material(supplied["material_id"]).id
            if "moisture" in supplied:
                entry.moisture = check_percentage("moisture", supplied["moisture"])
            if "dust" in supplied:
                entry.dust = check_percentage("dust", supplied["dust"])
        else:
            if "pallette_type" in supplied:
                value = supplied["pallette_type"]
                entry.pallette_type = PalletteType(value) if value else None
            if "no_of_bags" in supplied:
                entry.no_of_bags = supplied["no_of_bags"]
            if "weight_per_bag" in supplied:
                value = supplied["weight_per_bag"]
                entry.weight_per_bag = to_decimal(value) if value is not None else None
            if entry.pallette_type != PalletteType.PACKED:
                entry.no_of_bags = None
                entry.weight_per_bag = None

        for field in ("manual_weight", "driver_name", "driver_phone", "entry_date"):
            if field in supplied:
                setattr(entry, field, supplied[field])

    def _recompute(self, entry: Entry, prior_pallette: PalletteType | None) -> None:
        """Re-derive settled figures from the fixed weighments."""
        prior_expected = None
        if prior_pallette != PalletteType.PACKED:
            prior_expected = entry.expected_weight
        result = settle(
            WeighmentInput(
                entry_type=entry.entry_type,
                entry_weight=entry.entry_weight,
                exit_weight=entry.exit_weight,
                moisture=entry.moisture,
                dust=entry.dust,
                pallette_type=entry.pallette_type,
                no_of_bags=entry.no_of_bags,
                weight_per_bag=entry.weight_per_bag,
                rate=entry.rate,
                expected_weight=prior_expected,
            ),
            self.tolerance_pct,
        )
        for name in _WEIGHMENT_FIELDS:
            setattr(entry, name, getattr(result, name))

    def review_entry(
        self,
        ctx: AuthContext,
        entry_id: UUID,
        is_reviewed: bool = True,
        review_notes: str | None = None,
    ) -> EntryInfo:
        ctx.require_role(MANAGERS, "review entries")
        entry = self._load(ctx, entry_id)
        if not entry.is_settled:
            raise EntryNotSettledError(entry_id, "review")
        if is_reviewed and entry.flagged:
            raise EntryLockedError(entry_id, "a flagged entry cannot be reviewed")

        entry.is_reviewed = bool(is_reviewed)
        if entry.is_reviewed:
            entry.reviewed_by_id = ctx.user_id
            entry.reviewed_at = self.clock.now()
        else:
            entry.reviewed_by_id = None
            entry.reviewed_at = None
        entry.review_notes = review_notes
        entry.updated_by_id = ctx.user_id
        self.session.flush()
        self._invalidate(entry.id)
        logger.info("entry_reviewed", extra={"entry_id": entry.id, "is_reviewed": entry.is_reviewed})
        return EntryInfo.from_model(entry)

    def flag_entry(
        self,
        ctx: AuthContext,
        entry_id: UUID,
        flagged: bool = True,
        flag_reason: str | None = None,
    ) -> EntryInfo:
        ctx.require_role(MANAGERS, "flag entries")
        entry = self._load(ctx, entry_id)
        if not entry.is_settled:
            raise EntryNotSettledError(entry_id, "flag")
        entry.flagged = bool(flagged)
        entry.flag_reason = flag_reason if entry.flagged else None
        entry.updated_by_id = ctx.user_id
        self.session.flush()
        self._invalidate(entry.id)
        logger.info("entry_flagged", extra={"entry_id": entry.id, "flagged": entry.flagged})
        return EntryInfo.from_model(entry)

    def delete_entry(self, ctx: AuthContext, entry_id: UUID) -> None:
        """Soft delete.  The row stays for audit but leaves every view."""
        ctx.require_role(MANAGERS, "delete entries")
        entry = self._load(ctx, entry_id)
        self._take_unbilled(ctx, entry, reviewed_locks=False)
        entry.is_active = False
        entry.updated_by_id = ctx.user_id
        self.session.flush()
        self._invalidate(entry.id)
        logger.info("entry_deleted", extra={"entry_id": entry.id})

    def attach_pdf(self, ctx: AuthContext, entry_id: UUID, pdf_path: str) -> EntryInfo:
        """Store where the rendered receipt was written."""
        ctx.require_role(EVERYONE, "attach receipts")
        entry = self._load(ctx, entry_id)
        if not entry.is_settled:
            raise EntryNotSettledError(entry_id, "attach a receipt to")
        entry.pdf_path = pdf_path
        self.session.flush()
        self._invalidate(entry.id)
        return EntryInfo.from_model(entry)

    # ------------------------------------------------------------------
    # Receipts
    # ------------------------------------------------------------------

    def receipt_for(self, ctx: AuthContext, entry_id: UUID) -> EntryReceipt:
        """
        Build the weighment slip.

        Raises:
            ReceiptWithheldError: the entry is not settled or its variance
                flag is raised.
        """
        ctx.require_role(EVERYONE, "view receipts")
        entry = self._load(ctx, entry_id)
        if not entry.is_settled:
            raise ReceiptWithheldError(entry_id, "entry is not settled")
        if entry.variance_flag:
            raise ReceiptWithheldError(entry_id, "weight variance is flagged")

        plant = self.session.get(Plant, entry.plant_id)
        vendor = self.session.get(Vendor, entry.vendor_id)
        vehicle = self.session.get(Vehicle, entry.vehicle_id)
        material = self.session.get(Material, entry.material_id) if entry.material_id else None
        return EntryReceipt(
            entry_id=entry.id,
            entry_number=entry.entry_number,
            entry_type=entry.entry_type,
            plant_name=plant.name,
            vendor_name=vendor.name,
            vehicle_number=vehicle.vehicle_number,
            material_name=material.name if material else None,
            entry_weight=entry.entry_weight,
            exit_weight=entry.exit_weight,
            gross_weight=entry.gross_weight,
            moisture_weight=entry.moisture_weight,
            dust_weight=entry.dust_weight,
            quantity=entry.quantity,
            rate=entry.rate,
            total_amount=entry.total_amount,
            driver_name=entry.driver_name,
            entry_date=entry.entry_date,
            settled_at=entry.settled_at,
        )

    # ------------------------------------------------------------------
    # Cache invalidation
    # ------------------------------------------------------------------

    def _invalidate(self, *entry_ids: UUID) -> None:
        keys = self.cache.keys
        self.cache.invalidate(
            self.session,
            keys=[keys.item(ENTRIES, e) for e in entry_ids],
            prefixes=[
                keys.list_prefix(ENTRIES),
                keys.reports_prefix(),
                keys.dashboard_prefix(),
            ],
        )
