"""
VendorService -- vendors and their plant links.

Writes need admin or supervisor.  Every write clears the vendor item, all
vendor lists and the vendors-by-plant lookup of every plant the vendor was
or is linked to, so the next read returns the new state.
"""

from __future__ import annotations

from typing import Iterable
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from weighbridge_kernel.domain.auth import EVERYONE, MANAGERS, AuthContext
from weighbridge_kernel.domain.cache_keys import VENDORS
from weighbridge_kernel.domain.clock import Clock, SystemClock
from weighbridge_kernel.domain.dtos import Page, VendorChanges, VendorDraft, VendorInfo
from weighbridge_kernel.domain.filters import VendorFilter
from weighbridge_kernel.domain.numbering import VENDOR_PREFIX
from weighbridge_kernel.exceptions import (
    DuplicateCodeError,
    PlantNotFoundError,
    ValidationError,
    VendorNotFoundError,
)
from weighbridge_kernel.logging_config import get_logger
from weighbridge_kernel.models.plant import Plant
from weighbridge_kernel.models.vendor import Vendor
from weighbridge_kernel.services.base import BaseService, paginate
from weighbridge_kernel.services.cache_service import CacheService
from weighbridge_kernel.services.sequence_service import SequenceService

logger = get_logger("services.vendor")


class VendorService(BaseService[Vendor]):
    def __init__(
        self,
        session: Session,
        cache: CacheService,
        clock: Clock | None = None,
        sequences: SequenceService | None = None,
    ):
        super().__init__(session)
        self.cache = cache
        self.clock = clock or SystemClock()
        self.sequences = sequences or SequenceService(session)

    # Reads

    def _load(self, vendor_id: UUID) -> Vendor:
        vendor = self.session.get(Vendor, vendor_id)
        if vendor is None or not vendor.is_active:
            raise VendorNotFoundError(vendor_id)
        return vendor

    def get_vendor(self, ctx: AuthContext, vendor_id: UUID) -> VendorInfo:
        ctx.require_role(EVERYONE, "view vendors")
        return self.cache.get_or_set(
            self.cache.keys.item(VENDORS, vendor_id),
            self.cache.ttl.long,
            lambda: VendorInfo.from_model(self._load(vendor_id)),
        )

    def list_vendors(self, ctx: AuthContext, query: VendorFilter | None = None) -> Page[VendorInfo]:
        ctx.require_role(EVERYONE, "list vendors")
        query = query or VendorFilter()

        def compute() -> Page[VendorInfo]:
            stmt = select(Vendor).where(Vendor.is_active.is_(True))
            if query.plant_id is not None:
                stmt = stmt.where(Vendor.linked_plants.any(Plant.id == query.plant_id))
            if query.search:
                pattern = f"%{query.search}%"
                stmt = stmt.where(or_(Vendor.name.ilike(pattern), Vendor.code.ilike(pattern)))
            stmt = stmt.order_by(Vendor.name, Vendor.id)
            return paginate(self.session, stmt, query, VendorInfo.from_model)

        return self.cache.get_or_set(
            self.cache.keys.list(VENDORS, query), self.cache.ttl.long, compute
        )

    # Writes

    def _resolve_plants(self, plant_ids: Iterable[UUID]) -> list[Plant]:
        plants = []
        for plant_id in dict.fromkeys(plant_ids):
            plant = self.session.get(Plant, plant_id)
            if plant is None or not plant.is_active:
                raise PlantNotFoundError(plant_id)
            plants.append(plant)
        return plants

    def _check_unique(self, name: str, gst_number: str | None, exclude_id: UUID | None = None) -> None:
        if gst_number:
            stmt = select(Vendor.id).where(Vendor.gst_number == gst_number)
            if exclude_id is not None:
                stmt = stmt.where(Vendor.id != exclude_id)
            if self.session.execute(stmt).first() is not None:
                raise DuplicateCodeError("gst_number", gst_number)
        stmt = select(Vendor.id).where(
            func.lower(Vendor.name) == name.lower(), Vendor.is_active.is_(True)
        )
        if exclude_id is not None:
            stmt = stmt.where(Vendor.id != exclude_id)
        if self.session.execute(stmt).first() is not None:
            raise DuplicateCodeError("vendor name", name)

    def create_vendor(self, ctx: AuthContext, draft: VendorDraft) -> VendorInfo:
        ctx.require_role(MANAGERS, "create vendors")
        name = (draft.name or "").strip()
        if not name:
            raise ValidationError("Vendor name is required")
        gst_number = (draft.gst_number or "").strip().upper() or None
        self._check_unique(name, gst_number)
        plants = self._resolve_plants(draft.linked_plant_ids)

        code = self.sequences.next_document_number(VENDOR_PREFIX, self.clock.today().year)
        vendor = Vendor(
            code=code,
            name=name,
            contact_person=draft.contact_person,
            phone=draft.phone,
            email=draft.email,
            address=draft.address,
            gst_number=gst_number,
            linked_plants=plants,
            created_by_id=ctx.user_id,
        )
        self.session.add(vendor)
        self.session.flush()
        self._invalidate(vendor.id, [p.id for p in plants])
        logger.info("vendor_created", extra={"vendor_id": vendor.id, "code": code})
        return VendorInfo.from_model(vendor)

    def update_vendor(self, ctx: AuthContext, vendor_id: UUID, changes: VendorChanges) -> VendorInfo:
        ctx.require_role(MANAGERS, "update vendors")
        vendor = self._load(vendor_id)
        supplied = changes.supplied()
        affected_plants = {p.id for p in vendor.linked_plants}

        if "name" in supplied:
            supplied["name"] = (supplied["name"] or "").strip()
            if not supplied["name"]:
                raise ValidationError("Vendor name is required")
        if "gst_number" in supplied:
            supplied["gst_number"] = (supplied["gst_number"] or "").strip().upper() or None
        self._check_unique(
            supplied.get("name", vendor.name),
            supplied.get("gst_number") if "gst_number" in supplied else None,
            exclude_id=vendor.id,
        )

        if "linked_plant_ids" in supplied:
            plants = self._resolve_plants(supplied.pop("linked_plant_ids") or ())
            vendor.linked_plants = plants
            affected_plants |= {p.id for p in plants}
        for field, value in supplied.items():
            setattr(vendor, field, value)
        vendor.updated_by_id = ctx.user_id
        self.session.flush()
        self._invalidate(vendor.id, affected_plants)
        logger.info("vendor_updated", extra={"vendor_id": vendor.id, "fields": sorted(supplied)})
        return VendorInfo.from_model(vendor)

    def delete_vendor(self, ctx: AuthContext, vendor_id: UUID) -> None:
        ctx.require_role(MANAGERS, "delete vendors")
        vendor = self._load(vendor_id)
        vendor.is_active = False
        vendor.updated_by_id = ctx.user_id
        self.session.flush()
        self._invalidate(vendor.id, [p.id for p in vendor.linked_plants])
        logger.info("vendor_deleted", extra={"vendor_id": vendor.id})

    def _invalidate(self, vendor_id: UUID, plant_ids: Iterable[UUID]) -> None:
        keys = self.cache.keys
        self.cache.invalidate(
            self.session,
            keys=[keys.item(VENDORS, vendor_id)] + [keys.vendors_by_plant(p) for p in plant_ids],
            prefixes=[keys.list_prefix(VENDORS)],
        )
