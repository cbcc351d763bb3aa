"""
PlantService -- plants (weighbridge sites).

Writes are admin only.  Vendors embed summaries of their linked plants, so
every plant write also clears vendor views and the static lookups.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from weighbridge_kernel.domain.auth import EVERYONE, AuthContext, Role
from weighbridge_kernel.domain.cache_keys import PLANTS, VENDORS
from weighbridge_kernel.domain.clock import Clock, SystemClock
from weighbridge_kernel.domain.dtos import Page, PlantChanges, PlantDraft, PlantInfo
from weighbridge_kernel.domain.filters import PlantFilter
from weighbridge_kernel.domain.numbering import PLANT_PREFIX
from weighbridge_kernel.exceptions import DuplicateCodeError, PlantNotFoundError, ValidationError
from weighbridge_kernel.logging_config import get_logger
from weighbridge_kernel.models.plant import Plant
from weighbridge_kernel.services.base import BaseService, paginate
from weighbridge_kernel.services.cache_service import CacheService
from weighbridge_kernel.services.sequence_service import SequenceService

logger = get_logger("services.plant")

ADMIN_ONLY = frozenset({Role.ADMIN})


class PlantService(BaseService[Plant]):
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

    def _load(self, plant_id: UUID) -> Plant:
        plant = self.session.get(Plant, plant_id)
        if plant is None or not plant.is_active:
            raise PlantNotFoundError(plant_id)
        return plant

    def get_plant(self, ctx: AuthContext, plant_id: UUID) -> PlantInfo:
        ctx.require_role(EVERYONE, "view plants")
        return self.cache.get_or_set(
            self.cache.keys.item(PLANTS, plant_id),
            self.cache.ttl.long,
            lambda: PlantInfo.from_model(self._load(plant_id)),
        )

    def list_plants(self, ctx: AuthContext, query: PlantFilter | None = None) -> Page[PlantInfo]:
        ctx.require_role(EVERYONE, "list plants")
        query = query or PlantFilter()

        def compute() -> Page[PlantInfo]:
            stmt = select(Plant).where(Plant.is_active.is_(True))
            if query.search:
                stmt = stmt.where(Plant.name.ilike(f"%{query.search}%"))
            stmt = stmt.order_by(Plant.name, Plant.id)
            return paginate(self.session, stmt, query, PlantInfo.from_model)

        return self.cache.get_or_set(
            self.cache.keys.list(PLANTS, query), self.cache.ttl.long, compute
        )

    # Writes

    def _check_name(self, name: str, exclude_id: UUID | None = None) -> str:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Plant name is required")
        stmt = select(Plant.id).where(func.lower(Plant.name) == name.lower())
        if exclude_id is not None:
            stmt = stmt.where(Plant.id != exclude_id)
        if self.session.execute(stmt).first() is not None:
            raise DuplicateCodeError("plant name", name)
        return name

    def create_plant(self, ctx: AuthContext, draft: PlantDraft) -> PlantInfo:
        ctx.require_role(ADMIN_ONLY, "create plants")
        name = self._check_name(draft.name)
        code = self.sequences.next_document_number(PLANT_PREFIX, self.clock.today().year)
        plant = Plant(
            code=code,
            name=name,
            location=draft.location,
            address=draft.address,
            state=draft.state,
            created_by_id=ctx.user_id,
        )
        self.session.add(plant)
        self.session.flush()
        self._invalidate(plant.id)
        logger.info("plant_created", extra={"plant_id": plant.id, "code": code})
        return PlantInfo.from_model(plant)

    def update_plant(self, ctx: AuthContext, plant_id: UUID, changes: PlantChanges) -> PlantInfo:
        ctx.require_role(ADMIN_ONLY, "update plants")
        plant = self._load(plant_id)
        supplied = changes.supplied()
        if "name" in supplied:
            supplied["name"] = self._check_name(supplied["name"], exclude_id=plant.id)
        for field, value in supplied.items():
            setattr(plant, field, value)
        plant.updated_by_id = ctx.user_id
        self.session.flush()
        self._invalidate(plant.id)
        logger.info("plant_updated", extra={"plant_id": plant.id, "fields": sorted(supplied)})
        return PlantInfo.from_model(plant)

    def delete_plant(self, ctx: AuthContext, plant_id: UUID) -> None:
        ctx.require_role(ADMIN_ONLY, "delete plants")
        plant = self._load(plant_id)
        plant.is_active = False
        plant.updated_by_id = ctx.user_id
        self.session.flush()
        self._invalidate(plant.id)
        logger.info("plant_deleted", extra={"plant_id": plant.id})

    def _invalidate(self, plant_id: UUID) -> None:
        keys = self.cache.keys
        self.cache.invalidate(
            self.session,
            keys=[keys.item(PLANTS, plant_id), keys.vendors_by_plant(plant_id)],
            prefixes=[
                keys.list_prefix(PLANTS),
                keys.namespace_prefix(VENDORS),
                keys.static_prefix(),
                keys.dashboard_prefix(),
            ],
        )
