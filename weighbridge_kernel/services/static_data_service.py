"""
StaticDataService -- cached dropdown lookups.

All lookups use the long TTL.  Plant, material and vendor writes clear the
corresponding keys.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from weighbridge_kernel.domain.auth import EVERYONE, AuthContext
from weighbridge_kernel.domain.dtos import LookupItem
from weighbridge_kernel.domain.values import VehicleType
from weighbridge_kernel.models.material import Material
from weighbridge_kernel.models.plant import Plant
from weighbridge_kernel.models.vendor import Vendor
from weighbridge_kernel.services.cache_service import CacheService


class StaticDataService:
    def __init__(self, session: Session, cache: CacheService):
        self.session = session
        self.cache = cache

    def plants_dropdown(self, ctx: AuthContext) -> tuple[LookupItem, ...]:
        ctx.require_role(EVERYONE, "list plants")

        def compute() -> tuple[LookupItem, ...]:
            rows = self.session.execute(
                select(Plant.id, Plant.name).where(Plant.is_active.is_(True)).order_by(Plant.name)
            ).all()
            return tuple(LookupItem(row.id, row.name) for row in rows)

        return self.cache.get_or_set(self.cache.keys.static("plants"), self.cache.ttl.long, compute)

    def vehicle_types(self, ctx: AuthContext) -> tuple[LookupItem, ...]:
        ctx.require_role(EVERYONE, "list vehicle types")
        return self.cache.get_or_set(
            self.cache.keys.static("vehicle_types"),
            self.cache.ttl.long,
            lambda: tuple(LookupItem(t.value, t.value.title()) for t in VehicleType),
        )

    def materials_dropdown(self, ctx: AuthContext) -> tuple[LookupItem, ...]:
        ctx.require_role(EVERYONE, "list materials")

        def compute() -> tuple[LookupItem, ...]:
            rows = self.session.execute(
                select(Material.id, Material.name)
                .where(Material.is_active.is_(True))
                .order_by(Material.name)
            ).all()
            return tuple(LookupItem(row.id, row.name) for row in rows)

        return self.cache.get_or_set(
            self.cache.keys.static("materials"), self.cache.ttl.long, compute
        )

    def vendors_for_plant(self, ctx: AuthContext, plant_id: UUID | None = None) -> tuple[LookupItem, ...]:
        """Active vendors linked to a plant.  Non-admins always get their own plant."""
        ctx.require_role(EVERYONE, "list vendors")
        plant_id = ctx.require_plant(plant_id)

        def compute() -> tuple[LookupItem, ...]:
            rows = self.session.execute(
                select(Vendor.id, Vendor.name)
                .where(
                    Vendor.is_active.is_(True),
                    Vendor.linked_plants.any(Plant.id == plant_id),
                )
                .order_by(Vendor.name)
            ).all()
            return tuple(LookupItem(row.id, row.name) for row in rows)

        return self.cache.get_or_set(
            self.cache.keys.vendors_by_plant(plant_id), self.cache.ttl.long, compute
        )
