"""
VehicleService -- vehicles crossing the weighbridge.

Vehicle numbers are normalized (upper case, no spaces) before the
uniqueness check on (vehicle_number, vehicle_type).  Writes need admin or
supervisor.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from weighbridge_kernel.domain.auth import EVERYONE, MANAGERS, AuthContext
from weighbridge_kernel.domain.cache_keys import VEHICLES
from weighbridge_kernel.domain.clock import Clock, SystemClock
from weighbridge_kernel.domain.dtos import Page, VehicleChanges, VehicleDraft, VehicleInfo
from weighbridge_kernel.domain.filters import VehicleFilter
from weighbridge_kernel.domain.numbering import VEHICLE_PREFIX
from weighbridge_kernel.domain.values import VehicleType, quantize_weight
from weighbridge_kernel.exceptions import DuplicateCodeError, ValidationError, VehicleNotFoundError
from weighbridge_kernel.logging_config import get_logger
from weighbridge_kernel.models.vehicle import Vehicle
from weighbridge_kernel.services.base import BaseService, paginate
from weighbridge_kernel.services.cache_service import CacheService
from weighbridge_kernel.services.sequence_service import SequenceService

logger = get_logger("services.vehicle")


def normalize_vehicle_number(number: str) -> str:
    return "".join((number or "").split()).upper()


def _positive_weight(value, field: str) -> Decimal | None:
    if value is None:
        return None
    weight = quantize_weight(value)
    if weight <= 0:
        raise ValidationError(f"{field} must be positive, got {value}")
    return weight


class VehicleService(BaseService[Vehicle]):
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

    def _load(self, vehicle_id: UUID) -> Vehicle:
        vehicle = self.session.get(Vehicle, vehicle_id)
        if vehicle is None or not vehicle.is_active:
            raise VehicleNotFoundError(vehicle_id)
        return vehicle

    def get_vehicle(self, ctx: AuthContext, vehicle_id: UUID) -> VehicleInfo:
        ctx.require_role(EVERYONE, "view vehicles")
        return self.cache.get_or_set(
            self.cache.keys.item(VEHICLES, vehicle_id),
            self.cache.ttl.long,
            lambda: VehicleInfo.from_model(self._load(vehicle_id)),
        )

    def list_vehicles(self, ctx: AuthContext, query: VehicleFilter | None = None) -> Page[VehicleInfo]:
        ctx.require_role(EVERYONE, "list vehicles")
        query = query or VehicleFilter()

        def compute() -> Page[VehicleInfo]:
            stmt = select(Vehicle).where(Vehicle.is_active.is_(True))
            if query.vehicle_type is not None:
                stmt = stmt.where(Vehicle.vehicle_type == query.vehicle_type)
            if query.search:
                pattern = f"%{normalize_vehicle_number(query.search)}%"
                stmt = stmt.where(or_(Vehicle.vehicle_number.like(pattern), Vehicle.code.like(pattern)))
            stmt = stmt.order_by(Vehicle.vehicle_number, Vehicle.id)
            return paginate(self.session, stmt, query, VehicleInfo.from_model)

        return self.cache.get_or_set(
            self.cache.keys.list(VEHICLES, query), self.cache.ttl.long, compute
        )

    def _check_unique(self, number: str, vehicle_type: VehicleType, exclude_id: UUID | None = None) -> None:
        stmt = select(Vehicle.id).where(
            Vehicle.vehicle_number == number, Vehicle.vehicle_type == vehicle_type
        )
        if exclude_id is not None:
            stmt = stmt.where(Vehicle.id != exclude_id)
        if self.session.execute(stmt).first() is not None:
            raise DuplicateCodeError("vehicle", f"{number} ({vehicle_type.value})")

    def create_vehicle(self, ctx: AuthContext, draft: VehicleDraft) -> VehicleInfo:
        ctx.require_role(MANAGERS, "create vehicles")
        number = normalize_vehicle_number(draft.vehicle_number)
        if not number:
            raise ValidationError("Vehicle number is required")
        vehicle_type = VehicleType(draft.vehicle_type)
        self._check_unique(number, vehicle_type)

        code = self.sequences.next_document_number(VEHICLE_PREFIX, self.clock.today().year)
        vehicle = Vehicle(
            code=code,
            vehicle_number=number,
            vehicle_type=vehicle_type,
            capacity=_positive_weight(draft.capacity, "capacity"),
            tare_weight=_positive_weight(draft.tare_weight, "tare_weight"),
            owner_name=draft.owner_name,
            driver_name=draft.driver_name,
            driver_phone=draft.driver_phone,
            created_by_id=ctx.user_id,
        )
        self.session.add(vehicle)
        self.session.flush()
        self._invalidate(vehicle.id)
        logger.info("vehicle_created", extra={"vehicle_id": vehicle.id, "code": code})
        return VehicleInfo.from_model(vehicle)

    def update_vehicle(self, ctx: AuthContext, vehicle_id: UUID, changes: VehicleChanges) -> VehicleInfo:
        ctx.require_role(MANAGERS, "update vehicles")
        vehicle = self._load(vehicle_id)
        supplied = changes.supplied()
        if "vehicle_number" in supplied:
            supplied["vehicle_number"] = normalize_vehicle_number(supplied["vehicle_number"])
            if not supplied["vehicle_number"]:
                raise ValidationError("Vehicle number is required")
        if "vehicle_type" in supplied:
            supplied["vehicle_type"] = VehicleType(supplied["vehicle_type"])
        for field in ("capacity", "tare_weight"):
            if field in supplied:
                supplied[field] = _positive_weight(supplied[field], field)
        if "vehicle_number" in supplied or "vehicle_type" in supplied:
            self._check_unique(
                supplied.get("vehicle_number", vehicle.vehicle_number),
                supplied.get("vehicle_type", vehicle.vehicle_type),
                exclude_id=vehicle.id,
            )
        for field, value in supplied.items():
            setattr(vehicle, field, value)
        vehicle.updated_by_id = ctx.user_id
        self.session.flush()
        self._invalidate(vehicle.id)
        logger.info("vehicle_updated", extra={"vehicle_id": vehicle.id, "fields": sorted(supplied)})
        return VehicleInfo.from_model(vehicle)

    def delete_vehicle(self, ctx: AuthContext, vehicle_id: UUID) -> None:
        ctx.require_role(MANAGERS, "delete vehicles")
        vehicle = self._load(vehicle_id)
        vehicle.is_active = False
        vehicle.updated_by_id = ctx.user_id
        self.session.flush()
        self._invalidate(vehicle.id)
        logger.info("vehicle_deleted", extra={"vehicle_id": vehicle.id})

    def _invalidate(self, vehicle_id: UUID) -> None:
        keys = self.cache.keys
        self.cache.invalidate(
            self.session,
            keys=[keys.item(VEHICLES, vehicle_id)],
            prefixes=[keys.list_prefix(VEHICLES)],
        )
