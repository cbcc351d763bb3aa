"""
MaterialService -- purchasable material types.

Names are unique case-insensitively.  Writes need admin or supervisor and
clear the material views and the material dropdown.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from weighbridge_kernel.domain.auth import EVERYONE, MANAGERS, AuthContext
from weighbridge_kernel.domain.cache_keys import MATERIALS
from weighbridge_kernel.domain.dtos import MaterialDraft, MaterialInfo, Page
from weighbridge_kernel.domain.filters import MaterialFilter
from weighbridge_kernel.exceptions import DuplicateCodeError, MaterialNotFoundError, ValidationError
from weighbridge_kernel.logging_config import get_logger
from weighbridge_kernel.models.material import Material
from weighbridge_kernel.services.base import BaseService, paginate
from weighbridge_kernel.services.cache_service import CacheService

logger = get_logger("services.material")


class MaterialService(BaseService[Material]):
    def __init__(self, session: Session, cache: CacheService):
        super().__init__(session)
        self.cache = cache

    def _load(self, material_id: UUID) -> Material:
        material = self.session.get(Material, material_id)
        if material is None or not material.is_active:
            raise MaterialNotFoundError(material_id)
        return material

    def get_material(self, ctx: AuthContext, material_id: UUID) -> MaterialInfo:
        ctx.require_role(EVERYONE, "view materials")
        return self.cache.get_or_set(
            self.cache.keys.item(MATERIALS, material_id),
            self.cache.ttl.long,
            lambda: MaterialInfo.from_model(self._load(material_id)),
        )

    def list_materials(self, ctx: AuthContext, query: MaterialFilter | None = None) -> Page[MaterialInfo]:
        ctx.require_role(EVERYONE, "list materials")
        query = query or MaterialFilter()

        def compute() -> Page[MaterialInfo]:
            stmt = select(Material).where(Material.is_active.is_(True))
            if query.search:
                stmt = stmt.where(Material.name.ilike(f"%{query.search}%"))
            stmt = stmt.order_by(Material.name, Material.id)
            return paginate(self.session, stmt, query, MaterialInfo.from_model)

        return self.cache.get_or_set(
            self.cache.keys.list(MATERIALS, query), self.cache.ttl.long, compute
        )

    def _check_name(self, name: str, exclude_id: UUID | None = None) -> str:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Material name is required")
        stmt = select(Material.id).where(func.lower(Material.name) == name.lower())
        if exclude_id is not None:
            stmt = stmt.where(Material.id != exclude_id)
        if self.session.execute(stmt).first() is not None:
            raise DuplicateCodeError("material name", name)
        return name

    def create_material(self, ctx: AuthContext, draft: MaterialDraft) -> MaterialInfo:
        ctx.require_role(MANAGERS, "create materials")
        material = Material(name=self._check_name(draft.name), created_by_id=ctx.user_id)
        self.session.add(material)
        self.session.flush()
        self._invalidate(material.id)
        logger.info("material_created", extra={"material_id": material.id})
        return MaterialInfo.from_model(material)

    def rename_material(self, ctx: AuthContext, material_id: UUID, name: str) -> MaterialInfo:
        ctx.require_role(MANAGERS, "update materials")
        material = self._load(material_id)
        material.name = self._check_name(name, exclude_id=material.id)
        material.updated_by_id = ctx.user_id
        self.session.flush()
        self._invalidate(material.id)
        logger.info("material_updated", extra={"material_id": material.id})
        return MaterialInfo.from_model(material)

    def delete_material(self, ctx: AuthContext, material_id: UUID) -> None:
        ctx.require_role(MANAGERS, "delete materials")
        material = self._load(material_id)
        material.is_active = False
        material.updated_by_id = ctx.user_id
        self.session.flush()
        self._invalidate(material.id)
        logger.info("material_deleted", extra={"material_id": material.id})

    def _invalidate(self, material_id: UUID) -> None:
        keys = self.cache.keys
        self.cache.invalidate(
            self.session,
            keys=[keys.item(MATERIALS, material_id), keys.static("materials")],
            prefixes=[keys.list_prefix(MATERIALS)],
        )
