"""
AuthContext -- explicit caller identity for every service call.

Responsibility:
    Carries the authenticated user id, role and plant assignment into the
    kernel.  Token verification happens outside; the kernel only receives
    the verified identity and enforces role and plant scope with it.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - Non-admin callers are bound to their assigned plant.  Any plant they
      name must match it, and unnamed plants resolve to it.
    - Admins are unrestricted.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from weighbridge_kernel.exceptions import (
    ForbiddenError,
    PlantScopeError,
    UnauthorizedError,
    ValidationError,
)


class Role(str, Enum):
    ADMIN = "admin"
    SUPERVISOR = "supervisor"
    OPERATOR = "operator"


MANAGERS = frozenset({Role.ADMIN, Role.SUPERVISOR})
EVERYONE = frozenset(Role)


@dataclass(frozen=True)
class AuthContext:
    """Verified identity of the caller."""

    user_id: UUID
    role: Role
    plant_id: UUID | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def require_role(self, allowed: frozenset[Role] | set[Role], action: str = "") -> None:
        """Raise ForbiddenError unless the caller's role is in ``allowed``."""
        if self.role not in allowed:
            raise ForbiddenError(
                f"Forbidden: role '{self.role.value}' cannot {action or 'perform this action'}"
            )

    def resolve_plant(self, requested: UUID | None) -> UUID | None:
        """
        Return the plant the caller may act on.

        Admins get ``requested`` back unchanged.  Everyone else is forced onto
        their assigned plant; naming a different one is forbidden.
        """
        if self.is_admin:
            return requested
        if self.plant_id is None:
            raise ForbiddenError("Forbidden: user is not assigned to a plant")
        if requested is not None and requested != self.plant_id:
            raise PlantScopeError(requested)
        return self.plant_id

    def require_plant(self, requested: UUID | None) -> UUID:
        """Like resolve_plant, but a plant must end up selected."""
        plant_id = self.resolve_plant(requested)
        if plant_id is None:
            raise ValidationError("Plant is required")
        return plant_id

    def check_plant_access(self, plant_id: UUID | None) -> None:
        """Raise PlantScopeError if a resource's plant is outside the caller's scope."""
        if self.is_admin:
            return
        if self.plant_id is None or plant_id != self.plant_id:
            raise PlantScopeError(plant_id)


def require_context(ctx: AuthContext | None) -> AuthContext:
    """Raise UnauthorizedError when no authenticated caller is supplied."""
    if ctx is None:
        raise UnauthorizedError()
    return ctx
