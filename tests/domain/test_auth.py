"""AuthContext role and plant scope rules."""

from uuid import uuid4

import pytest

from weighbridge_kernel.domain.auth import EVERYONE, MANAGERS, AuthContext, Role, require_context
from weighbridge_kernel.exceptions import (
    ForbiddenError,
    PlantScopeError,
    UnauthorizedError,
    ValidationError,
)

PLANT = uuid4()
OTHER_PLANT = uuid4()


class TestRoles:
    def test_managers_exclude_operators(self):
        operator = AuthContext(uuid4(), Role.OPERATOR, PLANT)
        with pytest.raises(ForbiddenError, match="operator"):
            operator.require_role(MANAGERS, "review entries")

    def test_everyone_allows_operators(self):
        AuthContext(uuid4(), Role.OPERATOR, PLANT).require_role(EVERYONE)

    def test_missing_context_is_unauthorized(self):
        with pytest.raises(UnauthorizedError):
            require_context(None)


class TestPlantScope:
    def test_non_admin_resolves_to_own_plant(self):
        ctx = AuthContext(uuid4(), Role.SUPERVISOR, PLANT)
        assert ctx.resolve_plant(None) == PLANT
        assert ctx.resolve_plant(PLANT) == PLANT

    def test_non_admin_cannot_name_other_plant(self):
        ctx = AuthContext(uuid4(), Role.OPERATOR, PLANT)
        with pytest.raises(PlantScopeError):
            ctx.resolve_plant(OTHER_PLANT)

    def test_unassigned_non_admin_forbidden(self):
        with pytest.raises(ForbiddenError):
            AuthContext(uuid4(), Role.SUPERVISOR).resolve_plant(None)

    def test_admin_unrestricted(self):
        admin = AuthContext(uuid4(), Role.ADMIN)
        assert admin.resolve_plant(None) is None
        assert admin.resolve_plant(OTHER_PLANT) == OTHER_PLANT
        admin.check_plant_access(OTHER_PLANT)

    def test_admin_must_pick_plant_when_required(self):
        with pytest.raises(ValidationError):
            AuthContext(uuid4(), Role.ADMIN).require_plant(None)

    def test_check_plant_access(self):
        ctx = AuthContext(uuid4(), Role.SUPERVISOR, PLANT)
        ctx.check_plant_access(PLANT)
        with pytest.raises(PlantScopeError):
            ctx.check_plant_access(OTHER_PLANT)
