from __future__ import annotations

from typing import Protocol

from ..core.auth import ActorContext
from ..db.models import RoleName


class AuthorizationOracle(Protocol):
    def can_act_on_branch(self, actor: ActorContext, branch_id: int, tenant_id: int) -> bool: ...


class RoleAuthorizationOracle:
    """Answers branch access from the role grants carried by the actor.

    ``super_admin`` may act anywhere, ``tenant_admin`` on every branch of its
    tenant, ``branch_admin`` and ``staff`` only on their own branch.
    """

    def can_act_on_branch(self, actor: ActorContext, branch_id: int, tenant_id: int) -> bool:
        for grant in actor.grants:
            if grant.role == RoleName.super_admin:
                return True
            if grant.role == RoleName.tenant_admin and grant.tenant_id == tenant_id:
                return True
            if (
                grant.role in (RoleName.branch_admin, RoleName.staff)
                and grant.branch_id == branch_id
            ):
                return True
        return False
