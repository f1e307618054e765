from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from ..db.models import RoleName


@dataclass(frozen=True, slots=True)
class RoleGrant:
    role: RoleName
    tenant_id: int | None = None
    branch_id: int | None = None


@dataclass(frozen=True, slots=True)
class ActorContext:
    """Caller identity resolved by the request layer."""

    user_id: int
    grants: tuple[RoleGrant, ...] = field(default_factory=tuple)

    def has_role(self, role: RoleName) -> bool:
        return any(grant.role == role for grant in self.grants)


def actor_from_claims(payload: Mapping[str, Any]) -> ActorContext:
    """Build an actor from token claims: ``sub`` plus a ``roles`` list.

    Each role entry looks like ``{"role": "branch_admin", "tenant_id": 1,
    "branch_id": 4}``. Unknown role names are ignored.
    """
    subject = payload.get("sub")
    if subject is None:
        raise ValueError("Token has no subject")
    grants = []
    for entry in payload.get("roles") or []:
        try:
            role = RoleName(entry.get("role"))
        except ValueError:
            continue
        grants.append(
            RoleGrant(
                role=role,
                tenant_id=entry.get("tenant_id"),
                branch_id=entry.get("branch_id"),
            )
        )
    return ActorContext(user_id=int(subject), grants=tuple(grants))
