"""Bearer tokens carrying the caller's identity and role grants."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from jose import jwt

from ..config import get_settings
from .auth import ActorContext

ALGORITHM = "HS256"
DEFAULT_TOKEN_TTL = timedelta(minutes=15)


def actor_claims(actor: ActorContext) -> Dict[str, Any]:
    return {
        "sub": str(actor.user_id),
        "roles": [
            {"role": grant.role.value, "tenant_id": grant.tenant_id, "branch_id": grant.branch_id}
            for grant in actor.grants
        ],
    }


def issue_actor_token(actor: ActorContext, expires_delta: timedelta | None = None) -> str:
    settings = get_settings()
    claims = actor_claims(actor)
    claims["exp"] = datetime.now(timezone.utc) + (expires_delta or DEFAULT_TOKEN_TTL)
    return jwt.encode(claims, settings.jwt_secret, algorithm=ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    settings = get_settings()
    return jwt.decode(token, settings.jwt_secret, algorithms=[ALGORITHM])
