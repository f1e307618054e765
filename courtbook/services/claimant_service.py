from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.errors import MissingClaimant
from ..db import models


@dataclass(frozen=True, slots=True)
class GuestContact:
    email: str
    first_name: str
    last_name: str
    phone: str | None = None


@dataclass(frozen=True, slots=True)
class Claimant:
    user_id: int | None = None
    guest_id: int | None = None

    def __post_init__(self) -> None:
        if (self.user_id is None) == (self.guest_id is None):
            raise MissingClaimant("A booking needs exactly one of user or guest")

    @property
    def is_registered(self) -> bool:
        return self.user_id is not None


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _find_guest(db: Session, tenant_id: int, email: str) -> models.Guest | None:
    return db.execute(
        select(models.Guest).where(
            models.Guest.tenant_id == tenant_id,
            models.Guest.email == email,
        )
    ).scalar_one_or_none()


def find_or_create_guest(db: Session, tenant_id: int, contact: GuestContact) -> models.Guest:
    """Return the tenant's guest for ``contact.email``, creating it on first use.

    An existing guest is reused as-is; later contact details never overwrite it.
    """
    email = normalize_email(contact.email)
    guest = _find_guest(db, tenant_id, email)
    if guest:
        return guest
    guest = models.Guest(
        tenant_id=tenant_id,
        email=email,
        first_name=contact.first_name.strip(),
        last_name=contact.last_name.strip(),
        phone=contact.phone,
    )
    try:
        with db.begin_nested():
            db.add(guest)
    except IntegrityError:
        # Lost the race on uq_guest_tenant_email to a concurrent booking
        guest = _find_guest(db, tenant_id, email)
        if guest is None:
            raise
    return guest


def resolve_claimant(
    db: Session,
    *,
    tenant_id: int,
    user_id: int | None = None,
    guest: GuestContact | None = None,
) -> Claimant:
    if user_id is not None:
        return Claimant(user_id=user_id)
    if guest is not None:
        record = find_or_create_guest(db, tenant_id, guest)
        return Claimant(guest_id=record.id)
    raise MissingClaimant()
