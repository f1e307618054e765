import pytest
from sqlalchemy import func, select

from courtbook.core.errors import MissingClaimant
from courtbook.db import models
from courtbook.services import claimant_service
from courtbook.services.claimant_service import Claimant, GuestContact


def test_claimant_needs_exactly_one_reference():
    with pytest.raises(MissingClaimant):
        Claimant()
    with pytest.raises(MissingClaimant):
        Claimant(user_id=1, guest_id=2)
    assert Claimant(user_id=1).is_registered
    assert not Claimant(guest_id=2).is_registered


def test_resolve_prefers_authenticated_user(db_session, court):
    claimant = claimant_service.resolve_claimant(
        db_session,
        tenant_id=court.branch.tenant_id,
        user_id=7,
        guest=GuestContact(email="guest@example.com", first_name="Luis", last_name="Soto"),
    )
    assert claimant == Claimant(user_id=7)


def test_resolve_without_identity_fails(db_session, court):
    with pytest.raises(MissingClaimant):
        claimant_service.resolve_claimant(db_session, tenant_id=court.branch.tenant_id)


def test_guests_are_scoped_by_tenant(db_session, court):
    other_tenant = models.Tenant(name="Other", slug="other")
    db_session.add(other_tenant)
    db_session.commit()
    contact = GuestContact(email="guest@example.com", first_name="Luis", last_name="Soto")

    first = claimant_service.find_or_create_guest(db_session, court.branch.tenant_id, contact)
    second = claimant_service.find_or_create_guest(db_session, other_tenant.id, contact)
    db_session.commit()

    assert first.id != second.id
    assert db_session.scalar(select(func.count(models.Guest.id))) == 2


def test_concurrently_created_guest_is_reused(db_session, court, monkeypatch):
    tenant_id = court.branch.tenant_id
    existing = models.Guest(tenant_id=tenant_id, email="guest@example.com", first_name="Luis", last_name="Soto")
    db_session.add(existing)
    db_session.commit()

    real_find = claimant_service._find_guest
    calls = []

    def miss_first_lookup(db, tenant, email):
        calls.append(email)
        if len(calls) == 1:
            return None
        return real_find(db, tenant, email)

    monkeypatch.setattr(claimant_service, "_find_guest", miss_first_lookup)

    guest = claimant_service.find_or_create_guest(
        db_session,
        tenant_id,
        GuestContact(email="GUEST@example.com", first_name="Other", last_name="Person"),
    )

    assert guest.id == existing.id
    assert len(calls) == 2
