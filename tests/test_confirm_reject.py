from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select, text

from conftest import as_actor, branch_admin, create_user
from courtbook.core.constants import CASCADE_REJECTION_REASON
from courtbook.core.errors import (
    BookingNotFound,
    Forbidden,
    InvalidTransition,
    MissingReason,
    SlotTaken,
)
from courtbook.db import models
from courtbook.services import booking_service
from courtbook.services.booking_service import BookingRequest
from courtbook.services.notification_service import BookingEventKind


def at(hour, minute=0):
    return datetime(2030, 1, 2, hour, minute, tzinfo=timezone.utc)


@pytest.fixture()
def approval_court(db_session, court):
    court.branch.requires_approval = True
    db_session.commit()
    return court


@pytest.fixture()
def legacy_overlaps(db_session):
    """Allow seeding overlapping pending rows, as left behind before the guard existed."""
    db_session.execute(text("DROP TRIGGER booking_no_overlap_insert"))
    db_session.commit()


def seed_pending(session, court, user, start_at, end_at):
    booking = models.Booking(
        tenant_id=court.branch.tenant_id,
        branch_id=court.branch_id,
        resource_id=court.id,
        user_id=user.id,
        start_at=start_at,
        end_at=end_at,
        status=models.BookingStatus.pending,
        original_price=Decimal("20000.00"),
        total_price=Decimal("20000.00"),
        currency="CLP",
    )
    session.add(booking)
    session.commit()
    return booking


def statuses(session, *bookings):
    session.expire_all()
    return [session.get(models.Booking, booking.id).status for booking in bookings]


def test_second_pending_request_for_taken_slot_is_refused(db_session, controller, approval_court):
    first = create_user(db_session)
    second = create_user(db_session, email="second@example.com")
    controller.create_booking(
        db_session,
        BookingRequest(resource_id=approval_court.id, start_at=at(10), end_at=at(11)),
        as_actor(first),
    )

    with pytest.raises(SlotTaken):
        controller.create_booking(
            db_session,
            BookingRequest(resource_id=approval_court.id, start_at=at(10), end_at=at(11)),
            as_actor(second),
        )


def test_confirm_rejects_overlapping_pending_requests(
    db_session, controller, approval_court, legacy_overlaps, sink
):
    admin = branch_admin(db_session, approval_court.branch)
    users = [create_user(db_session, email=f"p{index}@example.com") for index in range(4)]
    target = seed_pending(db_session, approval_court, users[0], at(10), at(11))
    same_window = seed_pending(db_session, approval_court, users[1], at(10), at(11))
    partial = seed_pending(db_session, approval_court, users[2], at(10, 30), at(11, 30))
    adjacent = seed_pending(db_session, approval_court, users[3], at(11), at(12))

    result = controller.confirm_booking(db_session, target.id, admin)

    assert result.rejected_count == 2
    assert result.booking.status == models.BookingStatus.confirmed
    assert statuses(db_session, target, same_window, partial, adjacent) == [
        models.BookingStatus.confirmed,
        models.BookingStatus.rejected,
        models.BookingStatus.rejected,
        models.BookingStatus.pending,
    ]
    rejected = db_session.get(models.Booking, same_window.id)
    assert rejected.rejection_reason == CASCADE_REJECTION_REASON
    cancellations = db_session.execute(select(models.BookingCancellation)).scalars().all()
    assert sorted(row.booking_id for row in cancellations) == sorted([same_window.id, partial.id])
    assert all(row.cancelled_by == admin.user_id for row in cancellations)
    assert [event.kind for event in sink.events] == [BookingEventKind.confirmed]
    assert sink.events[0].booking_id == target.id


def test_failed_cascade_leaves_every_booking_untouched(
    db_session, controller, approval_court, legacy_overlaps, monkeypatch, sink
):
    admin = branch_admin(db_session, approval_court.branch)
    first = create_user(db_session)
    second = create_user(db_session, email="second@example.com")
    target = seed_pending(db_session, approval_court, first, at(10), at(11))
    competitor = seed_pending(db_session, approval_court, second, at(10), at(11))
    real_cascade = booking_service.cascade_reject_overlapping

    def cascade_then_fail(db, booking, *, actor_id):
        real_cascade(db, booking, actor_id=actor_id)
        raise RuntimeError("storage failure")

    monkeypatch.setattr(booking_service, "cascade_reject_overlapping", cascade_then_fail)

    with pytest.raises(RuntimeError):
        controller.confirm_booking(db_session, target.id, admin)

    assert statuses(db_session, target, competitor) == [
        models.BookingStatus.pending,
        models.BookingStatus.pending,
    ]
    assert db_session.execute(select(models.BookingCancellation)).scalars().all() == []
    assert sink.events == []


def test_only_pending_bookings_can_be_confirmed(db_session, controller, court):
    admin = branch_admin(db_session, court.branch)
    user = create_user(db_session)
    booking = controller.create_booking(
        db_session,
        BookingRequest(resource_id=court.id, start_at=at(10), end_at=at(11)),
        as_actor(user),
    )

    with pytest.raises(InvalidTransition):
        controller.confirm_booking(db_session, booking.id, admin)


def test_confirm_checks_authority_before_state(db_session, controller, court):
    user = create_user(db_session)
    booking = controller.create_booking(
        db_session,
        BookingRequest(resource_id=court.id, start_at=at(10), end_at=at(11)),
        as_actor(user),
    )

    with pytest.raises(Forbidden):
        controller.confirm_booking(db_session, booking.id, as_actor(user))
    with pytest.raises(BookingNotFound):
        controller.confirm_booking(db_session, booking.id + 1, as_actor(user))


def test_reject_records_reason_and_notifies_client(db_session, controller, approval_court, sink):
    admin = branch_admin(db_session, approval_court.branch)
    user = create_user(db_session)
    booking = controller.create_booking(
        db_session,
        BookingRequest(resource_id=approval_court.id, start_at=at(10), end_at=at(11)),
        as_actor(user),
    )
    sink.events.clear()

    result = controller.reject_booking(db_session, booking.id, admin, "  court maintenance ")

    assert result.status == models.BookingStatus.rejected
    assert result.rejection_reason == "court maintenance"
    cancellation = db_session.execute(select(models.BookingCancellation)).scalar_one()
    assert cancellation.reason == "court maintenance"
    assert [event.kind for event in sink.events] == [BookingEventKind.rejected]
    assert sink.events[0].rejection_reason == "court maintenance"


@pytest.mark.parametrize("reason", [None, "", "   "])
def test_reject_requires_reason(db_session, controller, approval_court, reason):
    admin = branch_admin(db_session, approval_court.branch)
    user = create_user(db_session)
    booking = controller.create_booking(
        db_session,
        BookingRequest(resource_id=approval_court.id, start_at=at(10), end_at=at(11)),
        as_actor(user),
    )

    with pytest.raises(MissingReason):
        controller.reject_booking(db_session, booking.id, admin, reason)
    assert statuses(db_session, booking) == [models.BookingStatus.pending]


def test_reject_refuses_non_pending_and_strangers(db_session, controller, court):
    admin = branch_admin(db_session, court.branch)
    user = create_user(db_session)
    booking = controller.create_booking(
        db_session,
        BookingRequest(resource_id=court.id, start_at=at(10), end_at=at(11)),
        as_actor(user),
    )

    with pytest.raises(Forbidden):
        controller.reject_booking(db_session, booking.id, as_actor(user), "no")
    with pytest.raises(InvalidTransition):
        controller.reject_booking(db_session, booking.id, admin, "no")


def test_approval_branch_scenario(db_session, controller, approval_court):
    admin = branch_admin(db_session, approval_court.branch)
    first = create_user(db_session)
    second = create_user(db_session, email="second@example.com")

    booking = controller.create_booking(
        db_session,
        BookingRequest(resource_id=approval_court.id, start_at=at(14), end_at=at(15)),
        as_actor(first),
    )
    assert booking.status == models.BookingStatus.pending
    assert booking.total_price == Decimal("20000.00")

    with pytest.raises(SlotTaken):
        controller.create_booking(
            db_session,
            BookingRequest(resource_id=approval_court.id, start_at=at(14, 30), end_at=at(15, 30)),
            as_actor(second),
        )

    result = controller.confirm_booking(db_session, booking.id, admin)
    assert result.booking.status == models.BookingStatus.confirmed
    assert result.rejected_count == 0


def test_terminal_states_accept_no_further_transitions(db_session, controller, approval_court):
    admin = branch_admin(db_session, approval_court.branch)
    user = create_user(db_session)
    booking = controller.create_booking(
        db_session,
        BookingRequest(resource_id=approval_court.id, start_at=at(10), end_at=at(11)),
        as_actor(user),
    )
    controller.confirm_booking(db_session, booking.id, admin)
    controller.cancel_booking(db_session, booking.id, as_actor(user))

    with pytest.raises(InvalidTransition):
        controller.confirm_booking(db_session, booking.id, admin)
    with pytest.raises(InvalidTransition):
        controller.reject_booking(db_session, booking.id, admin, "late")
    assert statuses(db_session, booking) == [models.BookingStatus.cancelled]
