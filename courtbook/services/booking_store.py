from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from math import ceil
from typing import Iterable

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.constants import BOOKING_OVERLAP_CONSTRAINT
from ..core.errors import MissingClaimant, SlotTaken
from ..db import models


@dataclass(slots=True)
class BookingPage:
    items: list[models.Booking]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return ceil(self.total / self.limit) if self.limit else 0


def is_overlap_violation(exc: IntegrityError) -> bool:
    constraint = getattr(getattr(exc.orig, "diag", None), "constraint_name", None)
    if constraint:
        return constraint == BOOKING_OVERLAP_CONSTRAINT
    return BOOKING_OVERLAP_CONSTRAINT in str(exc.orig)


def lock_resource(db: Session, resource_id: int) -> models.Resource | None:
    """Load a resource and hold its row lock until the transaction ends.

    Writers for the same resource queue up behind this lock, which keeps the
    advisory overlap check meaningful. The store guard remains authoritative.
    """
    return db.execute(
        select(models.Resource)
        .where(models.Resource.id == resource_id)
        .with_for_update()
    ).scalar_one_or_none()


def get_booking(db: Session, booking_id: int, *, for_update: bool = False) -> models.Booking | None:
    stmt = select(models.Booking).where(models.Booking.id == booking_id)
    if for_update:
        stmt = stmt.with_for_update()
    return db.execute(stmt).scalar_one_or_none()


def find_overlapping(
    db: Session,
    *,
    resource_id: int,
    start_at: datetime,
    end_at: datetime,
    statuses: Iterable[models.BookingStatus],
    user_id: int | None = None,
    exclude_id: int | None = None,
    for_update: bool = False,
) -> list[models.Booking]:
    # Half-open windows: back-to-back bookings do not overlap
    stmt = (
        select(models.Booking)
        .where(
            models.Booking.resource_id == resource_id,
            models.Booking.status.in_(list(statuses)),
            models.Booking.start_at < end_at,
            models.Booking.end_at > start_at,
        )
        .order_by(models.Booking.id)
    )
    if user_id is not None:
        stmt = stmt.where(models.Booking.user_id == user_id)
    if exclude_id is not None:
        stmt = stmt.where(models.Booking.id != exclude_id)
    if for_update:
        stmt = stmt.with_for_update()
    return list(db.execute(stmt).scalars().all())


def insert_booking(db: Session, booking: models.Booking) -> models.Booking:
    if (booking.user_id is None) == (booking.guest_id is None):
        raise MissingClaimant("A booking needs exactly one of user or guest")
    db.add(booking)
    try:
        db.flush()
    except IntegrityError as exc:
        if is_overlap_violation(exc):
            raise SlotTaken() from exc
        raise
    return booking


def record_transition(
    db: Session,
    booking: models.Booking,
    status: models.BookingStatus,
    *,
    actor_id: int | None,
    reason: str | None = None,
) -> models.Booking:
    """Move ``booking`` to ``status``; cancellations and rejections get an audit row."""
    booking.status = status
    if status == models.BookingStatus.rejected:
        booking.rejection_reason = reason
    if status in (models.BookingStatus.cancelled, models.BookingStatus.rejected):
        db.add(
            models.BookingCancellation(
                booking_id=booking.id,
                cancelled_by=actor_id,
                reason=reason,
            )
        )
    try:
        db.flush()
    except IntegrityError as exc:
        if is_overlap_violation(exc):
            raise SlotTaken() from exc
        raise
    return booking


def list_bookings(
    db: Session,
    *,
    page: int,
    limit: int,
    user_id: int | None = None,
    branch_id: int | None = None,
    resource_id: int | None = None,
    status: models.BookingStatus | None = None,
    starts_from: datetime | None = None,
    starts_before: datetime | None = None,
) -> BookingPage:
    conditions = []
    if user_id is not None:
        conditions.append(models.Booking.user_id == user_id)
    if branch_id is not None:
        conditions.append(models.Booking.branch_id == branch_id)
    if resource_id is not None:
        conditions.append(models.Booking.resource_id == resource_id)
    if status is not None:
        conditions.append(models.Booking.status == status)
    if starts_from is not None:
        conditions.append(models.Booking.start_at >= starts_from)
    if starts_before is not None:
        conditions.append(models.Booking.start_at < starts_before)

    total = db.scalar(select(func.count(models.Booking.id)).where(*conditions)) or 0
    items = (
        db.execute(
            select(models.Booking)
            .where(*conditions)
            .order_by(models.Booking.start_at.desc(), models.Booking.id.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        )
        .scalars()
        .all()
    )
    return BookingPage(items=list(items), total=total, page=page, limit=limit)
