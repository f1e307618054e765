from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.auth import ActorContext
from ..core.clock import Clock, SystemClock, as_utc
from ..core.constants import CASCADE_REJECTION_REASON, MAX_PAGE_SIZE
from ..core.errors import (
    AlreadyTerminal,
    BookingNotFound,
    BranchInactive,
    BranchNotFound,
    DuplicateRequest,
    Forbidden,
    InvalidRange,
    InvalidTransition,
    MissingReason,
    ResourceUnavailable,
    SlotTaken,
)
from ..db import models
from ..db.models.booking import ACTIVE_STATUSES, BookingSource, BookingStatus
from ..db.session import atomic
from . import booking_store
from .authorization import AuthorizationOracle, RoleAuthorizationOracle
from .claimant_service import GuestContact, resolve_claimant
from .notification_service import (
    BookingEventKind,
    BookingEventPublisher,
    BookingNotification,
    creation_notifications,
    snapshot,
)
from .pricing_service import quote_price

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class BookingRequest:
    resource_id: int
    start_at: datetime
    end_at: datetime
    source: BookingSource = BookingSource.web
    notes: str | None = None
    guest: GuestContact | None = None
    promo_code: str | None = None


@dataclass(slots=True)
class ConfirmResult:
    booking: models.Booking
    rejected_count: int


def validate_slot(start_at: datetime, end_at: datetime, *, now: datetime) -> tuple[datetime, datetime]:
    start_at = as_utc(start_at)
    end_at = as_utc(end_at)
    if not start_at < end_at or not start_at > as_utc(now):
        raise InvalidRange()
    return start_at, end_at


def cascade_reject_overlapping(db: Session, booking: models.Booking, *, actor_id: int | None) -> int:
    """Reject every other pending booking competing for ``booking``'s window."""
    competing = booking_store.find_overlapping(
        db,
        resource_id=booking.resource_id,
        start_at=booking.start_at,
        end_at=booking.end_at,
        statuses=(BookingStatus.pending,),
        exclude_id=booking.id,
        for_update=True,
    )
    for other in competing:
        booking_store.record_transition(
            db,
            other,
            BookingStatus.rejected,
            actor_id=actor_id,
            reason=CASCADE_REJECTION_REASON,
        )
    return len(competing)


class BookingController:
    """Create, cancel, confirm and reject bookings.

    Every operation runs in a single transaction. Notifications are built
    inside it and handed to the publisher only after commit.
    """

    def __init__(
        self,
        publisher: BookingEventPublisher,
        authorizer: AuthorizationOracle | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._publisher = publisher
        self._authorizer = authorizer or RoleAuthorizationOracle()
        self._clock = clock or SystemClock()

    def _can_administer(self, actor: ActorContext | None, branch_id: int, tenant_id: int) -> bool:
        if actor is None:
            return False
        return self._authorizer.can_act_on_branch(actor, branch_id, tenant_id)

    def _load_for_admin(self, db: Session, booking_id: int, actor: ActorContext) -> models.Booking:
        booking = booking_store.get_booking(db, booking_id, for_update=True)
        if booking is None:
            raise BookingNotFound()
        if not self._can_administer(actor, booking.branch_id, booking.tenant_id):
            raise Forbidden()
        return booking

    def create_booking(
        self,
        db: Session,
        request: BookingRequest,
        actor: ActorContext | None = None,
    ) -> models.Booking:
        start_at, end_at = validate_slot(request.start_at, request.end_at, now=self._clock.now())
        notifications: list[BookingNotification] = []
        try:
            with atomic(db):
                resource = booking_store.lock_resource(db, request.resource_id)
                if resource is None or not resource.is_active:
                    raise ResourceUnavailable()
                branch = resource.branch
                if not branch.is_active:
                    raise BranchInactive()

                claimant = resolve_claimant(
                    db,
                    tenant_id=branch.tenant_id,
                    user_id=actor.user_id if actor else None,
                    guest=request.guest,
                )
                if claimant.is_registered and booking_store.find_overlapping(
                    db,
                    resource_id=resource.id,
                    start_at=start_at,
                    end_at=end_at,
                    statuses=(BookingStatus.pending,),
                    user_id=claimant.user_id,
                ):
                    raise DuplicateRequest()
                if booking_store.find_overlapping(
                    db,
                    resource_id=resource.id,
                    start_at=start_at,
                    end_at=end_at,
                    statuses=ACTIVE_STATUSES,
                ):
                    raise SlotTaken()

                quote = quote_price(
                    db,
                    resource=resource,
                    branch=branch,
                    start_at=start_at,
                    end_at=end_at,
                    promo_code=request.promo_code,
                )
                booking = booking_store.insert_booking(
                    db,
                    models.Booking(
                        tenant_id=branch.tenant_id,
                        branch_id=branch.id,
                        resource_id=resource.id,
                        user_id=claimant.user_id,
                        guest_id=claimant.guest_id,
                        start_at=start_at,
                        end_at=end_at,
                        status=BookingStatus.pending if branch.requires_approval else BookingStatus.confirmed,
                        source=request.source,
                        original_price=quote.original_price,
                        total_price=quote.final_price,
                        currency=resource.currency,
                        notes=request.notes,
                        discount_id=quote.discount_id,
                        survey_sent=False,
                    ),
                )
                notifications = creation_notifications(db, booking)
        except IntegrityError as exc:
            if booking_store.is_overlap_violation(exc):
                raise SlotTaken() from exc
            raise

        logger.info(
            "Booking created",
            extra={"booking_id": booking.id, "resource_id": booking.resource_id, "status": booking.status.value},
        )
        self._publisher.publish(notifications)
        return booking

    def cancel_booking(
        self,
        db: Session,
        booking_id: int,
        actor: ActorContext | None,
        reason: str | None = None,
    ) -> models.Booking:
        with atomic(db):
            booking = booking_store.get_booking(db, booking_id, for_update=True)
            if booking is None:
                raise BookingNotFound()
            is_owner = actor is not None and booking.user_id is not None and booking.user_id == actor.user_id
            if not is_owner and not self._can_administer(actor, booking.branch_id, booking.tenant_id):
                raise Forbidden("You can only cancel your own bookings")
            if booking.status not in ACTIVE_STATUSES:
                raise AlreadyTerminal(f"Booking is already {booking.status.value}")
            booking_store.record_transition(
                db,
                booking,
                BookingStatus.cancelled,
                actor_id=actor.user_id if actor else None,
                reason=reason,
            )
        logger.info("Booking cancelled", extra={"booking_id": booking.id})
        return booking

    def confirm_booking(self, db: Session, booking_id: int, actor: ActorContext) -> ConfirmResult:
        with atomic(db):
            booking = self._load_for_admin(db, booking_id, actor)
            if booking.status != BookingStatus.pending:
                raise InvalidTransition("Only pending bookings can be confirmed")
            # Competitors go first so the target never coexists with them as confirmed
            rejected_count = cascade_reject_overlapping(db, booking, actor_id=actor.user_id)
            booking_store.record_transition(
                db,
                booking,
                BookingStatus.confirmed,
                actor_id=actor.user_id,
            )
            notifications = [snapshot(booking, BookingEventKind.confirmed)]
        logger.info(
            "Booking confirmed",
            extra={"booking_id": booking.id, "rejected_count": rejected_count},
        )
        self._publisher.publish(notifications)
        return ConfirmResult(booking=booking, rejected_count=rejected_count)

    def reject_booking(
        self,
        db: Session,
        booking_id: int,
        actor: ActorContext,
        reason: str | None,
    ) -> models.Booking:
        if reason is None or not reason.strip():
            raise MissingReason()
        with atomic(db):
            booking = self._load_for_admin(db, booking_id, actor)
            if booking.status != BookingStatus.pending:
                raise InvalidTransition("Only pending bookings can be rejected")
            booking_store.record_transition(
                db,
                booking,
                BookingStatus.rejected,
                actor_id=actor.user_id,
                reason=reason.strip(),
            )
            notifications = [snapshot(booking, BookingEventKind.rejected)]
        logger.info("Booking rejected", extra={"booking_id": booking.id})
        self._publisher.publish(notifications)
        return booking

    def get_booking(self, db: Session, booking_id: int, actor: ActorContext | None) -> models.Booking:
        booking = booking_store.get_booking(db, booking_id)
        if booking is None:
            raise BookingNotFound()
        is_owner = actor is not None and booking.user_id == actor.user_id
        if not is_owner and not self._can_administer(actor, booking.branch_id, booking.tenant_id):
            raise Forbidden("Access denied to this booking")
        return booking

    def list_my_bookings(
        self,
        db: Session,
        actor: ActorContext,
        *,
        status: BookingStatus | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> booking_store.BookingPage:
        page, limit = _page_bounds(page, limit)
        return booking_store.list_bookings(db, user_id=actor.user_id, status=status, page=page, limit=limit)

    def list_branch_bookings(
        self,
        db: Session,
        branch_id: int,
        actor: ActorContext,
        *,
        date_from: date | None = None,
        date_to: date | None = None,
        status: BookingStatus | None = None,
        resource_id: int | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> booking_store.BookingPage:
        branch = db.get(models.Branch, branch_id)
        if branch is None:
            raise BranchNotFound()
        if not self._can_administer(actor, branch.id, branch.tenant_id):
            raise Forbidden("Access denied to this branch")
        page, limit = _page_bounds(page, limit)
        return booking_store.list_bookings(
            db,
            branch_id=branch.id,
            resource_id=resource_id,
            status=status,
            starts_from=_day_start(date_from) if date_from else None,
            # date_to covers the whole day
            starts_before=_day_start(date_to) + timedelta(days=1) if date_to else None,
            page=page,
            limit=limit,
        )


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def _page_bounds(page: int, limit: int) -> tuple[int, int]:
    return max(page, 1), min(max(limit, 1), MAX_PAGE_SIZE)
