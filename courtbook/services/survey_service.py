from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from ..core.clock import as_utc
from ..core.constants import SURVEY_COOLDOWN, SURVEY_LOOKBACK
from ..db import models
from .notification_service import BookingEventKind, NotificationSink, snapshot

logger = logging.getLogger(__name__)


def survey_url(frontend_url: str, booking_id: int) -> str:
    return f"{frontend_url.rstrip('/')}/survey/{booking_id}"


def due_for_survey(
    db: Session,
    *,
    now: datetime,
    cooldown: timedelta = SURVEY_COOLDOWN,
    lookback: timedelta = SURVEY_LOOKBACK,
) -> list[models.Booking]:
    now = as_utc(now)
    stmt = (
        select(models.Booking)
        .options(
            selectinload(models.Booking.branch),
            selectinload(models.Booking.resource),
            selectinload(models.Booking.user),
            selectinload(models.Booking.guest),
        )
        .where(
            models.Booking.status == models.BookingStatus.confirmed,
            models.Booking.survey_sent.is_(False),
            models.Booking.end_at < now - cooldown,
            models.Booking.end_at > now - lookback,
        )
        .order_by(models.Booking.end_at)
    )
    return list(db.execute(stmt).scalars().all())


def run_survey_sweep(
    db: Session,
    sink: NotificationSink,
    *,
    now: datetime,
    frontend_url: str,
    cooldown: timedelta = SURVEY_COOLDOWN,
    lookback: timedelta = SURVEY_LOOKBACK,
) -> int:
    """Send one feedback request per finished booking and flag it as sent.

    Each booking is committed on its own, so one failed delivery neither
    blocks the rest of the sweep nor un-flags earlier ones. Bookings that keep
    failing drop out once they fall behind the lookback window.
    """
    bookings = due_for_survey(db, now=now, cooldown=cooldown, lookback=lookback)
    if not bookings:
        logger.info("No pending surveys to send")
        return 0

    notifications = [
        snapshot(booking, BookingEventKind.survey, survey_url=survey_url(frontend_url, booking.id))
        for booking in bookings
    ]
    booking_ids = [booking.id for booking in bookings]
    # Release the read transaction before talking to the mail relay
    db.commit()

    sent = 0
    for booking_id, notification in zip(booking_ids, notifications):
        try:
            sink.notify_booking_event(notification)
            booking = db.get(models.Booking, booking_id)
            booking.survey_sent = True
            db.commit()
            sent += 1
        except Exception:
            db.rollback()
            logger.exception("Error sending survey", extra={"booking_id": booking_id})
    logger.info("Sent post-booking surveys", extra={"sent": sent, "due": len(booking_ids)})
    return sent
