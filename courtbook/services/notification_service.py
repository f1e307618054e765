from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Iterable, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import httpx
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from ..config import Settings, get_settings
from ..core.clock import as_utc
from ..db import models

logger = logging.getLogger(__name__)


class BookingEventKind(str, Enum):
    created_pending = "created_pending"
    created_auto_confirmed = "created_auto_confirmed"
    confirmed = "confirmed"
    rejected = "rejected"
    survey = "survey"


class Audience(str, Enum):
    client = "client"
    admins = "admins"


@dataclass(frozen=True, slots=True)
class BookingNotification:
    """Detached snapshot of a booking event, safe to deliver after commit."""

    booking_id: int
    kind: BookingEventKind
    audience: Audience
    recipients: tuple[str, ...]
    recipient_name: str | None
    client_name: str | None
    branch_name: str
    resource_name: str
    start_at: datetime
    end_at: datetime
    total_price: Decimal
    currency: str
    status: str
    timezone: str | None = None
    rejection_reason: str | None = None
    survey_url: str | None = None


class NotificationSink(Protocol):
    def notify_booking_event(self, notification: BookingNotification) -> None: ...


_HEADLINES = {
    BookingEventKind.created_auto_confirmed: "Your court has been booked",
    BookingEventKind.created_pending: "Booking request received",
    BookingEventKind.confirmed: "Your booking has been confirmed",
    BookingEventKind.rejected: "Your booking was rejected",
    BookingEventKind.survey: "How was your game?",
}

_ADMIN_HEADLINES = {
    BookingEventKind.created_auto_confirmed: "New booking",
    BookingEventKind.created_pending: "New booking awaiting approval",
}


def _local(moment: datetime, tz_name: str | None) -> datetime:
    try:
        zone = ZoneInfo(tz_name) if tz_name else None
    except ZoneInfoNotFoundError:
        zone = None
    value = as_utc(moment)
    return value.astimezone(zone) if zone else value


def build_booking_message(notification: BookingNotification) -> tuple[str, str]:
    if notification.audience == Audience.admins:
        headline = _ADMIN_HEADLINES.get(notification.kind, "Booking update")
    else:
        headline = _HEADLINES[notification.kind]
    start = _local(notification.start_at, notification.timezone)
    end = _local(notification.end_at, notification.timezone)
    lines = [
        f"{headline}.",
        f"{notification.resource_name} at {notification.branch_name}",
        f"{start.strftime('%d.%m.%Y')} {start.strftime('%H:%M')}-{end.strftime('%H:%M')}",
        f"Total: {notification.total_price} {notification.currency}",
    ]
    if notification.audience == Audience.admins and notification.client_name:
        lines.append(f"Client: {notification.client_name}")
    if notification.kind == BookingEventKind.created_pending and notification.audience == Audience.client:
        lines.append("This court requires approval. We will email you once it is confirmed.")
    if notification.rejection_reason:
        lines.append(f"Reason: {notification.rejection_reason}")
    if notification.survey_url:
        lines.append(f"Tell us about it: {notification.survey_url}")
    return headline, "\n".join(lines)


def admin_recipients(db: Session, branch: models.Branch) -> list[str]:
    stmt = (
        select(models.User.email)
        .join(models.UserRole, models.UserRole.user_id == models.User.id)
        .where(
            or_(
                (models.UserRole.role == models.RoleName.tenant_admin)
                & (models.UserRole.tenant_id == branch.tenant_id),
                (models.UserRole.role == models.RoleName.branch_admin)
                & (models.UserRole.branch_id == branch.id),
            )
        )
        .distinct()
        .order_by(models.User.email)
    )
    return list(db.execute(stmt).scalars().all())


def snapshot(
    booking: models.Booking,
    kind: BookingEventKind,
    *,
    audience: Audience = Audience.client,
    recipients: Iterable[str] | None = None,
    survey_url: str | None = None,
) -> BookingNotification:
    claimant = booking.user or booking.guest
    if recipients is None:
        recipients = [claimant.email] if claimant and claimant.email else []
    return BookingNotification(
        booking_id=booking.id,
        kind=kind,
        audience=audience,
        recipients=tuple(recipients),
        recipient_name=claimant.first_name if claimant and audience == Audience.client else None,
        client_name=booking.claimant_name,
        branch_name=booking.branch.name,
        resource_name=booking.resource.name,
        start_at=booking.start_at,
        end_at=booking.end_at,
        total_price=booking.total_price,
        currency=booking.currency,
        status=booking.status.value,
        timezone=booking.branch.timezone,
        rejection_reason=booking.rejection_reason,
        survey_url=survey_url,
    )


def creation_notifications(db: Session, booking: models.Booking) -> list[BookingNotification]:
    kind = (
        BookingEventKind.created_pending
        if booking.status == models.BookingStatus.pending
        else BookingEventKind.created_auto_confirmed
    )
    notifications = [snapshot(booking, kind)]
    admins = admin_recipients(db, booking.branch)
    if admins:
        notifications.append(snapshot(booking, kind, audience=Audience.admins, recipients=admins))
    return notifications


class EmailNotificationSink:
    """Delivers booking events through the HTTP mail relay."""

    def __init__(self, settings: Settings | None = None, client: httpx.Client | None = None) -> None:
        self._settings = settings or get_settings()
        self._client = client

    def notify_booking_event(self, notification: BookingNotification) -> None:
        if not notification.recipients:
            logger.warning(
                "Booking event has no recipients",
                extra={"booking_id": notification.booking_id, "kind": notification.kind.value},
            )
            return
        if not self._settings.mail_api_url:
            logger.warning(
                "Mail relay is not configured; skipping booking notification",
                extra={"booking_id": notification.booking_id, "kind": notification.kind.value},
            )
            return
        subject, text = build_booking_message(notification)
        headers = {}
        if self._settings.mail_api_key:
            headers["Authorization"] = f"Bearer {self._settings.mail_api_key}"
        payload = {
            "from": self._settings.mail_from,
            "to": list(notification.recipients),
            "subject": subject,
            "text": text,
        }
        if self._client is not None:
            self._post(self._client, payload, headers)
        else:
            with httpx.Client(timeout=10) as client:
                self._post(client, payload, headers)
        logger.info(
            "Booking notification sent",
            extra={"booking_id": notification.booking_id, "kind": notification.kind.value},
        )

    def _post(self, client: httpx.Client, payload: dict[str, Any], headers: dict[str, str]) -> None:
        response = client.post(self._settings.mail_api_url, json=payload, headers=headers)
        response.raise_for_status()


class BookingEventPublisher:
    """Hands committed booking events to a sink without letting failures escape.

    ``schedule`` defers delivery (for example ``BackgroundTasks.add_task``);
    without it events are delivered inline.
    """

    def __init__(
        self,
        sink: NotificationSink,
        schedule: Callable[..., Any] | None = None,
    ) -> None:
        self._sink = sink
        self._schedule = schedule

    def publish(self, notifications: Iterable[BookingNotification]) -> None:
        pending = list(notifications)
        if not pending:
            return
        if self._schedule is None:
            self.deliver(pending)
            return
        try:
            self._schedule(self.deliver, pending)
        except Exception:
            logger.exception("Failed to schedule booking notifications")

    def deliver(self, notifications: list[BookingNotification]) -> None:
        for notification in notifications:
            try:
                self._sink.notify_booking_event(notification)
            except Exception:
                logger.exception(
                    "Failed to send booking notification",
                    extra={
                        "booking_id": notification.booking_id,
                        "kind": notification.kind.value,
                    },
                )
