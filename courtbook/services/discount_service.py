from __future__ import annotations

import logging
from datetime import datetime, time, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, selectinload

from ..core.clock import as_utc
from ..core.errors import InvalidPromoCode
from ..db import models

logger = logging.getLogger(__name__)


def _scoped_discounts(
    *,
    tenant_id: int,
    branch_id: int,
    condition_type: models.DiscountConditionType,
):
    return (
        select(models.Discount)
        .options(selectinload(models.Discount.resources))
        .where(
            models.Discount.tenant_id == tenant_id,
            models.Discount.is_active.is_(True),
            models.Discount.condition_type == condition_type,
            or_(
                models.Discount.branch_id.is_(None),
                models.Discount.branch_id == branch_id,
            ),
        )
        .order_by(models.Discount.id)
    )


def covers_resource(discount: models.Discount, resource_id: int) -> bool:
    if not discount.resources:
        return True
    return any(resource.id == resource_id for resource in discount.resources)


def local_start(start_at: datetime, tz_name: str | None) -> datetime:
    try:
        zone = ZoneInfo(tz_name) if tz_name else timezone.utc
    except ZoneInfoNotFoundError:
        logger.warning("Unknown branch timezone %r, falling back to UTC", tz_name)
        zone = timezone.utc
    return as_utc(start_at).astimezone(zone)


def sunday_based_weekday(moment: datetime) -> int:
    return (moment.weekday() + 1) % 7


def _in_window(moment: time, start: time | None, end: time | None) -> bool:
    if start is None and end is None:
        return True
    if start is None:
        return moment < end
    if end is None:
        return moment >= start
    if start <= end:
        return start <= moment < end
    # Window wraps past midnight, e.g. 22:00-02:00
    return moment >= start or moment < end


def matches_schedule(discount: models.Discount, moment: datetime) -> bool:
    days = discount.days_of_week
    if days and sunday_based_weekday(moment) not in {int(day) for day in days}:
        return False
    return _in_window(moment.time().replace(tzinfo=None), discount.start_time, discount.end_time)


def find_promo_discount(
    db: Session,
    *,
    tenant_id: int,
    branch_id: int,
    resource_id: int,
    code: str,
) -> models.Discount:
    normalized = code.strip().upper()
    stmt = _scoped_discounts(
        tenant_id=tenant_id,
        branch_id=branch_id,
        condition_type=models.DiscountConditionType.promo_code,
    ).where(func.upper(models.Discount.code) == normalized)
    for discount in db.execute(stmt).scalars():
        if covers_resource(discount, resource_id):
            return discount
    raise InvalidPromoCode()


def find_time_based_discount(
    db: Session,
    *,
    tenant_id: int,
    branch_id: int,
    resource_id: int,
    start_at: datetime,
    tz_name: str | None,
) -> models.Discount | None:
    moment = local_start(start_at, tz_name)
    stmt = _scoped_discounts(
        tenant_id=tenant_id,
        branch_id=branch_id,
        condition_type=models.DiscountConditionType.time_based,
    )
    for discount in db.execute(stmt).scalars():
        if covers_resource(discount, resource_id) and matches_schedule(discount, moment):
            return discount
    return None


def resolve_discount(
    db: Session,
    *,
    tenant_id: int,
    branch_id: int,
    resource_id: int,
    start_at: datetime,
    tz_name: str | None = None,
    promo_code: str | None = None,
) -> models.Discount | None:
    """Pick the single discount for a booking.

    A supplied promo code always wins and must be valid for the resource,
    otherwise the request fails with ``InvalidPromoCode``. Without a code the
    first active time-based rule, by ascending id, whose days and hours match
    the local start time applies.
    """
    if promo_code and promo_code.strip():
        return find_promo_discount(
            db,
            tenant_id=tenant_id,
            branch_id=branch_id,
            resource_id=resource_id,
            code=promo_code,
        )
    return find_time_based_discount(
        db,
        tenant_id=tenant_id,
        branch_id=branch_id,
        resource_id=resource_id,
        start_at=start_at,
        tz_name=tz_name,
    )
