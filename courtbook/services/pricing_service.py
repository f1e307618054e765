from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy.orm import Session

from ..db import models
from .discount_service import resolve_discount

CENT = Decimal("0.01")
_SECONDS_PER_HOUR = Decimal(3600)


@dataclass(frozen=True, slots=True)
class PriceQuote:
    original_price: Decimal
    final_price: Decimal
    discount: models.Discount | None = None

    @property
    def discount_id(self) -> int | None:
        return self.discount.id if self.discount else None


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_original_price(rate: Decimal | float | int, start_at: datetime, end_at: datetime) -> Decimal:
    seconds = Decimal(str((end_at - start_at).total_seconds()))
    return _money(Decimal(str(rate)) * seconds / _SECONDS_PER_HOUR)


def apply_discount(price: Decimal, discount: models.Discount | None) -> Decimal:
    if discount is None:
        return _money(price)
    value = Decimal(str(discount.value))
    if discount.type == models.DiscountType.percentage:
        discounted = price - price * value / Decimal(100)
    else:
        discounted = price - value
    return _money(max(discounted, Decimal(0)))


def quote_price(
    db: Session,
    *,
    resource: models.Resource,
    branch: models.Branch,
    start_at: datetime,
    end_at: datetime,
    promo_code: str | None = None,
) -> PriceQuote:
    original = calculate_original_price(resource.price_per_hour, start_at, end_at)
    discount = resolve_discount(
        db,
        tenant_id=branch.tenant_id,
        branch_id=branch.id,
        resource_id=resource.id,
        start_at=start_at,
        tz_name=branch.timezone,
        promo_code=promo_code,
    )
    return PriceQuote(
        original_price=original,
        final_price=apply_discount(original, discount),
        discount=discount,
    )
