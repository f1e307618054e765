from datetime import datetime, time, timezone
from decimal import Decimal

import pytest

from courtbook.core.errors import InvalidPromoCode
from courtbook.db import models
from courtbook.services import discount_service, pricing_service

# 2030-01-06 is a Sunday
SUNDAY_MORNING = datetime(2030, 1, 6, 9, 0, tzinfo=timezone.utc)
MONDAY_EVENING = datetime(2030, 1, 7, 20, 0, tzinfo=timezone.utc)


def make_discount(session=None, **overrides):
    values = dict(
        tenant_id=1,
        name="Rule",
        type=models.DiscountType.percentage,
        value=Decimal("10"),
        condition_type=models.DiscountConditionType.time_based,
        is_active=True,
    )
    values.update(overrides)
    discount = models.Discount(**values)
    if session is not None:
        session.add(discount)
        session.commit()
    return discount


def test_original_price_is_prorated_and_rounded():
    start = datetime(2030, 1, 2, 10, 0, tzinfo=timezone.utc)
    assert pricing_service.calculate_original_price(
        Decimal("20000"), start, datetime(2030, 1, 2, 11, 30, tzinfo=timezone.utc)
    ) == Decimal("30000.00")
    assert pricing_service.calculate_original_price(
        Decimal("10.00"), start, datetime(2030, 1, 2, 10, 20, tzinfo=timezone.utc)
    ) == Decimal("3.33")
    assert pricing_service.calculate_original_price(
        Decimal("10.00"), start, datetime(2030, 1, 2, 10, 40, tzinfo=timezone.utc)
    ) == Decimal("6.67")


@pytest.mark.parametrize(
    "discount_type, value, expected",
    [
        (models.DiscountType.percentage, Decimal("15"), Decimal("85.00")),
        (models.DiscountType.percentage, Decimal("100"), Decimal("0.00")),
        (models.DiscountType.fixed_amount, Decimal("30.50"), Decimal("69.50")),
        (models.DiscountType.fixed_amount, Decimal("250"), Decimal("0.00")),
    ],
)
def test_apply_discount(discount_type, value, expected):
    discount = make_discount(type=discount_type, value=value)
    assert pricing_service.apply_discount(Decimal("100.00"), discount) == expected


def test_no_discount_keeps_price():
    assert pricing_service.apply_discount(Decimal("42.005"), None) == Decimal("42.01")


def test_weekday_is_counted_from_sunday():
    assert discount_service.sunday_based_weekday(SUNDAY_MORNING) == 0
    assert discount_service.sunday_based_weekday(MONDAY_EVENING) == 1


@pytest.mark.parametrize(
    "days, start, end, moment, expected",
    [
        (None, None, None, SUNDAY_MORNING, True),
        ([], time(8), time(10), SUNDAY_MORNING, True),
        ([0, 6], None, None, SUNDAY_MORNING, True),
        ([1, 2, 3, 4, 5], None, None, SUNDAY_MORNING, False),
        ([1], time(18), time(22), MONDAY_EVENING, True),
        ([1], time(18), time(20), MONDAY_EVENING, False),
        (None, time(9), None, SUNDAY_MORNING, True),
        (None, None, time(9), SUNDAY_MORNING, False),
        (None, time(19), time(2), MONDAY_EVENING, True),
        (None, time(22), time(8), SUNDAY_MORNING, False),
    ],
)
def test_schedule_matching(days, start, end, moment, expected):
    discount = make_discount(days_of_week=days, start_time=start, end_time=end)
    assert discount_service.matches_schedule(discount, moment) is expected


def test_local_start_uses_branch_timezone():
    # 20:00 UTC on Saturday is already Sunday morning in Tokyo
    local = discount_service.local_start(datetime(2030, 1, 5, 20, 0, tzinfo=timezone.utc), "Asia/Tokyo")
    assert discount_service.sunday_based_weekday(local) == 0
    assert local.hour == 5


def test_unknown_timezone_falls_back_to_utc():
    local = discount_service.local_start(SUNDAY_MORNING, "Mars/Olympus")
    assert local.utcoffset().total_seconds() == 0


@pytest.fixture()
def scope(db_session, court):
    return court.branch.tenant_id, court.branch_id, court.id


def test_promo_code_wins_over_time_rule(db_session, scope):
    tenant_id, branch_id, resource_id = scope
    make_discount(db_session, tenant_id=tenant_id, name="Always")
    promo = make_discount(
        db_session,
        tenant_id=tenant_id,
        name="Promo",
        code="Summer",
        condition_type=models.DiscountConditionType.promo_code,
        type=models.DiscountType.fixed_amount,
        value=Decimal("5000"),
    )

    found = discount_service.resolve_discount(
        db_session,
        tenant_id=tenant_id,
        branch_id=branch_id,
        resource_id=resource_id,
        start_at=SUNDAY_MORNING,
        promo_code="  SUMMER ",
    )

    assert found.id == promo.id


def test_blank_promo_code_is_ignored(db_session, scope):
    tenant_id, branch_id, resource_id = scope
    rule = make_discount(db_session, tenant_id=tenant_id)

    found = discount_service.resolve_discount(
        db_session,
        tenant_id=tenant_id,
        branch_id=branch_id,
        resource_id=resource_id,
        start_at=SUNDAY_MORNING,
        promo_code="   ",
    )

    assert found.id == rule.id


def test_promo_code_outside_scope_is_invalid(db_session, court, scope):
    tenant_id, branch_id, resource_id = scope
    other_court = models.Resource(branch_id=branch_id, name="Court 2", price_per_hour=Decimal("1"))
    db_session.add(other_court)
    db_session.commit()
    promo = make_discount(
        db_session,
        tenant_id=tenant_id,
        code="COURT2",
        condition_type=models.DiscountConditionType.promo_code,
    )
    promo.resources.append(other_court)
    make_discount(
        db_session,
        tenant_id=tenant_id,
        code="OTHERBRANCH",
        branch_id=branch_id + 1,
        condition_type=models.DiscountConditionType.promo_code,
    )
    make_discount(
        db_session,
        tenant_id=tenant_id,
        code="OFF",
        is_active=False,
        condition_type=models.DiscountConditionType.promo_code,
    )
    db_session.commit()

    for code in ("COURT2", "OTHERBRANCH", "OFF", "MISSING"):
        with pytest.raises(InvalidPromoCode):
            discount_service.resolve_discount(
                db_session,
                tenant_id=tenant_id,
                branch_id=branch_id,
                resource_id=resource_id,
                start_at=SUNDAY_MORNING,
                promo_code=code,
            )


def test_first_matching_time_rule_by_id_applies(db_session, scope):
    tenant_id, branch_id, resource_id = scope
    make_discount(db_session, tenant_id=tenant_id, name="Weekdays", days_of_week=[1, 2, 3, 4, 5])
    weekend = make_discount(db_session, tenant_id=tenant_id, name="Weekend", days_of_week=[0, 6])
    make_discount(db_session, tenant_id=tenant_id, name="Also weekend", days_of_week=[0])

    found = discount_service.resolve_discount(
        db_session,
        tenant_id=tenant_id,
        branch_id=branch_id,
        resource_id=resource_id,
        start_at=SUNDAY_MORNING,
    )

    assert found.id == weekend.id


def test_no_matching_rule_means_no_discount(db_session, court, scope):
    tenant_id, branch_id, resource_id = scope
    make_discount(db_session, tenant_id=tenant_id, days_of_week=[3])

    quote = pricing_service.quote_price(
        db_session,
        resource=court,
        branch=court.branch,
        start_at=SUNDAY_MORNING,
        end_at=datetime(2030, 1, 6, 10, 0, tzinfo=timezone.utc),
    )

    assert quote.discount is None
    assert quote.discount_id is None
    assert quote.original_price == quote.final_price == Decimal("20000.00")


def test_two_hours_at_flat_rate_has_no_adjustment(db_session, court):
    court.price_per_hour = Decimal("25000")
    db_session.commit()

    quote = pricing_service.quote_price(
        db_session,
        resource=court,
        branch=court.branch,
        start_at=datetime(2030, 1, 2, 14, 0, tzinfo=timezone.utc),
        end_at=datetime(2030, 1, 2, 16, 0, tzinfo=timezone.utc),
    )

    assert quote.original_price == quote.final_price == Decimal("50000.00")


def test_promo_code_beats_matching_time_rule_in_quote(db_session, court, scope):
    tenant_id, _, _ = scope
    court.price_per_hour = Decimal("25000")
    make_discount(
        db_session, tenant_id=tenant_id, name="Happy hour", type=models.DiscountType.fixed_amount, value=Decimal("1000")
    )
    make_discount(
        db_session,
        tenant_id=tenant_id,
        name="Ten off",
        code="TEN",
        condition_type=models.DiscountConditionType.promo_code,
    )

    quote = pricing_service.quote_price(
        db_session,
        resource=court,
        branch=court.branch,
        start_at=datetime(2030, 1, 2, 14, 0, tzinfo=timezone.utc),
        end_at=datetime(2030, 1, 2, 16, 0, tzinfo=timezone.utc),
        promo_code="ten",
    )

    assert quote.original_price == Decimal("50000.00")
    assert quote.final_price == Decimal("45000.00")
    assert quote.discount.name == "Ten off"
