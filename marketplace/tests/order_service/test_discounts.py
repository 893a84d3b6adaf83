from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from marketplace.order_service.app.discounts import (
    CouponRequest,
    CouponTerms,
    coupon_discount,
    stack_discounts,
)
from marketplace.order_service.app.errors import (
    CouponAlreadyUsed,
    CouponExpired,
    InvalidCoupon,
    MinimumAmountNotMet,
    UsageLimitReached,
)

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def _terms(coupon_id: int, code: str, **overrides) -> CouponTerms:
    values = {
        "coupon_id": coupon_id,
        "code": code,
        "type": "percentage",
        "value": 1000,
        "expires_at": NOW + timedelta(days=30),
    }
    values.update(overrides)
    return CouponTerms(**values)


def _request(terms: CouponTerms) -> CouponRequest:
    return CouponRequest(code=terms.code, terms=terms)


def test_no_coupons_keeps_subtotal() -> None:
    stack = stack_discounts([], 20000, now=NOW)

    assert stack.discount_cents == 0
    assert stack.total_cents == 20000
    assert stack.applied == ()


def test_percentage_coupon_applies_against_subtotal() -> None:
    save20 = _terms(1, "SAVE20", value=2000)

    stack = stack_discounts([_request(save20)], 20000, now=NOW)

    assert stack.discount_cents == 4000
    assert stack.total_cents == 16000
    assert [entry.code for entry in stack.applied] == ["SAVE20"]


def test_percentage_discount_respects_cap() -> None:
    capped = _terms(1, "HALF", value=5000, max_discount_cents=3000)

    assert coupon_discount(capped, 20000) == 3000


def test_percentage_discount_rounds_half_up_to_the_cent() -> None:
    # 15% of 3.33 is 0.4995.
    terms = _terms(1, "P15", value=1500)

    assert coupon_discount(terms, 333) == 50


def test_fixed_discount_never_exceeds_running_subtotal() -> None:
    fixed = _terms(1, "FIFTY", type="fixed", value=5000)

    stack = stack_discounts([_request(fixed)], 3000, now=NOW)

    assert stack.discount_cents == 3000
    assert stack.total_cents == 0


def test_minimum_amount_is_inclusive() -> None:
    min100 = _terms(1, "MIN100", type="fixed", value=1000, min_amount_cents=10000)

    with pytest.raises(MinimumAmountNotMet) as excinfo:
        stack_discounts([_request(min100)], 9900, now=NOW)
    assert excinfo.value.code == "MIN100"
    assert excinfo.value.min_amount == Decimal("100.00")

    stack = stack_discounts([_request(min100)], 10000, now=NOW)
    assert stack.total_cents == 9000


def test_submission_order_changes_eligibility() -> None:
    # A: 50% off with no threshold. B: 10.00 off once the running total is at least 100.00.
    coupon_a = _terms(1, "A", value=5000)
    coupon_b = _terms(2, "B", type="fixed", value=1000, min_amount_cents=10000)

    b_then_a = stack_discounts([_request(coupon_b), _request(coupon_a)], 15000, now=NOW)
    assert b_then_a.total_cents == 7000
    assert [entry.discount_cents for entry in b_then_a.applied] == [1000, 7000]

    with pytest.raises(MinimumAmountNotMet) as excinfo:
        stack_discounts([_request(coupon_a), _request(coupon_b)], 15000, now=NOW)
    assert excinfo.value.code == "B"


def test_stacked_percentages_compound_on_running_subtotal() -> None:
    ten = _terms(1, "TEN", value=1000)
    twenty = _terms(2, "TWENTY", value=2000)

    stack = stack_discounts([_request(ten), _request(twenty)], 10000, now=NOW)

    assert [entry.discount_cents for entry in stack.applied] == [1000, 1800]
    assert stack.discount_cents == 2800
    assert stack.total_cents == stack.subtotal_cents - stack.discount_cents


def test_unknown_or_inactive_coupon_is_invalid() -> None:
    with pytest.raises(InvalidCoupon) as excinfo:
        stack_discounts([CouponRequest(code="NOPE", terms=None)], 10000, now=NOW)
    assert excinfo.value.code == "NOPE"

    inactive = _terms(1, "OFF", is_active=False)
    with pytest.raises(InvalidCoupon):
        stack_discounts([_request(inactive)], 10000, now=NOW)


def test_expired_coupon_is_rejected() -> None:
    expired = _terms(1, "OLD", expires_at=NOW - timedelta(seconds=1))

    with pytest.raises(CouponExpired) as excinfo:
        stack_discounts([_request(expired)], 10000, now=NOW)
    assert excinfo.value.context == {"code": "OLD"}


def test_naive_expiry_is_read_as_utc() -> None:
    naive_future = _terms(1, "NAIVE", expires_at=(NOW + timedelta(hours=1)).replace(tzinfo=None))

    stack = stack_discounts([_request(naive_future)], 10000, now=NOW)

    assert stack.discount_cents == 1000


def test_previously_redeemed_coupon_is_rejected() -> None:
    used = _terms(1, "USED", redeemed_by_user=True)

    with pytest.raises(CouponAlreadyUsed):
        stack_discounts([_request(used)], 10000, now=NOW)


def test_duplicate_code_in_one_request_is_rejected() -> None:
    once = _terms(1, "ONCE")

    with pytest.raises(CouponAlreadyUsed) as excinfo:
        stack_discounts([_request(once), _request(once)], 10000, now=NOW)
    assert excinfo.value.code == "ONCE"


def test_usage_limit_counts_every_redemption() -> None:
    exhausted = _terms(1, "LIMITED", usage_limit=2, redemption_count=2)
    available = _terms(2, "ROOMY", usage_limit=2, redemption_count=1)

    with pytest.raises(UsageLimitReached):
        stack_discounts([_request(exhausted)], 10000, now=NOW)
    assert stack_discounts([_request(available)], 10000, now=NOW).discount_cents == 1000


def test_first_failure_wins_in_submission_order() -> None:
    expired = _terms(1, "OLD", expires_at=NOW - timedelta(days=1))

    with pytest.raises(InvalidCoupon):
        stack_discounts([CouponRequest(code="GHOST", terms=None), _request(expired)], 10000, now=NOW)
