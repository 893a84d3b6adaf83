"""Sequential coupon stacking.

Coupons are applied strictly left to right in the order the caller submitted
them. Each coupon's eligibility threshold and percentage are evaluated against
the running subtotal left by the coupons before it, so ``[A, B]`` and
``[B, A]`` can legitimately produce different totals or outcomes.

Everything here is pure: database lookups (resolution, prior redemption,
usage counts) happen in :mod:`.coupons` and arrive as :class:`CouponTerms`.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from .errors import (
    CouponAlreadyUsed,
    CouponExpired,
    InvalidCoupon,
    MinimumAmountNotMet,
    UsageLimitReached,
)
from .money import from_cents, round_cents

_BASIS_POINTS = Decimal("10000")


@dataclass(frozen=True)
class CouponTerms:
    coupon_id: int
    code: str
    type: str
    value: int
    min_amount_cents: int = 0
    max_discount_cents: int | None = None
    expires_at: datetime | None = None
    is_active: bool = True
    usage_limit: int | None = None
    redemption_count: int = 0
    redeemed_by_user: bool = False


@dataclass(frozen=True)
class CouponRequest:
    """A code as submitted by the caller and the coupon it resolved to, if any."""

    code: str
    terms: CouponTerms | None


@dataclass(frozen=True)
class AppliedCoupon:
    coupon_id: int
    code: str
    discount_cents: int


@dataclass(frozen=True)
class DiscountStack:
    subtotal_cents: int
    applied: tuple[AppliedCoupon, ...] = ()

    @property
    def discount_cents(self) -> int:
        return sum(entry.discount_cents for entry in self.applied)

    @property
    def total_cents(self) -> int:
        return self.subtotal_cents - self.discount_cents


def normalize_code(code: str) -> str:
    return code.strip().upper()


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def coupon_discount(terms: CouponTerms, running_cents: int) -> int:
    """Discount one coupon grants against ``running_cents``, never more than it."""

    if terms.type == "percentage":
        discount = round_cents(Decimal(running_cents) * Decimal(terms.value) / _BASIS_POINTS)
        if terms.max_discount_cents is not None:
            discount = min(discount, terms.max_discount_cents)
    else:
        discount = terms.value
    return max(0, min(discount, running_cents))


def stack_discounts(
    requests: Iterable[CouponRequest],
    subtotal_cents: int,
    *,
    now: datetime | None = None,
) -> DiscountStack:
    """Fold ``requests`` over ``subtotal_cents`` and return the applied stack.

    Raises the first eligibility failure encountered, in submission order.
    """

    moment = as_utc(now) if now is not None else datetime.now(timezone.utc)
    running = subtotal_cents
    applied: list[AppliedCoupon] = []
    pending: set[int] = set()

    for request in requests:
        terms = request.terms
        if terms is None or not terms.is_active:
            raise InvalidCoupon(request.code)
        if terms.expires_at is not None and as_utc(terms.expires_at) <= moment:
            raise CouponExpired(terms.code)
        if terms.redeemed_by_user or terms.coupon_id in pending:
            raise CouponAlreadyUsed(terms.code)
        if terms.usage_limit is not None and terms.redemption_count >= terms.usage_limit:
            raise UsageLimitReached(terms.code)
        if running < terms.min_amount_cents:
            raise MinimumAmountNotMet(terms.code, from_cents(terms.min_amount_cents))

        discount = coupon_discount(terms, running)
        running -= discount
        applied.append(AppliedCoupon(coupon_id=terms.coupon_id, code=terms.code, discount_cents=discount))
        pending.add(terms.coupon_id)

    return DiscountStack(subtotal_cents=subtotal_cents, applied=tuple(applied))
