"""Coupon redemption ledger.

A ``UserCoupon`` row means the user has consumed the coupon, and
``Coupon.redemptions`` counts those rows for the global usage limit. Both are
written when an order commits and undone when that order is cancelled, which
is what makes the coupon usable again.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from sqlalchemy import delete, exists, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .discounts import AppliedCoupon, CouponRequest, CouponTerms, normalize_code
from .errors import CouponAlreadyUsed, UsageLimitReached
from .models import Coupon, UserCoupon


class CouponLedger:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def resolve(self, *, user_id: int, codes: Iterable[str]) -> list[CouponRequest]:
        """Look up each submitted code, keeping submission order and duplicates.

        Coupon rows are locked for the rest of the transaction where the
        database supports it. The usage limit itself is enforced again by
        :meth:`redeem`.
        """

        resolved: dict[str, CouponTerms | None] = {}
        requests: list[CouponRequest] = []
        for raw in codes:
            code = normalize_code(raw)
            if code not in resolved:
                resolved[code] = await self._terms(user_id=user_id, code=code)
            requests.append(CouponRequest(code=code, terms=resolved[code]))
        return requests

    async def _terms(self, *, user_id: int, code: str) -> CouponTerms | None:
        result = await self.session.execute(
            select(Coupon)
            .where(Coupon.code == code)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        coupon = result.scalar_one_or_none()
        if coupon is None:
            return None
        return CouponTerms(
            coupon_id=coupon.id,
            code=coupon.code,
            type=coupon.type,
            value=coupon.value,
            min_amount_cents=coupon.min_amount_cents,
            max_discount_cents=coupon.max_discount_cents,
            expires_at=coupon.expires_at,
            is_active=coupon.is_active,
            usage_limit=coupon.usage_limit,
            redemption_count=coupon.redemptions,
            redeemed_by_user=await self.has_redeemed(user_id=user_id, coupon_id=coupon.id),
        )

    async def has_redeemed(self, *, user_id: int, coupon_id: int) -> bool:
        result = await self.session.execute(
            select(exists().where(UserCoupon.user_id == user_id, UserCoupon.coupon_id == coupon_id))
        )
        return bool(result.scalar())

    async def redeem(self, *, user_id: int, applied: Sequence[AppliedCoupon]) -> None:
        for entry in applied:
            self.session.add(UserCoupon(user_id=user_id, coupon_id=entry.coupon_id))
            try:
                await self.session.flush()
            except IntegrityError as exc:
                # A concurrent order by the same user redeemed it first.
                raise CouponAlreadyUsed(entry.code) from exc
            if not await self._claim(entry.coupon_id):
                raise UsageLimitReached(entry.code)

    async def _claim(self, coupon_id: int) -> bool:
        """Count one redemption unless the coupon's usage limit is already reached."""

        result = await self.session.execute(
            update(Coupon)
            .where(
                Coupon.id == coupon_id,
                or_(Coupon.usage_limit.is_(None), Coupon.redemptions < Coupon.usage_limit),
            )
            .values(redemptions=Coupon.redemptions + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def release(self, *, user_id: int, coupon_ids: Sequence[int]) -> int:
        released = 0
        for coupon_id in coupon_ids:
            result = await self.session.execute(
                delete(UserCoupon)
                .where(UserCoupon.user_id == user_id, UserCoupon.coupon_id == coupon_id)
                .execution_options(synchronize_session=False)
            )
            if not result.rowcount:
                continue
            await self.session.execute(
                update(Coupon)
                .where(Coupon.id == coupon_id, Coupon.redemptions > 0)
                .values(redemptions=Coupon.redemptions - 1)
                .execution_options(synchronize_session=False)
            )
            released += 1
        return released
