"""API routes for coupon management by sellers and admins."""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.exc import IntegrityError

from ..dependencies import get_actor, get_coupon_repository
from ..errors import CouponCodeTaken, CouponInUse, CouponNotFound, Forbidden
from ..models import Coupon
from ..money import to_cents
from ..repository import CouponRepository
from ..schemas import CouponCreate, CouponListResponse, CouponResponse, CouponUpdate
from ..services import Actor
from ..views import coupon_view

router = APIRouter(prefix="/coupons", tags=["coupons"])


def _require_manager(actor: Actor, action: str) -> None:
    if not (actor.is_admin or actor.is_seller):
        raise Forbidden(f"Only sellers or admins can {action} coupons")


async def _owned_coupon(repository: CouponRepository, actor: Actor, coupon_id: int) -> Coupon:
    # Sellers only see their own coupons; a foreign id looks missing.
    owner = None if actor.is_admin else actor.user_id
    coupon = await repository.get_coupon(coupon_id, created_by=owner)
    if coupon is None:
        raise CouponNotFound(coupon_id)
    return coupon


@router.post("", response_model=CouponResponse, status_code=status.HTTP_201_CREATED)
async def create_coupon(
    payload: CouponCreate,
    actor: Actor = Depends(get_actor),
    repository: CouponRepository = Depends(get_coupon_repository),
) -> CouponResponse:
    _require_manager(actor, "create")
    if await repository.code_exists(payload.code):
        raise CouponCodeTaken(payload.code)

    try:
        coupon = await repository.create_coupon(
            code=payload.code,
            type=payload.type,
            value=to_cents(payload.value),
            min_amount_cents=to_cents(payload.min_amount),
            max_discount_cents=to_cents(payload.max_discount) if payload.max_discount is not None else None,
            expires_at=payload.expires_at,
            is_active=payload.is_active,
            usage_limit=payload.usage_limit,
            created_by=actor.user_id,
        )
    except IntegrityError as exc:
        raise CouponCodeTaken(payload.code) from exc
    return CouponResponse.model_validate(coupon_view(coupon))


@router.get("", response_model=CouponListResponse)
async def list_coupons(
    coupon_type: Literal["percentage", "fixed"] | None = Query(default=None, alias="type"),
    is_active: bool | None = Query(default=None, alias="isActive"),
    limit: int = Query(default=15, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    actor: Actor = Depends(get_actor),
    repository: CouponRepository = Depends(get_coupon_repository),
) -> CouponListResponse:
    _require_manager(actor, "list")
    coupons, total = await repository.list_coupons(
        created_by=None if actor.is_admin else actor.user_id,
        coupon_type=coupon_type,
        is_active=is_active,
        limit=limit,
        offset=offset,
    )
    items = [CouponResponse.model_validate(coupon_view(coupon)) for coupon in coupons]
    return CouponListResponse(items=items, total=total)


@router.get("/{coupon_id}", response_model=CouponResponse)
async def get_coupon(
    coupon_id: int,
    actor: Actor = Depends(get_actor),
    repository: CouponRepository = Depends(get_coupon_repository),
) -> CouponResponse:
    _require_manager(actor, "access")
    coupon = await _owned_coupon(repository, actor, coupon_id)
    return CouponResponse.model_validate(coupon_view(coupon))


@router.put("/{coupon_id}", response_model=CouponResponse)
async def update_coupon(
    coupon_id: int,
    payload: CouponUpdate,
    actor: Actor = Depends(get_actor),
    repository: CouponRepository = Depends(get_coupon_repository),
) -> CouponResponse:
    _require_manager(actor, "update")
    coupon = await _owned_coupon(repository, actor, coupon_id)
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("is_active", True) is None:
        changes.pop("is_active")
    if changes:
        coupon = await repository.update_lifecycle(coupon, changes=changes)
    return CouponResponse.model_validate(coupon_view(coupon))


@router.delete("/{coupon_id}")
async def delete_coupon(
    coupon_id: int,
    actor: Actor = Depends(get_actor),
    repository: CouponRepository = Depends(get_coupon_repository),
) -> Response:
    _require_manager(actor, "delete")
    coupon = await _owned_coupon(repository, actor, coupon_id)
    if await repository.was_applied(coupon.id):
        raise CouponInUse(coupon.code)
    await repository.delete_coupon(coupon)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
