"""HTTP routes for order creation and lifecycle."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ..dependencies import get_actor, get_order_service
from ..schemas import OrderCreate, OrderListResponse, OrderResponse, OrderUpdateStatus
from ..services import Actor, OrderService
from ..views import order_view

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: OrderCreate,
    actor: Actor = Depends(get_actor),
    service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    order = await service.create_order(actor.user_id, payload.coupon_codes)
    return OrderResponse.model_validate(order_view(order))


@router.get("", response_model=OrderListResponse)
async def list_orders(
    actor: Actor = Depends(get_actor),
    service: OrderService = Depends(get_order_service),
) -> OrderListResponse:
    views = await service.get_orders(actor.user_id)
    items = [OrderResponse.model_validate(view) for view in views]
    return OrderListResponse(items=items, total=len(items))


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int,
    actor: Actor = Depends(get_actor),
    service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    order = await service.get_order(actor, order_id)
    return OrderResponse.model_validate(order_view(order))


@router.patch("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: int,
    payload: OrderUpdateStatus,
    actor: Actor = Depends(get_actor),
    service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    order = await service.update_order_status(actor, order_id, payload.status)
    return OrderResponse.model_validate(order_view(order))


@router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: int,
    actor: Actor = Depends(get_actor),
    service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    order = await service.cancel_order(actor, order_id)
    return OrderResponse.model_validate(order_view(order))
