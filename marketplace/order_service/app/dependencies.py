"""Dependency helpers for order service."""

from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from marketplace.common import lifespan_session

from .repository import CartRepository, CouponRepository, ProductRepository
from .services import ROLES, Actor, OrderService


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    """Yield an AsyncSession for the current request lifecycle."""

    session_factory: async_sessionmaker[AsyncSession] = request.app.state.session_factory
    async with lifespan_session(session_factory) as session:
        yield session


def get_actor(
    user_id: str | None = Header(default=None, alias="X-User-Id"),
    role: str | None = Header(default=None, alias="X-User-Role"),
) -> Actor:
    """Resolve the caller from the identity headers set by the gateway."""

    if user_id is None or not user_id.strip().isdigit() or int(user_id) < 1:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authorized, no valid user")
    resolved_role = (role or "user").strip().lower()
    if resolved_role not in ROLES:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authorized, unknown role")
    return Actor(user_id=int(user_id), role=resolved_role)


def get_order_service(request: Request) -> OrderService:
    """Return the order service wired during application startup."""

    return request.app.state.order_service


def get_cart_repository(session: AsyncSession = Depends(get_session)) -> CartRepository:
    return CartRepository(session)


def get_product_repository(session: AsyncSession = Depends(get_session)) -> ProductRepository:
    return ProductRepository(session)


def get_coupon_repository(session: AsyncSession = Depends(get_session)) -> CouponRepository:
    return CouponRepository(session)
