"""Data access helpers for the order service."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import Select, and_, delete, exists, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from .models import Cart, CartItem, Coupon, Order, OrderCoupon, OrderItem, Product


class ProductRepository:
    """Read access to the product read-model."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_available(self, product_id: int) -> Product | None:
        result = await self.session.execute(
            select(Product).where(Product.id == product_id, Product.deleted_at.is_(None))
        )
        return result.scalar_one_or_none()


class CartRepository:
    """Persistence helpers for shopping carts."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_cart(self, *, user_id: int) -> Cart | None:
        result = await self.session.execute(
            select(Cart)
            .options(selectinload(Cart.items).selectinload(CartItem.product))
            .where(Cart.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_or_create_cart(self, *, user_id: int) -> Cart:
        cart = await self.get_cart(user_id=user_id)
        if cart is None:
            cart = Cart(user_id=user_id)
            self.session.add(cart)
            await self.session.flush()
            await self.session.refresh(cart, attribute_names=["created_at", "updated_at", "items"])
        return cart

    async def add_item(self, cart: Cart, *, product: Product, quantity: int) -> Cart:
        existing = next((item for item in cart.items if item.product_id == product.id), None)
        if existing:
            existing.quantity += quantity
        else:
            cart.items.append(CartItem(product_id=product.id, product=product, quantity=quantity))
        await self.session.flush()
        await self.session.refresh(cart, attribute_names=["items", "updated_at"])
        return cart

    async def update_item(self, cart: Cart, *, product_id: int, quantity: int) -> Cart:
        item = next((entry for entry in cart.items if entry.product_id == product_id), None)
        if item is None:
            raise KeyError(product_id)
        item.quantity = quantity
        await self.session.flush()
        await self.session.refresh(cart, attribute_names=["items", "updated_at"])
        return cart

    async def remove_item(self, cart: Cart, *, product_id: int) -> Cart:
        item = next((entry for entry in cart.items if entry.product_id == product_id), None)
        if item is None:
            raise KeyError(product_id)
        await self.session.delete(item)
        await self.session.flush()
        await self.session.refresh(cart, attribute_names=["items", "updated_at"])
        return cart

    async def clear_items(self, *, cart_id: int) -> int:
        result = await self.session.execute(
            delete(CartItem)
            .where(CartItem.cart_id == cart_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0


class CouponRepository:
    """Persistence helpers for coupon definitions."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_coupon(
        self,
        *,
        code: str,
        type: str,
        value: int,
        min_amount_cents: int,
        max_discount_cents: int | None,
        expires_at: datetime | None,
        is_active: bool,
        usage_limit: int | None,
        created_by: int,
    ) -> Coupon:
        coupon = Coupon(
            code=code,
            type=type,
            value=value,
            min_amount_cents=min_amount_cents,
            max_discount_cents=max_discount_cents,
            expires_at=expires_at,
            is_active=is_active,
            usage_limit=usage_limit,
            created_by=created_by,
        )
        self.session.add(coupon)
        await self.session.flush()
        await self.session.refresh(coupon, attribute_names=["created_at", "updated_at"])
        return coupon

    async def get_coupon(self, coupon_id: int, *, created_by: int | None = None) -> Coupon | None:
        stmt = select(Coupon).where(Coupon.id == coupon_id)
        if created_by is not None:
            stmt = stmt.where(Coupon.created_by == created_by)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def code_exists(self, code: str) -> bool:
        result = await self.session.execute(select(exists().where(Coupon.code == code)))
        return bool(result.scalar())

    async def list_coupons(
        self,
        *,
        created_by: int | None,
        coupon_type: str | None,
        is_active: bool | None,
        limit: int,
        offset: int,
    ) -> tuple[list[Coupon], int]:
        filters = []
        if created_by is not None:
            filters.append(Coupon.created_by == created_by)
        if coupon_type is not None:
            filters.append(Coupon.type == coupon_type)
        if is_active is not None:
            filters.append(Coupon.is_active == is_active)

        base: Select[tuple[Coupon]] = select(Coupon).order_by(Coupon.created_at.desc(), Coupon.id.desc())
        count: Select[tuple[int]] = select(func.count(Coupon.id))
        if filters:
            clause = and_(*filters)
            base = base.where(clause)
            count = count.where(clause)

        total = (await self.session.execute(count)).scalar_one()
        result = await self.session.execute(base.offset(offset).limit(limit))
        return list(result.scalars()), total

    async def update_lifecycle(
        self,
        coupon: Coupon,
        *,
        changes: dict[str, object],
    ) -> Coupon:
        for field, value in changes.items():
            setattr(coupon, field, value)
        await self.session.flush()
        await self.session.refresh(coupon, attribute_names=["updated_at"])
        return coupon

    async def was_applied(self, coupon_id: int) -> bool:
        result = await self.session.execute(select(exists().where(OrderCoupon.coupon_id == coupon_id)))
        return bool(result.scalar())

    async def delete_coupon(self, coupon: Coupon) -> None:
        await self.session.delete(coupon)
        await self.session.flush()


class OrderRepository:
    """Persistence helpers for orders and their line items."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_order(
        self,
        *,
        user_id: int,
        subtotal_cents: int,
        discount_cents: int,
        items: Sequence[dict[str, int | str]],
        coupons: Sequence[dict[str, int]],
    ) -> Order:
        order = Order(
            user_id=user_id,
            status="pending",
            subtotal_cents=subtotal_cents,
            discount_cents=discount_cents,
            total_cents=subtotal_cents - discount_cents,
        )
        order.items = [OrderItem(**entry) for entry in items]
        order.coupons = [OrderCoupon(**entry) for entry in coupons]
        self.session.add(order)
        await self.session.flush()
        await self.session.refresh(order, attribute_names=["items", "coupons", "created_at", "updated_at"])
        return order

    async def get_order(self, order_id: int, *, for_update: bool = False) -> Order | None:
        stmt = (
            select(Order)
            .options(
                selectinload(Order.items),
                selectinload(Order.coupons).selectinload(OrderCoupon.coupon),
            )
            .where(Order.id == order_id)
            # Status may have been changed by a bulk UPDATE in this session.
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_orders(self, *, user_id: int) -> list[Order]:
        result = await self.session.execute(
            select(Order)
            .options(
                selectinload(Order.items),
                selectinload(Order.coupons).selectinload(OrderCoupon.coupon),
            )
            .where(Order.user_id == user_id)
            .order_by(Order.created_at.desc(), Order.id.desc())
        )
        return list(result.scalars().unique())

    async def compare_and_set_status(self, order_id: int, *, expected: str, status: str) -> bool:
        """Move ``order_id`` to ``status`` only if it is still in ``expected``."""

        result = await self.session.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == expected)
            .values(status=status, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
