"""Read a user's cart together with the current product rows."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .errors import CartEmpty, CartNotFound, InsufficientStock, ProductUnavailable
from .models import Cart, CartItem, Product


@dataclass(frozen=True)
class CartLine:
    product_id: int
    seller_id: int
    title: str
    quantity: int
    unit_price_cents: int

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity


@dataclass(frozen=True)
class CartSnapshot:
    cart_id: int
    user_id: int
    lines: tuple[CartLine, ...]

    @property
    def subtotal_cents(self) -> int:
        return sum(line.line_total_cents for line in self.lines)


class CartSnapshotReader:
    """Loads the cart inside the caller's transaction and validates every line."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def load(self, *, user_id: int) -> CartSnapshot:
        cart_result = await self.session.execute(select(Cart.id).where(Cart.user_id == user_id))
        cart_id = cart_result.scalar_one_or_none()
        if cart_id is None:
            raise CartNotFound()

        rows = (
            await self.session.execute(
                select(CartItem.product_id, CartItem.quantity, Product)
                .outerjoin(Product, Product.id == CartItem.product_id)
                .where(CartItem.cart_id == cart_id)
                .order_by(CartItem.id)
                # Bypass any Product already in the identity map.
                .execution_options(populate_existing=True)
            )
        ).all()
        if not rows:
            raise CartEmpty()

        lines: list[CartLine] = []
        for product_id, quantity, product in rows:
            if product is None or product.deleted_at is not None:
                raise ProductUnavailable(product.title if product is not None else None)
            if product.stock < quantity:
                raise InsufficientStock(product.title)
            lines.append(
                CartLine(
                    product_id=product_id,
                    seller_id=product.seller_id,
                    title=product.title,
                    quantity=quantity,
                    unit_price_cents=product.price_cents,
                )
            )
        return CartSnapshot(cart_id=cart_id, user_id=user_id, lines=tuple(lines))
