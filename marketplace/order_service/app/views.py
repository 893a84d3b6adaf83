"""JSON-ready views of ORM rows, shared by the HTTP layer and the listing cache."""

from __future__ import annotations

from typing import Any

from .models import Cart, Coupon, Order
from .money import from_cents


def order_view(order: Order) -> dict[str, Any]:
    return {
        "id": order.id,
        "userId": order.user_id,
        "status": order.status,
        "subtotal": from_cents(order.subtotal_cents),
        "discount": from_cents(order.discount_cents),
        "total": from_cents(order.total_cents),
        "items": [
            {
                "id": item.id,
                "productId": item.product_id,
                "sellerId": item.seller_id,
                "productTitle": item.product_title,
                "quantity": item.quantity,
                "priceAtOrder": from_cents(item.price_at_order_cents),
            }
            for item in order.items
        ],
        "coupons": [
            {
                "couponId": applied.coupon_id,
                "code": applied.coupon.code,
                "type": applied.coupon.type,
                "value": from_cents(applied.coupon.value),
                "discountAmount": from_cents(applied.discount_cents),
            }
            for applied in order.coupons
        ],
        "createdAt": order.created_at,
        "updatedAt": order.updated_at,
    }


def cart_view(cart: Cart | None, *, user_id: int) -> dict[str, Any]:
    """Cart with current product prices; a missing cart renders as empty."""

    if cart is None:
        return {"id": None, "userId": user_id, "items": [], "totalAmount": from_cents(0)}
    total_cents = 0
    items = []
    for item in cart.items:
        line_cents = item.product.price_cents * item.quantity
        total_cents += line_cents
        items.append(
            {
                "id": item.id,
                "productId": item.product_id,
                "title": item.product.title,
                "price": from_cents(item.product.price_cents),
                "quantity": item.quantity,
                "lineTotal": from_cents(line_cents),
            }
        )
    return {"id": cart.id, "userId": cart.user_id, "items": items, "totalAmount": from_cents(total_cents)}


def coupon_view(coupon: Coupon) -> dict[str, Any]:
    return {
        "id": coupon.id,
        "code": coupon.code,
        "type": coupon.type,
        "value": from_cents(coupon.value),
        "minAmount": from_cents(coupon.min_amount_cents),
        "maxDiscount": from_cents(coupon.max_discount_cents) if coupon.max_discount_cents is not None else None,
        "expiresAt": coupon.expires_at,
        "isActive": coupon.is_active,
        "usageLimit": coupon.usage_limit,
        "createdBy": coupon.created_by,
        "createdAt": coupon.created_at,
        "updatedAt": coupon.updated_at,
    }
