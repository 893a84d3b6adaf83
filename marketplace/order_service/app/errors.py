"""Typed failures raised by the order engine.

Each error carries a stable ``kind``, the HTTP status it maps to, a human
readable message and a ``context`` dict with the offending coupon code or
product title where one exists.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any


class OrderServiceError(Exception):
    kind = "order_service_error"
    status_code = 400

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = {key: value for key, value in context.items() if value is not None}


# Not found --------------------------------------------------------------------------------
class CartNotFound(OrderServiceError):
    kind = "cart_not_found"
    status_code = 404

    def __init__(self) -> None:
        super().__init__("Cart not found")


class CartItemNotFound(OrderServiceError):
    kind = "cart_item_not_found"
    status_code = 404

    def __init__(self, product_id: int) -> None:
        super().__init__("Product not found in cart", productId=product_id)


class ProductNotFound(OrderServiceError):
    kind = "product_not_found"
    status_code = 404

    def __init__(self, product_id: int) -> None:
        super().__init__("Product not found", productId=product_id)


class OrderNotFound(OrderServiceError):
    kind = "order_not_found"
    status_code = 404

    def __init__(self, order_id: int) -> None:
        super().__init__("Order not found", orderId=order_id)


class CouponNotFound(OrderServiceError):
    kind = "coupon_not_found"
    status_code = 404

    def __init__(self, coupon_id: int) -> None:
        super().__init__("Coupon not found", couponId=coupon_id)


# Cart and stock conflicts -----------------------------------------------------------------
class CartEmpty(OrderServiceError):
    kind = "cart_empty"

    def __init__(self) -> None:
        super().__init__("Cart is empty")


class ProductUnavailable(OrderServiceError):
    kind = "product_unavailable"

    def __init__(self, product_title: str | None) -> None:
        message = f"Product no longer available: {product_title}" if product_title else "Product no longer available"
        super().__init__(message, productTitle=product_title)


class InsufficientStock(OrderServiceError):
    kind = "insufficient_stock"

    def __init__(self, product_title: str) -> None:
        super().__init__(f"Insufficient stock for {product_title}", productTitle=product_title)


# Coupon conflicts -------------------------------------------------------------------------
class CouponError(OrderServiceError):
    kind = "coupon_error"

    def __init__(self, message: str, code: str, **context: Any) -> None:
        super().__init__(message, code=code, **context)
        self.code = code


class InvalidCoupon(CouponError):
    kind = "invalid_coupon"

    def __init__(self, code: str) -> None:
        super().__init__(f"Invalid coupon: {code}", code)


class CouponExpired(CouponError):
    kind = "coupon_expired"

    def __init__(self, code: str) -> None:
        super().__init__(f"Coupon expired: {code}", code)


class CouponAlreadyUsed(CouponError):
    kind = "coupon_already_used"

    def __init__(self, code: str) -> None:
        super().__init__(f"Coupon already used: {code}", code)


class UsageLimitReached(CouponError):
    kind = "usage_limit_reached"

    def __init__(self, code: str) -> None:
        super().__init__(f"Coupon usage limit reached: {code}", code)


class MinimumAmountNotMet(CouponError):
    kind = "minimum_amount_not_met"

    def __init__(self, code: str, min_amount: Decimal) -> None:
        super().__init__(
            f"Minimum amount {min_amount} required for coupon: {code}",
            code,
            minAmount=str(min_amount),
        )
        self.min_amount = min_amount


class CouponCodeTaken(OrderServiceError):
    kind = "coupon_code_taken"
    status_code = 409

    def __init__(self, code: str) -> None:
        super().__init__("A coupon with this code already exists", code=code)


class CouponInUse(OrderServiceError):
    kind = "coupon_in_use"
    status_code = 409

    def __init__(self, code: str) -> None:
        super().__init__("Coupon has been applied to orders; deactivate it instead", code=code)


# Lifecycle conflicts ----------------------------------------------------------------------
class InvalidOrderStatus(OrderServiceError):
    kind = "invalid_status"

    def __init__(self, status: str) -> None:
        super().__init__("Invalid status", status=status)


class InvalidTransition(OrderServiceError):
    kind = "invalid_transition"

    def __init__(self, current: str, target: str) -> None:
        if current in ("cancelled", "delivered"):
            message = f"Cannot update {current} order"
        else:
            message = f"Cannot move order from {current} to {target}"
        super().__init__(message, currentStatus=current, targetStatus=target)
        self.current = current
        self.target = target


class AlreadyCancelled(OrderServiceError):
    kind = "already_cancelled"

    def __init__(self) -> None:
        super().__init__("Order already cancelled")


class OnlyPendingCancellable(OrderServiceError):
    kind = "only_pending_cancellable"

    def __init__(self, status: str) -> None:
        super().__init__("Only pending orders can be cancelled", status=status)


# Authorization ----------------------------------------------------------------------------
class Forbidden(OrderServiceError):
    kind = "forbidden"
    status_code = 403


class ValidationFailed(OrderServiceError):
    kind = "validation_error"
