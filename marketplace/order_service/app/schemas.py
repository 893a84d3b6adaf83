"""Pydantic schemas for the order service."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, field_validator, model_validator


# Orders -----------------------------------------------------------------------------------
class OrderCreate(BaseModel):
    coupon_codes: list[str] = Field(default_factory=list, alias="couponCodes", max_length=20)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("coupon_codes")
    @classmethod
    def _strip_codes(cls, value: list[str]) -> list[str]:
        cleaned = [code.strip() for code in value]
        if any(not code for code in cleaned):
            msg = "coupon codes must be non-empty"
            raise ValueError(msg)
        return cleaned


class OrderUpdateStatus(BaseModel):
    status: str = Field(min_length=1, max_length=32)


class OrderItemResponse(BaseModel):
    id: PositiveInt
    product_id: PositiveInt = Field(alias="productId")
    seller_id: int = Field(alias="sellerId")
    product_title: str = Field(alias="productTitle")
    quantity: PositiveInt
    price_at_order: Decimal = Field(alias="priceAtOrder")

    model_config = ConfigDict(populate_by_name=True)


class OrderCouponResponse(BaseModel):
    coupon_id: PositiveInt = Field(alias="couponId")
    code: str
    type: str
    value: Decimal
    discount_amount: Decimal = Field(alias="discountAmount")

    model_config = ConfigDict(populate_by_name=True)


class OrderResponse(BaseModel):
    id: PositiveInt
    user_id: int = Field(alias="userId")
    status: str
    subtotal: Decimal
    discount: Decimal
    total: Decimal
    items: list[OrderItemResponse]
    coupons: list[OrderCouponResponse]
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True)


class OrderListResponse(BaseModel):
    items: list[OrderResponse]
    total: int


# Cart -------------------------------------------------------------------------------------
class CartItemCreate(BaseModel):
    product_id: PositiveInt = Field(alias="productId")
    quantity: PositiveInt = 1

    model_config = ConfigDict(populate_by_name=True)


class CartItemUpdate(BaseModel):
    quantity: PositiveInt


class CartItemResponse(BaseModel):
    id: PositiveInt
    product_id: PositiveInt = Field(alias="productId")
    title: str
    price: Decimal
    quantity: PositiveInt
    line_total: Decimal = Field(alias="lineTotal")

    model_config = ConfigDict(populate_by_name=True)


class CartResponse(BaseModel):
    id: PositiveInt | None = None
    user_id: int = Field(alias="userId")
    items: list[CartItemResponse]
    total_amount: Decimal = Field(alias="totalAmount")

    model_config = ConfigDict(populate_by_name=True)


# Coupons ----------------------------------------------------------------------------------
class CouponCreate(BaseModel):
    code: str = Field(min_length=1, max_length=64)
    type: Literal["percentage", "fixed"]
    value: Decimal = Field(gt=Decimal("0"), max_digits=12, decimal_places=2)
    min_amount: Decimal = Field(default=Decimal("0"), ge=Decimal("0"), max_digits=12, decimal_places=2, alias="minAmount")
    max_discount: Decimal | None = Field(
        default=None, ge=Decimal("0"), max_digits=12, decimal_places=2, alias="maxDiscount"
    )
    expires_at: datetime = Field(alias="expiresAt")
    is_active: bool = Field(default=True, alias="isActive")
    usage_limit: PositiveInt | None = Field(default=None, alias="usageLimit")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("code")
    @classmethod
    def _normalize_code(cls, value: str) -> str:
        cleaned = value.strip().upper()
        if not cleaned:
            msg = "code must be non-empty"
            raise ValueError(msg)
        return cleaned

    @model_validator(mode="after")
    def _check_terms(self) -> CouponCreate:
        if self.type == "percentage" and not Decimal("1") <= self.value <= Decimal("99"):
            msg = "percentage coupons must be between 1 and 99"
            raise ValueError(msg)
        if self.max_discount == Decimal("0"):
            # Zero means no cap.
            self.max_discount = None
        return self


class CouponUpdate(BaseModel):
    is_active: bool | None = Field(default=None, alias="isActive")
    expires_at: datetime | None = Field(default=None, alias="expiresAt")
    usage_limit: PositiveInt | None = Field(default=None, alias="usageLimit")

    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class CouponResponse(BaseModel):
    id: PositiveInt
    code: str
    type: str
    value: Decimal
    min_amount: Decimal = Field(alias="minAmount")
    max_discount: Decimal | None = Field(default=None, alias="maxDiscount")
    expires_at: datetime | None = Field(default=None, alias="expiresAt")
    is_active: bool = Field(alias="isActive")
    usage_limit: int | None = Field(default=None, alias="usageLimit")
    created_by: int = Field(alias="createdBy")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True)


class CouponListResponse(BaseModel):
    items: list[CouponResponse]
    total: int
