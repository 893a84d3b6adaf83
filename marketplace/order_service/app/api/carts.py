"""API routes for the caller's shopping cart."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Path, status

from ..dependencies import get_actor, get_cart_repository, get_product_repository
from ..errors import CartItemNotFound, CartNotFound, InsufficientStock, ProductNotFound
from ..repository import CartRepository, ProductRepository
from ..schemas import CartItemCreate, CartItemUpdate, CartResponse
from ..services import Actor
from ..views import cart_view

router = APIRouter(prefix="/cart", tags=["cart"])


@router.get("", response_model=CartResponse)
async def get_cart(
    actor: Actor = Depends(get_actor),
    carts: CartRepository = Depends(get_cart_repository),
) -> CartResponse:
    cart = await carts.get_cart(user_id=actor.user_id)
    return CartResponse.model_validate(cart_view(cart, user_id=actor.user_id))


@router.post("/items", response_model=CartResponse, status_code=status.HTTP_201_CREATED)
async def add_item(
    payload: CartItemCreate,
    actor: Actor = Depends(get_actor),
    carts: CartRepository = Depends(get_cart_repository),
    products: ProductRepository = Depends(get_product_repository),
) -> CartResponse:
    product = await products.get_available(payload.product_id)
    if product is None:
        raise ProductNotFound(payload.product_id)
    if product.stock < payload.quantity:
        raise InsufficientStock(product.title)

    cart = await carts.get_or_create_cart(user_id=actor.user_id)
    cart = await carts.add_item(cart, product=product, quantity=payload.quantity)
    return CartResponse.model_validate(cart_view(cart, user_id=actor.user_id))


@router.put("/items/{product_id}", response_model=CartResponse)
async def update_item(
    payload: CartItemUpdate,
    product_id: int = Path(..., ge=1),
    actor: Actor = Depends(get_actor),
    carts: CartRepository = Depends(get_cart_repository),
    products: ProductRepository = Depends(get_product_repository),
) -> CartResponse:
    cart = await carts.get_cart(user_id=actor.user_id)
    if cart is None:
        raise CartNotFound()

    product = await products.get_available(product_id)
    if product is None:
        raise ProductNotFound(product_id)
    if product.stock < payload.quantity:
        raise InsufficientStock(product.title)

    try:
        cart = await carts.update_item(cart, product_id=product_id, quantity=payload.quantity)
    except KeyError as exc:
        raise CartItemNotFound(product_id) from exc
    return CartResponse.model_validate(cart_view(cart, user_id=actor.user_id))


@router.delete("/items/{product_id}", response_model=CartResponse)
async def remove_item(
    product_id: int = Path(..., ge=1),
    actor: Actor = Depends(get_actor),
    carts: CartRepository = Depends(get_cart_repository),
) -> CartResponse:
    cart = await carts.get_cart(user_id=actor.user_id)
    if cart is None:
        raise CartNotFound()

    try:
        cart = await carts.remove_item(cart, product_id=product_id)
    except KeyError as exc:
        raise CartItemNotFound(product_id) from exc
    return CartResponse.model_validate(cart_view(cart, user_id=actor.user_id))


@router.delete("", response_model=CartResponse)
async def clear_cart(
    actor: Actor = Depends(get_actor),
    carts: CartRepository = Depends(get_cart_repository),
) -> CartResponse:
    cart = await carts.get_cart(user_id=actor.user_id)
    if cart is None:
        raise CartNotFound()

    await carts.clear_items(cart_id=cart.id)
    cart = await carts.get_cart(user_id=actor.user_id)
    return CartResponse.model_validate(cart_view(cart, user_id=actor.user_id))
