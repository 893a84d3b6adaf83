"""Service layer for orchestrating order operations.

Order creation, status updates and cancellation each own one database
transaction. Notifications and cache invalidation run only after that
transaction commits and never undo it.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from marketplace.common import lifespan_session
from marketplace.common.tracing import get_tracer

from .cache import OrderListingCache
from .cart_snapshot import CartSnapshotReader
from .coupons import CouponLedger
from .discounts import stack_discounts
from .errors import Forbidden, InsufficientStock, OrderNotFound, OrderServiceError
from .events import OrderEventPublisher
from .inventory import InventoryLedger
from .lifecycle import ensure_cancellable, ensure_transition, validate_status_update
from .metrics import (
    COUPON_REDEMPTIONS_TOTAL,
    COUPON_RELEASES_TOTAL,
    ORDER_CREATION_FAILURES_TOTAL,
    ORDER_SIDE_EFFECT_FAILURES_TOTAL,
    ORDER_STATUS_CHANGES_TOTAL,
    ORDER_TRANSACTION_SECONDS,
    ORDERS_CANCELLED_TOTAL,
    ORDERS_CREATED_TOTAL,
)
from .models import Order
from .money import from_cents
from .repository import CartRepository, OrderRepository
from .views import order_view

logger = logging.getLogger(__name__)
_TRACER = get_tracer(__name__)

ROLES = ("user", "seller", "admin")


@dataclass(frozen=True)
class Actor:
    """The authenticated caller as resolved by the upstream gateway."""

    user_id: int
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def is_seller(self) -> bool:
        return self.role == "seller"


class OrderService:
    """High-level operations on orders."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        publisher: OrderEventPublisher | None = None,
        cache: OrderListingCache | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.publisher = publisher
        self.cache = cache
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def create_order(self, user_id: int, coupon_codes: Iterable[str] = ()) -> Order:
        """Turn the user's cart into a pending order in one transaction."""

        codes = list(coupon_codes)
        started = time.perf_counter()
        with _TRACER.start_as_current_span("order.create") as span:
            span.set_attribute("order.user_id", user_id)
            span.set_attribute("order.coupon_count", len(codes))
            try:
                async with lifespan_session(self.session_factory) as session:
                    order = await self._create_in_transaction(session, user_id=user_id, codes=codes)
            except OrderServiceError as exc:
                ORDER_CREATION_FAILURES_TOTAL.labels(kind=exc.kind).inc()
                logger.info("Order creation for user %s rejected: %s (%s)", user_id, exc.kind, exc.message)
                raise
            finally:
                ORDER_TRANSACTION_SECONDS.labels(operation="create").observe(time.perf_counter() - started)
            span.set_attribute("order.id", order.id)

        ORDERS_CREATED_TOTAL.inc()
        if order.coupons:
            COUPON_REDEMPTIONS_TOTAL.inc(len(order.coupons))
        logger.info(
            "Order %s created for user %s: subtotal=%s discount=%s total=%s",
            order.id,
            user_id,
            from_cents(order.subtotal_cents),
            from_cents(order.discount_cents),
            from_cents(order.total_cents),
        )

        publisher = self.publisher
        if publisher is not None:
            await self._notify(
                lambda: publisher.order_created(
                    order_id=order.id,
                    total=from_cents(order.total_cents),
                    user_id=user_id,
                )
            )
        await self._invalidate(user_id)
        return order

    async def _create_in_transaction(self, session: AsyncSession, *, user_id: int, codes: list[str]) -> Order:
        snapshot = await CartSnapshotReader(session).load(user_id=user_id)

        ledger = CouponLedger(session)
        requests = await ledger.resolve(user_id=user_id, codes=codes)
        stack = stack_discounts(requests, snapshot.subtotal_cents, now=self._clock())

        inventory = InventoryLedger(session)
        for line in snapshot.lines:
            if not await inventory.withdraw(line.product_id, line.quantity):
                raise InsufficientStock(line.title)

        repository = OrderRepository(session)
        order = await repository.create_order(
            user_id=user_id,
            subtotal_cents=stack.subtotal_cents,
            discount_cents=stack.discount_cents,
            items=[
                {
                    "product_id": line.product_id,
                    "seller_id": line.seller_id,
                    "product_title": line.title,
                    "quantity": line.quantity,
                    "price_at_order_cents": line.unit_price_cents,
                }
                for line in snapshot.lines
            ],
            coupons=[
                {"coupon_id": applied.coupon_id, "discount_cents": applied.discount_cents}
                for applied in stack.applied
            ],
        )
        await ledger.redeem(user_id=user_id, applied=stack.applied)
        await CartRepository(session).clear_items(cart_id=snapshot.cart_id)

        return await self._reload(repository, order.id)

    async def get_orders(self, user_id: int) -> list[dict[str, Any]]:
        """Return the user's orders, newest first, as JSON-ready views."""

        if self.cache is not None:
            cached = await self.cache.get(user_id)
            if cached is not None:
                return cached

        async with lifespan_session(self.session_factory) as session:
            orders = await OrderRepository(session).list_orders(user_id=user_id)
            views = [order_view(order) for order in orders]

        if self.cache is not None:
            await self.cache.store(user_id, views)
        return views

    async def get_order(self, actor: Actor, order_id: int) -> Order:
        async with lifespan_session(self.session_factory) as session:
            order = await OrderRepository(session).get_order(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        if order.user_id != actor.user_id and not actor.is_admin:
            raise Forbidden("Not allowed to view this order")
        return order

    async def update_order_status(self, actor: Actor, order_id: int, status: str) -> Order:
        """Advance an order to a later status on the pending, paid, shipped, delivered chain."""

        if not actor.is_admin:
            raise Forbidden("Only admins can update order status")
        target = validate_status_update(status)

        started = time.perf_counter()
        with _TRACER.start_as_current_span("order.update_status") as span:
            span.set_attribute("order.id", order_id)
            span.set_attribute("order.status", target)
            try:
                async with lifespan_session(self.session_factory) as session:
                    repository = OrderRepository(session)
                    order = await repository.get_order(order_id)
                    if order is None:
                        raise OrderNotFound(order_id)
                    while True:
                        ensure_transition(order.status, target)
                        if await repository.compare_and_set_status(order_id, expected=order.status, status=target):
                            break
                        # Another writer moved the order; re-check against its new status.
                        order = await self._reload(repository, order_id)
                    order = await self._reload(repository, order_id)
            finally:
                ORDER_TRANSACTION_SECONDS.labels(operation="update_status").observe(time.perf_counter() - started)

        ORDER_STATUS_CHANGES_TOTAL.labels(status=target).inc()
        logger.info("Order %s moved to %s by user %s", order_id, target, actor.user_id)

        publisher = self.publisher
        if publisher is not None:
            await self._notify(
                lambda: publisher.order_status_changed(
                    order_id=order.id,
                    status=target,
                    order_user_id=order.user_id,
                )
            )
        await self._invalidate(order.user_id)
        return order

    async def cancel_order(self, actor: Actor, order_id: int) -> Order:
        """Cancel a pending order, returning its stock and releasing its coupons."""

        started = time.perf_counter()
        with _TRACER.start_as_current_span("order.cancel") as span:
            span.set_attribute("order.id", order_id)
            try:
                async with lifespan_session(self.session_factory) as session:
                    repository = OrderRepository(session)
                    order = await repository.get_order(order_id, for_update=True)
                    if order is None:
                        raise OrderNotFound(order_id)
                    if order.user_id != actor.user_id and not actor.is_admin:
                        raise Forbidden("Not allowed to cancel this order")
                    ensure_cancellable(order.status)

                    # Claim the transition first so only one canceller compensates.
                    if not await repository.compare_and_set_status(order_id, expected="pending", status="cancelled"):
                        current = await self._reload(repository, order_id)
                        ensure_cancellable(current.status)

                    inventory = InventoryLedger(session)
                    for item in order.items:
                        await inventory.restock(item.product_id, item.quantity)
                    released = await CouponLedger(session).release(
                        user_id=order.user_id,
                        coupon_ids=[applied.coupon_id for applied in order.coupons],
                    )
                    order = await self._reload(repository, order_id)
            finally:
                ORDER_TRANSACTION_SECONDS.labels(operation="cancel").observe(time.perf_counter() - started)

        ORDERS_CANCELLED_TOTAL.inc()
        if released:
            COUPON_RELEASES_TOTAL.inc(released)
        logger.info(
            "Order %s cancelled by user %s: %s items restocked, %s coupons released",
            order_id,
            actor.user_id,
            len(order.items),
            released,
        )

        publisher = self.publisher
        if publisher is not None:
            await self._notify(
                lambda: publisher.order_cancelled(order_id=order.id, order_user_id=order.user_id)
            )
        await self._invalidate(order.user_id)
        return order

    @staticmethod
    async def _reload(repository: OrderRepository, order_id: int) -> Order:
        order = await repository.get_order(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    async def _notify(self, publish: Callable[[], Awaitable[None]]) -> None:
        try:
            await publish()
        except Exception:
            logger.warning("Order event publication failed", exc_info=True)
            ORDER_SIDE_EFFECT_FAILURES_TOTAL.labels(collaborator="notification").inc()

    async def _invalidate(self, user_id: int) -> None:
        if self.cache is None:
            return
        try:
            await self.cache.invalidate_user_orders(user_id)
        except Exception:
            logger.warning("Order cache invalidation failed for user %s", user_id, exc_info=True)
            ORDER_SIDE_EFFECT_FAILURES_TOTAL.labels(collaborator="cache").inc()
