import json
from typing import Any

import pytest
from prometheus_client import REGISTRY
from sqlalchemy import select

from marketplace.common import create_engine, dispose_engines, get_session_factory
from marketplace.common.kafka import KafkaConsumerStub, KafkaProducerStub
from marketplace.order_service.app.cache import OrderListingCache
from marketplace.order_service.app.events import ORDER_TOPICS, OrderEventPublisher
from marketplace.order_service.app.models import Base, Cart, CartItem, Order, Product
from marketplace.order_service.app.services import Actor, OrderService

ADMIN = Actor(user_id=1, role="admin")


class _MemoryRedis:
    def __init__(self) -> None:
        self._store: dict[str, str] = {}
        self.deleted: list[str] = []

    async def get(self, key: str) -> str | None:
        return self._store.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> None:  # noqa: ARG002 - TTL ignored in stub
        self._store[key] = value

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._store.pop(key, None) is not None:
                removed += 1
                self.deleted.append(key)
        return removed


class _ErrorRedis:
    async def get(self, key: str) -> str | None:
        raise RuntimeError(f"cache get failure for {key}")

    async def set(self, key: str, value: str, ex: int | None = None) -> None:  # noqa: ARG002
        raise RuntimeError(f"cache set failure for {key}")

    async def delete(self, *keys: str) -> int:
        raise RuntimeError("cache delete failure")


class _FailingProducer:
    async def send(self, topic: str, value: dict[str, Any], *, key: str | None = None) -> int:
        raise RuntimeError(f"broker unavailable for {topic}")


class _MetricTracker:
    def __init__(self, name: str, labels: dict[str, str] | None = None) -> None:
        self.name = name
        self.labels = labels or {}
        baseline = REGISTRY.get_sample_value(name, self.labels)
        self._baseline = baseline if baseline is not None else 0.0

    def delta(self) -> float:
        current = REGISTRY.get_sample_value(self.name, self.labels)
        value = current if current is not None else 0.0
        return value - self._baseline


async def _prepare_database(tmp_path):
    database_url = f"sqlite+aiosqlite:///{tmp_path / 'side_effects.db'}"
    engine = create_engine(database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = get_session_factory(database_url)
    async with session_factory() as session:
        product = Product(seller_id=2, title="Kettle", price_cents=4599, stock=20)
        session.add(product)
        await session.flush()
        for user_id in (5, 55):
            cart = Cart(user_id=user_id)
            session.add(cart)
            await session.flush()
            session.add(CartItem(cart_id=cart.id, product_id=product.id, quantity=1))
        await session.commit()
    return session_factory


async def _refill(session_factory, user_id: int) -> None:
    async with session_factory() as session:
        cart = (await session.execute(select(Cart).where(Cart.user_id == user_id))).scalar_one()
        product_id = (await session.execute(select(Product.id))).scalars().first()
        session.add(CartItem(cart_id=cart.id, product_id=product_id, quantity=1))
        await session.commit()


@pytest.mark.asyncio
async def test_lifecycle_events_are_published_after_commit(tmp_path) -> None:
    session_factory = await _prepare_database(tmp_path)
    received: list[tuple[str, dict[str, Any]]] = []

    async def _capture(topic: str, message: dict[str, Any]) -> None:
        received.append((topic, message))

    producer = KafkaProducerStub(bootstrap_servers="kafka:9092")
    await producer.connect()
    consumer = KafkaConsumerStub(list(ORDER_TOPICS), _capture)
    await consumer.start()
    try:
        service = OrderService(session_factory, publisher=OrderEventPublisher(producer))
        order = await service.create_order(5)
        await service.update_order_status(ADMIN, order.id, "paid")
        await _refill(session_factory, 5)
        second = await service.create_order(5)
        await service.cancel_order(Actor(user_id=5), second.id)
    finally:
        await consumer.stop()
        await producer.close()
        await dispose_engines()

    assert [topic for topic, _ in received] == [
        "order.created.v1",
        "order.status.changed.v1",
        "order.created.v1",
        "order.cancelled.v1",
    ]
    created = received[0][1]
    assert created["orderId"] == order.id
    assert created["userId"] == 5
    assert created["total"] == "45.99"
    assert created["eventType"] == "order.created.v1"
    assert created["key"] == str(order.id)
    assert received[1][1]["status"] == "paid"
    assert received[1][1]["orderUserId"] == 5
    assert received[3][1] == {
        "eventType": "order.cancelled.v1",
        "occurredAt": received[3][1]["occurredAt"],
        "orderId": second.id,
        "orderUserId": 5,
        "key": str(second.id),
    }


@pytest.mark.asyncio
async def test_publish_failure_does_not_undo_the_order(tmp_path) -> None:
    session_factory = await _prepare_database(tmp_path)
    failures = _MetricTracker("order_side_effect_failures_total", {"collaborator": "notification"})
    try:
        service = OrderService(session_factory, publisher=OrderEventPublisher(_FailingProducer()))

        order = await service.create_order(5)

        async with session_factory() as session:
            stored = await session.get(Order, order.id)
            assert stored is not None
            assert stored.status == "pending"
        assert failures.delta() == 1
    finally:
        await dispose_engines()


@pytest.mark.asyncio
async def test_listing_cache_is_filled_and_invalidated_per_user(tmp_path) -> None:
    session_factory = await _prepare_database(tmp_path)
    redis = _MemoryRedis()
    cache = OrderListingCache(redis, ttl_seconds=600)  # type: ignore[arg-type]
    hits = _MetricTracker("order_cache_events_total", {"event": "hit"})
    try:
        service = OrderService(session_factory, cache=cache)
        await service.create_order(5)
        await service.create_order(55)

        first = await service.get_orders(5)
        assert [view["userId"] for view in first] == [5]
        assert json.loads(redis._store["orders:user=5"])[0]["total"] == "45.99"

        cached = await service.get_orders(5)
        assert cached[0]["id"] == first[0]["id"]
        assert hits.delta() == 1

        await service.get_orders(55)
        await service.update_order_status(ADMIN, first[0]["id"], "paid")
        assert "orders:user=5" not in redis._store
        assert redis.deleted == ["orders:user=5"]
        assert "orders:user=55" in redis._store

        refreshed = await service.get_orders(5)
        assert refreshed[0]["status"] == "paid"
    finally:
        await dispose_engines()


@pytest.mark.asyncio
async def test_cache_outage_is_tolerated(tmp_path) -> None:
    session_factory = await _prepare_database(tmp_path)
    cache = OrderListingCache(_ErrorRedis(), ttl_seconds=600)  # type: ignore[arg-type]
    failures = _MetricTracker("order_side_effect_failures_total", {"collaborator": "cache"})
    errors = _MetricTracker("order_cache_events_total", {"event": "error"})
    try:
        service = OrderService(session_factory, cache=cache)

        order = await service.create_order(5)
        views = await service.get_orders(5)

        assert [view["id"] for view in views] == [order.id]
        assert failures.delta() == 1
        assert errors.delta() == 2
    finally:
        await dispose_engines()


@pytest.mark.asyncio
async def test_disabled_cache_skips_redis() -> None:
    redis = _MemoryRedis()
    cache = OrderListingCache(redis, ttl_seconds=0)  # type: ignore[arg-type]

    await cache.store(5, [{"id": 1}])

    assert await cache.get(5) is None
    assert redis._store == {}
