"""Order lifecycle events handed to the notification collaborator."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from marketplace.common.kafka import KafkaProducerStub

ORDER_CREATED_TOPIC = "order.created.v1"
ORDER_STATUS_CHANGED_TOPIC = "order.status.changed.v1"
ORDER_CANCELLED_TOPIC = "order.cancelled.v1"

ORDER_TOPICS = (ORDER_CREATED_TOPIC, ORDER_STATUS_CHANGED_TOPIC, ORDER_CANCELLED_TOPIC)


class OrderEventPublisher:
    """Publishes order lifecycle events; a missing producer turns every call into a no-op."""

    def __init__(self, producer: KafkaProducerStub | None) -> None:
        self._producer = producer

    async def _emit(self, topic: str, payload: dict[str, Any], *, key: str) -> None:
        if self._producer is None:
            return
        envelope = {
            "eventType": topic,
            "occurredAt": datetime.now(timezone.utc).isoformat(),
            **payload,
        }
        await self._producer.send(topic, envelope, key=key)

    async def order_created(self, *, order_id: int, total: Decimal, user_id: int) -> None:
        await self._emit(
            ORDER_CREATED_TOPIC,
            {"orderId": order_id, "total": str(total), "userId": user_id},
            key=str(order_id),
        )

    async def order_status_changed(self, *, order_id: int, status: str, order_user_id: int) -> None:
        await self._emit(
            ORDER_STATUS_CHANGED_TOPIC,
            {"orderId": order_id, "status": status, "orderUserId": order_user_id},
            key=str(order_id),
        )

    async def order_cancelled(self, *, order_id: int, order_user_id: int) -> None:
        await self._emit(
            ORDER_CANCELLED_TOPIC,
            {"orderId": order_id, "orderUserId": order_user_id},
            key=str(order_id),
        )
