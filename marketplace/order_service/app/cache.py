"""Redis cache of per-user order listings."""

from __future__ import annotations

import json
import logging
from contextlib import suppress
from datetime import datetime
from typing import Any

from marketplace.common.cache import Redis

from .metrics import ORDER_CACHE_EVENTS_TOTAL

logger = logging.getLogger(__name__)


def _encode(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


class OrderListingCache:
    """Read-through cache keyed by user; a missing client or zero TTL disables it."""

    def __init__(self, redis: Redis | None, *, ttl_seconds: int, key_prefix: str = "orders") -> None:
        self._redis = redis
        self._ttl = ttl_seconds
        self._prefix = key_prefix

    @property
    def enabled(self) -> bool:
        return self._redis is not None and self._ttl > 0

    def key_for(self, user_id: int) -> str:
        return f"{self._prefix}:user={user_id}"

    async def get(self, user_id: int) -> list[dict[str, Any]] | None:
        if not self.enabled:
            return None
        key = self.key_for(user_id)
        try:
            cached = await self._redis.get(key)
        except Exception:
            logger.warning("Order cache read failed for user %s", user_id, exc_info=True)
            ORDER_CACHE_EVENTS_TOTAL.labels(event="error").inc()
            return None
        if not cached:
            ORDER_CACHE_EVENTS_TOTAL.labels(event="miss").inc()
            return None
        try:
            data = json.loads(cached)
        except json.JSONDecodeError:
            ORDER_CACHE_EVENTS_TOTAL.labels(event="miss").inc()
            with suppress(Exception):
                await self._redis.delete(key)
            return None
        ORDER_CACHE_EVENTS_TOTAL.labels(event="hit").inc()
        return data

    async def store(self, user_id: int, orders: list[dict[str, Any]]) -> None:
        if not self.enabled:
            return
        try:
            await self._redis.set(self.key_for(user_id), json.dumps(orders, default=_encode), ex=self._ttl)
        except Exception:
            logger.warning("Order cache write failed for user %s", user_id, exc_info=True)
            ORDER_CACHE_EVENTS_TOTAL.labels(event="error").inc()
        else:
            ORDER_CACHE_EVENTS_TOTAL.labels(event="write").inc()

    async def invalidate_user_orders(self, user_id: int) -> int:
        """Drop the cached listing of ``user_id``'s orders. Errors propagate to the caller."""

        if self._redis is None:
            return 0
        removed = await self._redis.delete(self.key_for(user_id))
        ORDER_CACHE_EVENTS_TOTAL.labels(event="invalidate").inc()
        return int(removed or 0)
