"""In-process stand-ins for the Kafka producer/consumer used by the services.

Messages are dispatched on the running event loop to every subscribed handler.
A failing handler is logged and skipped so one consumer cannot break delivery
to the others or surface an error to the producer.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Sequence

_LOGGER = logging.getLogger(__name__)

Handler = Callable[[dict[str, Any]], Awaitable[None]]


class _InMemoryBroker:
    def __init__(self) -> None:
        self._subscribers: dict[str, list[Handler]] = defaultdict(list)

    def subscribe(self, topic: str, handler: Handler) -> None:
        self._subscribers[topic].append(handler)

    def unsubscribe(self, topic: str, handler: Handler) -> None:
        handlers = self._subscribers.get(topic)
        if handlers and handler in handlers:
            handlers.remove(handler)
            if not handlers:
                self._subscribers.pop(topic, None)

    async def publish(self, topic: str, message: dict[str, Any]) -> int:
        delivered = 0
        # Iterate over a copy in case handlers mutate subscriptions.
        for handler in list(self._subscribers.get(topic, [])):
            try:
                await handler(message)
            except Exception:
                _LOGGER.exception("Handler for topic %s failed", topic)
            else:
                delivered += 1
        return delivered


_BROKER = _InMemoryBroker()


class KafkaProducerStub:
    """Producer with the aiokafka call shape, backed by the in-process broker."""

    def __init__(self, *, bootstrap_servers: str | None = None, **_kwargs: Any) -> None:
        self.bootstrap_servers = bootstrap_servers
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        self._connected = True

    async def send(self, topic: str, value: dict[str, Any], *, key: str | None = None) -> int:
        if not self._connected:
            raise RuntimeError("Producer not connected")
        message = dict(value)
        if key is not None:
            message.setdefault("key", key)
        return await _BROKER.publish(topic, message)

    async def close(self) -> None:
        self._connected = False


class KafkaConsumerStub:
    """Async consumer that forwards every message of its topics to ``handler``."""

    def __init__(
        self,
        topics: Sequence[str],
        handler: Callable[[str, dict[str, Any]], Awaitable[None]],
    ) -> None:
        self._topics = list(topics)
        self._handler = handler
        self._registrations: list[tuple[str, Handler]] = []
        self._started = False

    async def start(self) -> None:
        if self._started:
            return
        for topic in self._topics:
            async def _callback(message: dict[str, Any], current_topic: str = topic) -> None:
                await self._handler(current_topic, message)

            _BROKER.subscribe(topic, _callback)
            self._registrations.append((topic, _callback))
        self._started = True

    async def stop(self) -> None:
        if not self._started:
            return
        for topic, callback in self._registrations:
            _BROKER.unsubscribe(topic, callback)
        self._registrations.clear()
        self._started = False
