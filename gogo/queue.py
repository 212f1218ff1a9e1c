"""
Queue abstraction for domain events.

Services enqueue an event whenever a ride or order is created or changes
status; the worker consumes them to fan out notifications. Supports an
in-memory fallback for tests/local runs and a Redis-backed implementation
for production.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

import redis
from redis import exceptions as redis_exceptions

logger = logging.getLogger(__name__)

RIDE_CREATED = "ride.created"
RIDE_STATUS_CHANGED = "ride.status_changed"
ORDER_CREATED = "order.created"
ORDER_STATUS_CHANGED = "order.status_changed"


class EventQueue(Protocol):
    """Minimal queue interface for dispatching events to workers."""

    def enqueue(self, event: dict) -> None:
        ...

    def dequeue(self, *, block: bool = True, timeout: int | None = None) -> Optional[dict]:
        ...


def ride_event(event_type: str, ride_id: str, before: str | None = None, after: str | None = None) -> dict:
    return {"type": event_type, "ride_id": ride_id, "before": before, "after": after}


def order_event(event_type: str, order_id: str, before: str | None = None, after: str | None = None) -> dict:
    return {"type": event_type, "order_id": order_id, "before": before, "after": after}


@dataclass
class InMemoryEventQueue:
    """Simple FIFO queue for testing/dev."""

    items: list[dict] = field(default_factory=list)

    def enqueue(self, event: dict) -> None:
        self.items.append(event)

    def dequeue(self, *, block: bool = True, timeout: int | None = None) -> Optional[dict]:
        if not self.items:
            return None
        return self.items.pop(0)


@dataclass
class RedisEventQueue:
    """Redis-backed queue using list push/pop operations."""

    url: str
    queue_key: str = "gogo:events"

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url)

    def enqueue(self, event: dict) -> None:
        self.client.rpush(self.queue_key, json.dumps(event))

    def dequeue(self, *, block: bool = True, timeout: int | None = None) -> Optional[dict]:
        try:
            if block:
                result = self.client.blpop(self.queue_key, timeout=timeout or 0)
                if result is None:
                    return None
                _, payload = result
            else:
                payload = self.client.lpop(self.queue_key)
                if payload is None:
                    return None
        except redis_exceptions.ConnectionError:
            # Connection resets can happen on managed Redis. Treat as empty queue
            # and allow the worker loop to retry.
            self.client = redis.Redis.from_url(self.url)
            return None
        try:
            return json.loads(payload)
        except ValueError:
            logger.warning("Dropping malformed event payload: %r", payload[:200])
            return None
