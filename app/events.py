# Domain events emitted by workflows after their transaction commits.
# Subscribers (e.g., the Redis fan-out used by clients to refresh lists) stay outside the core workflows.
from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List

from redis.exceptions import RedisError

from .redis_client import get_redis

logger = logging.getLogger("vinhousing.events")

# Redis channel used for cross-process fan-out of domain events
EVENTS_CHANNEL = "vinhousing:events"


@dataclass(frozen=True)
class DomainEvent:
    """
    Something that happened in a workflow, e.g. "contract.signed".

    payload holds plain JSON-serializable values (ids, statuses).
    """
    name: str
    payload: Dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_json(self) -> str:
        return json.dumps(
            {"event": self.name, "payload": self.payload, "occurred_at": self.occurred_at.isoformat()},
            default=str,
        )


Handler = Callable[[DomainEvent], None]


class EventBus:
    """
    Synchronous in-process publish/subscribe.

    A failing subscriber is logged and skipped; publishing never raises into the workflow,
    because events are emitted after the state change has already been committed.
    """
    def __init__(self) -> None:
        self._handlers: List[Handler] = []
        self._lock = threading.Lock()

    def subscribe(self, handler: Handler) -> None:
        with self._lock:
            if handler not in self._handlers:
                self._handlers.append(handler)

    def unsubscribe(self, handler: Handler) -> None:
        with self._lock:
            if handler in self._handlers:
                self._handlers.remove(handler)

    def publish(self, event: DomainEvent) -> None:
        with self._lock:
            handlers = list(self._handlers)
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception("event.handler.failed", extra={"event_name": event.name})


bus = EventBus()


def get_event_bus() -> EventBus:
    """FastAPI dependency returning the process-wide bus (override in tests if needed)."""
    return bus


def publish_to_redis(event: DomainEvent) -> None:
    """Fan the event out to other processes over Redis Pub/Sub. Fail-open when Redis is absent."""
    r = get_redis()
    if r is None:
        return
    try:
        r.publish(EVENTS_CHANNEL, event.to_json())
    except RedisError as exc:
        logger.warning("redis.publish.failed (event=%s): %s", event.name, exc)
