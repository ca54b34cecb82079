from __future__ import annotations

import logging
import threading
from collections import defaultdict
from typing import Any, Callable

log = logging.getLogger(__name__)

SALE_SYNCED = "SALE_SYNCED"
SALE_SYNC_FAILED = "SALE_SYNC_FAILED"
SYNC_COMPLETED = "SYNC_COMPLETED"
CONNECTIVITY_CHANGED = "CONNECTIVITY_CHANGED"
PENDING_COUNT_CHANGED = "PENDING_COUNT_CHANGED"

ALL_TOPICS = "*"

Event = dict[str, Any]
Handler = Callable[[str, Event], None]


class EventBus:
    """In-process observer channel between the sync core and the UI layer.

    Delivery is fire-and-forget: a failing handler is logged and does not
    affect the publisher or the other handlers.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: dict[str, list[Handler]] = defaultdict(list)

    def subscribe(self, topic: str, handler: Handler) -> Callable[[], None]:
        """Subscribe ``handler(topic, payload)``; ``"*"`` receives every topic.

        Returns a callable that removes the subscription.
        """
        with self._lock:
            self._subscribers[topic].append(handler)
        return lambda: self.unsubscribe(topic, handler)

    def unsubscribe(self, topic: str, handler: Handler) -> None:
        with self._lock:
            handlers = self._subscribers.get(topic, [])
            if handler in handlers:
                handlers.remove(handler)

    def publish(self, topic: str, payload: Event | None = None) -> None:
        event = dict(payload or {})
        with self._lock:
            handlers = list(self._subscribers.get(topic, []))
            handlers.extend(self._subscribers.get(ALL_TOPICS, []))
        for handler in handlers:
            try:
                handler(topic, event)
            except Exception:
                log.exception("event_handler_failed topic=%s", topic)
