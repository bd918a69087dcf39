"""In-process publish/subscribe bus used for cross-component signaling."""
from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable

logger = logging.getLogger(__name__)

Subscriber = Callable[[Any], None]

AUTH_STATE = "auth.state"
ENTITY_SAVED = "entity.saved"
ENTITY_DELETED = "entity.deleted"
STORE_ERROR = "store.error"


class EventBus:
    """Deliver published payloads synchronously to every subscriber of a topic.

    Subscribers run in subscription order. A failing subscriber is logged and
    does not prevent delivery to the remaining ones.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Subscriber]] = defaultdict(list)

    def subscribe(self, topic: str, callback: Subscriber) -> Callable[[], None]:
        self._subscribers[topic].append(callback)

        def unsubscribe() -> None:
            try:
                self._subscribers[topic].remove(callback)
            except ValueError:
                pass

        return unsubscribe

    def publish(self, topic: str, payload: Any = None) -> int:
        delivered = 0
        for callback in list(self._subscribers.get(topic, ())):
            try:
                callback(payload)
            except Exception:
                logger.exception("Subscriber %r failed for topic %s", callback, topic)
                continue
            delivered += 1
        return delivered

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, ()))
