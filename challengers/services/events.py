"""
challengers.services.events — Store Change Notifications
========================================================

Services publish the name of every table they changed once their session
has committed; UI layers subscribe to refresh whatever view depends on it.
The protocol itself never listens.

Usage::

    events = StoreEvents()
    events.subscribe(TOPIC_LEADERBOARD, lambda topic: refresh_rankings())

    await run_db(verify_claim_code, engine, me, code, events=events)
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from collections.abc import Callable, Iterable

logger = logging.getLogger(__name__)

TOPIC_PLAYER = "player"
TOPIC_INVENTORY = "inventory"
TOPIC_SENT_CHALLENGE = "sent_challenge"
TOPIC_CHALLENGE = "challenge"
TOPIC_LEADERBOARD = "leaderboard"

ALL_TOPICS: frozenset[str] = frozenset({
    TOPIC_PLAYER,
    TOPIC_INVENTORY,
    TOPIC_SENT_CHALLENGE,
    TOPIC_CHALLENGE,
    TOPIC_LEADERBOARD,
})

Listener = Callable[[str], None]


class StoreEvents:
    """Thread-safe topic → listeners registry.

    Services run on worker threads (see :func:`~challengers.database.engine.run_db`),
    so listeners are called on whichever thread committed the change.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

    def subscribe(self, topic: str, listener: Listener) -> Callable[[], None]:
        """Register *listener* for *topic*; returns an unsubscribe callable."""
        if topic not in ALL_TOPICS:
            raise ValueError(f"Unknown topic: {topic!r}")
        with self._lock:
            self._listeners[topic].append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners[topic]:
                    self._listeners[topic].remove(listener)

        return _unsubscribe

    def emit(self, topics: Iterable[str]) -> None:
        """Notify listeners of each topic once."""
        for topic in sorted(set(topics)):
            with self._lock:
                listeners = list(self._listeners.get(topic, ()))
            for listener in listeners:
                try:
                    listener(topic)
                except Exception:
                    logger.exception("Store listener failed for topic '%s'", topic)


def notify(events: StoreEvents | None, topics: Iterable[str]) -> None:
    """Emit *topics* on *events* if an emitter was supplied."""
    if events is not None:
        events.emit(topics)
