"""
Fan-out of veto session change notifications.

Writers publish after commit; subscribers (WebSocket connections) react by
recomputing the full state from the database. The hub carries no veto state
of its own.
"""
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Subscription:
    session_id: int
    callback: Callable[[Dict[str, Any]], None]


class VetoStateHub:
    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: Dict[int, List[Subscription]] = {}

    def subscribe(self, session_id: int, callback: Callable[[Dict[str, Any]], None]) -> Subscription:
        subscription = Subscription(session_id=session_id, callback=callback)
        with self._lock:
            self._subscribers.setdefault(session_id, []).append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            subs = self._subscribers.get(subscription.session_id, [])
            if subscription in subs:
                subs.remove(subscription)
            if not subs:
                self._subscribers.pop(subscription.session_id, None)

    def subscriber_count(self, session_id: int) -> int:
        with self._lock:
            return len(self._subscribers.get(session_id, []))

    def publish(self, session_id: int, event: str, **details: Any) -> int:
        """Notify subscribers of *session_id*; returns how many were notified.

        A failing subscriber (e.g. a WebSocket whose event loop already closed)
        is logged and skipped so the committed write still succeeds.
        """
        with self._lock:
            subs = list(self._subscribers.get(session_id, []))
        message = {"session_id": session_id, "event": event, **details}
        delivered = 0
        for sub in subs:
            try:
                sub.callback(message)
            except Exception:
                logger.exception("Subscriber of veto session %d failed on %s", session_id, event)
                continue
            delivered += 1
        logger.debug("Published %s for veto session %d to %d subscribers", event, session_id, delivered)
        return delivered


hub = VetoStateHub()
