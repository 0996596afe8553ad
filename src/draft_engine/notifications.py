"""Change notifications keyed by draft id.

Payloads are hints only: subscribers are expected to re-fetch the draft
rather than trust them. Delivery is synchronous and in-process; the hosting
process owns subscription lifetimes through the returned handles.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from src.draft_engine.draft_state import utc_now

logger = logging.getLogger(__name__)


@dataclass
class DraftEvent:
    """A 'something changed' signal for one draft."""

    draft_id: str
    event_type: str
    payload: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None


Callback = Callable[[DraftEvent], None]


class Subscription:
    """Handle returned by ``ChangeNotifier.subscribe``."""

    def __init__(self, notifier: "ChangeNotifier", draft_id: str, callback: Callback):
        self.notifier = notifier
        self.draft_id = draft_id
        self.callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self.notifier._remove(self)
            self.active = False

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc) -> None:
        self.unsubscribe()


class ChangeNotifier:
    """Fan-out of draft change events to registered callbacks."""

    def __init__(self):
        self._lock = threading.Lock()
        self._subscriptions: Dict[str, List[Subscription]] = {}

    def subscribe(self, draft_id: str, callback: Callback) -> Subscription:
        subscription = Subscription(self, draft_id, callback)
        with self._lock:
            self._subscriptions.setdefault(draft_id, []).append(subscription)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            subs = self._subscriptions.get(subscription.draft_id, [])
            if subscription in subs:
                subs.remove(subscription)
            if not subs:
                self._subscriptions.pop(subscription.draft_id, None)

    def subscriber_count(self, draft_id: str) -> int:
        with self._lock:
            return len(self._subscriptions.get(draft_id, []))

    def publish(
        self, draft_id: str, event_type: str, payload: Optional[Dict[str, Any]] = None
    ) -> DraftEvent:
        """Deliver an event to every subscriber of the draft.

        A failing subscriber is logged and does not stop delivery to the rest.
        """
        event = DraftEvent(
            draft_id=draft_id,
            event_type=event_type,
            payload=payload or {},
            created_at=utc_now(),
        )
        with self._lock:
            subscribers = list(self._subscriptions.get(draft_id, []))

        logger.debug("Publishing %s for draft %s to %d subscribers",
                     event_type, draft_id, len(subscribers))
        for subscription in subscribers:
            try:
                subscription.callback(event)
            except Exception:
                logger.exception(
                    "Subscriber failed handling %s for draft %s", event_type, draft_id
                )
        return event

    def close(self) -> None:
        """Drop every subscription."""
        with self._lock:
            for subs in self._subscriptions.values():
                for subscription in subs:
                    subscription.active = False
            self._subscriptions.clear()
