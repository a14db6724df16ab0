"""
In-process change notifications for record store writes.

The feed holds subscriptions weakly: a subscription stays live while its
owner keeps the returned handle. A session that goes away without
unsubscribing drops out on its own once it is garbage collected.
"""

import logging
import threading
import weakref
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Union

log = logging.getLogger(__name__)

EVENT_TYPES = frozenset({"INSERT", "UPDATE", "DELETE"})


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    event_type: str
    record: Dict[str, Any] = field(default_factory=dict)
    old_record: Optional[Dict[str, Any]] = None


ChangeCallback = Callable[[ChangeEvent], None]


class Subscription:
    """
    Handle returned by ``subscribe``. Delivery lasts while the handle is
    referenced and not unsubscribed. Unsubscribing twice is harmless.
    """

    def __init__(self, feed: "ChangeFeed", table: str, events: FrozenSet[str], callback: ChangeCallback):
        self._feed = feed
        self.table = table
        self.events = events
        self.callback = callback
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if self._active:
            self._active = False
            self._feed._remove(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info) -> None:
        self.unsubscribe()


def _normalize_events(events: Union[str, Iterable[str]]) -> FrozenSet[str]:
    if isinstance(events, str):
        events = [events]
    wanted = {e.upper() for e in events}
    if "*" in wanted:
        return EVENT_TYPES
    unknown = wanted - EVENT_TYPES
    if unknown:
        raise ValueError(f"Unknown change event(s): {sorted(unknown)}")
    return frozenset(wanted)


class ChangeFeed:
    def __init__(self):
        self._lock = threading.Lock()
        self._subscriptions: List["weakref.ref[Subscription]"] = []

    def subscribe(self, table: str, events: Union[str, Iterable[str]], callback: ChangeCallback) -> Subscription:
        """Register ``callback``. The caller must keep the returned handle alive."""
        subscription = Subscription(self, table, _normalize_events(events), callback)
        with self._lock:
            self._subscriptions.append(weakref.ref(subscription))
        return subscription

    def _live(self) -> List[Subscription]:
        """Live subscriptions; dead references are pruned. Caller must hold the lock."""
        live = []
        kept = []
        for ref in self._subscriptions:
            subscription = ref()
            if subscription is not None and subscription.active:
                live.append(subscription)
                kept.append(ref)
        self._subscriptions = kept
        return live

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            self._subscriptions = [ref for ref in self._subscriptions if ref() not in (None, subscription)]

    def publish(self, event: ChangeEvent) -> None:
        with self._lock:
            targets = [
                s for s in self._live()
                if s.table == event.table and event.event_type in s.events
            ]
        for subscription in targets:
            if not subscription.active:
                continue
            try:
                subscription.callback(event)
            except Exception as e:
                # Subscriber failures must not break the writer
                log.error(f"Change callback failed for {event.table}/{event.event_type}: {e}", exc_info=True)

    def subscriber_count(self, table: Optional[str] = None) -> int:
        with self._lock:
            live = self._live()
        if table is None:
            return len(live)
        return sum(1 for s in live if s.table == table)
