"""
Event Bus

Synchronous publish/subscribe between domain modules, the reports engine,
the health monitor and whatever UI sits on top.

DESIGN DECISION: Delivery is synchronous and in registration order.
When `emit` returns every subscriber has seen the event, so a handler that
reads the state hub always observes committed state.

A subscriber that raises is logged and skipped; the remaining subscribers
still receive the event.

Topics are `noun:verb` strings. A subscription pattern may use shell-style
wildcards: `order:*` matches every order event, `*` matches everything.
"""

from dataclasses import dataclass
from fnmatch import fnmatchcase
from typing import Any, Callable, Optional

import structlog

from ordersystem.models.events import Event

logger = structlog.get_logger(__name__)

Handler = Callable[[Event], Any]


@dataclass(eq=False)
class _Subscription:
    pattern: str
    handler: Handler
    once: bool = False

    def matches(self, topic: str) -> bool:
        if self.pattern == topic:
            return True
        return any(ch in self.pattern for ch in "*?[") and fnmatchcase(topic, self.pattern)


class EventBus:
    """In-process event bus."""

    def __init__(self):
        self._subscriptions: list[_Subscription] = []

    def on(self, pattern: str, handler: Handler) -> Callable[[], None]:
        """
        Subscribe to a topic or wildcard pattern.

        Returns a callable that removes the subscription.
        """
        subscription = _Subscription(pattern, handler)
        self._subscriptions.append(subscription)
        return lambda: self._remove(subscription)

    def once(self, pattern: str, handler: Handler) -> Callable[[], None]:
        """Subscribe for the next matching event only."""
        subscription = _Subscription(pattern, handler, once=True)
        self._subscriptions.append(subscription)
        return lambda: self._remove(subscription)

    def off(self, pattern: str, handler: Optional[Handler] = None) -> None:
        """Remove one handler, or every handler of the pattern."""
        self._subscriptions = [
            s for s in self._subscriptions
            if not (s.pattern == pattern and (handler is None or s.handler == handler))
        ]

    def emit(self, topic: str, payload: Optional[dict[str, Any]] = None) -> Event:
        """Deliver an event to every matching subscriber."""
        event = Event(topic=topic, payload=payload or {})

        # Snapshot so handlers may (un)subscribe while we iterate
        for subscription in list(self._subscriptions):
            if not subscription.matches(topic):
                continue
            if subscription.once:
                self._remove(subscription)
            try:
                subscription.handler(event)
            except Exception as e:
                logger.error(
                    "event_handler_failed",
                    topic=topic,
                    pattern=subscription.pattern,
                    error=str(e),
                    exc_info=True,
                )

        return event

    def listener_count(self, pattern: Optional[str] = None) -> int:
        if pattern is None:
            return len(self._subscriptions)
        return sum(1 for s in self._subscriptions if s.pattern == pattern)

    def clear(self) -> None:
        self._subscriptions.clear()

    def _remove(self, subscription: _Subscription) -> None:
        try:
            self._subscriptions.remove(subscription)
        except ValueError:
            pass
