"""
Event bus for lifecycle notifications.

Subscribers register for a named event (or "*" for all events) and are
called in registration order. Async handlers are scheduled on the running
loop, so publishing never blocks the scheduler. Handler failures are logged
and never propagate back to the publisher.
"""

import asyncio
import inspect
import logging
import uuid
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Optional, Set, Union

from .models.event_models import EventType, LifecycleEvent


logger = logging.getLogger(__name__)

EventHandler = Callable[[LifecycleEvent], Any]

WILDCARD = "*"


@dataclass
class EventSubscription:
    """Represents a subscription to an event type."""

    subscription_id: str
    event_type: str
    handler: EventHandler
    subscriber_name: str = "unknown"


class EventBus:
    """
    In-process observer for lifecycle events.

    Delivery is at-least-once per process lifetime; no ordering is
    guaranteed between async handlers of unrelated events.
    """

    def __init__(self, history_max_size: int = 1000):
        """
        Initialize the event bus.

        Args:
            history_max_size: Number of published events kept for inspection
        """
        self._subscriptions: Dict[str, List[EventSubscription]] = defaultdict(list)
        self._pending: Set[asyncio.Task] = set()
        self.history: Deque[LifecycleEvent] = deque(maxlen=history_max_size)

    def subscribe(
        self,
        event_type: Union[EventType, str],
        handler: EventHandler,
        subscriber_name: str = "unknown",
    ) -> str:
        """
        Subscribe to an event type.

        Returns:
            Subscription ID usable with unsubscribe()
        """
        key = _event_key(event_type)
        subscription = EventSubscription(
            subscription_id=str(uuid.uuid4()),
            event_type=key,
            handler=handler,
            subscriber_name=subscriber_name,
        )
        self._subscriptions[key].append(subscription)
        logger.debug(f"Subscription added: {subscriber_name} -> {key}")
        return subscription.subscription_id

    def unsubscribe(self, subscription_id: str) -> bool:
        for key, subs in self._subscriptions.items():
            for i, sub in enumerate(subs):
                if sub.subscription_id == subscription_id:
                    subs.pop(i)
                    logger.debug(f"Subscription removed: {sub.subscriber_name} -> {key}")
                    return True
        return False

    def emit(self, event_type: EventType, **payload: Any) -> LifecycleEvent:
        """Build and publish a LifecycleEvent."""
        event = LifecycleEvent(event_type=event_type, **payload)
        self.publish(event)
        return event

    def publish(self, event: LifecycleEvent) -> None:
        self.history.append(event)
        key = _event_key(event.event_type)
        subscribers = self._subscriptions.get(key, []) + self._subscriptions.get(WILDCARD, [])

        for subscription in list(subscribers):
            try:
                result = subscription.handler(event)
                if inspect.isawaitable(result):
                    self._schedule(result, subscription, event)
            except Exception as e:
                logger.error(
                    f"Handler {subscription.subscriber_name} failed for event {key}: {e}"
                )

    def recent(self, event_type: Optional[Union[EventType, str]] = None) -> List[LifecycleEvent]:
        if event_type is None:
            return list(self.history)
        key = _event_key(event_type)
        return [e for e in self.history if _event_key(e.event_type) == key]

    async def drain(self) -> None:
        """Wait for scheduled async handlers to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _schedule(self, awaitable: Any, subscription: EventSubscription, event: LifecycleEvent) -> None:
        async def runner() -> None:
            try:
                await awaitable
            except Exception as e:
                logger.error(
                    f"Async handler {subscription.subscriber_name} failed for event "
                    f"{_event_key(event.event_type)}: {e}"
                )

        task = asyncio.ensure_future(runner())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)


def _event_key(event_type: Union[EventType, str]) -> str:
    return event_type.value if isinstance(event_type, EventType) else str(event_type)
