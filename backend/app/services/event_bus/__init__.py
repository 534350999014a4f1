"""At-least-once agent event bus backed by the ``agent_events`` table."""
from app.services.event_bus.bus import EventBus, get_event_bus
from app.services.event_bus.dispatch import (
    HttpSubscriberDispatcher,
    SubscriberDispatcher,
    SubscriberDispatchError,
)
from app.services.event_bus.subscriptions import EventType, SubscriptionTable, default_subscriptions

__all__ = [
    "EventBus",
    "EventType",
    "HttpSubscriberDispatcher",
    "SubscriberDispatchError",
    "SubscriberDispatcher",
    "SubscriptionTable",
    "default_subscriptions",
    "get_event_bus",
]
