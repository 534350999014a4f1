"""Event kinds and the subscriber routing table."""
from __future__ import annotations

from enum import Enum
from typing import Dict, Iterable, Mapping, Tuple


class EventType(str, Enum):
    CALENDAR_EVENT_SYNCED = "calendar.event.synced"
    CALENDAR_EVENT_DELETED = "calendar.event.deleted"
    SCHEDULE_CONFLICT_DETECTED = "schedule.conflict.detected"
    SCHEDULE_CONFLICT_RESOLVED = "schedule.conflict.resolved"
    SCHEDULE_BLOCK_CREATED = "schedule.block.created"
    SCHEDULE_BLOCK_MODIFIED = "schedule.block.modified"
    ERRAND_BUNDLE_SUGGESTED = "errand.bundle.suggested"
    ERRAND_BUNDLE_ACCEPTED = "errand.bundle.accepted"
    COMPOSE_DAY_COMPLETED = "compose.day.completed"
    USER_PATTERN_UPDATED = "user.pattern.updated"
    DECISION_RECORDED = "decision.recorded"

    @classmethod
    def parse(cls, value: "str | EventType") -> "EventType | None":
        try:
            return cls(value)
        except ValueError:
            return None


class SubscriptionTable:
    """Ordered subscriber names per event kind.

    Kinds absent from the table have no subscribers; dispatch order follows the
    order given at construction.
    """

    def __init__(self, routes: Mapping["EventType | str", Iterable[str]] | None = None):
        self._routes: Dict[EventType, Tuple[str, ...]] = {}
        for kind, subscribers in (routes or {}).items():
            parsed = EventType.parse(kind)
            if parsed is None:
                raise ValueError(f"Unknown event type in subscription table: {kind!r}")
            self._routes[parsed] = tuple(subscribers)

    def subscribers_for(self, event_type: "EventType | str") -> Tuple[str, ...]:
        parsed = EventType.parse(event_type)
        if parsed is None:
            return ()
        return self._routes.get(parsed, ())


def default_subscriptions() -> SubscriptionTable:
    return SubscriptionTable(
        {
            EventType.CALENDAR_EVENT_SYNCED: ["guardian"],
            EventType.SCHEDULE_CONFLICT_DETECTED: ["orchestrator"],
            EventType.SCHEDULE_CONFLICT_RESOLVED: ["compose"],
            EventType.ERRAND_BUNDLE_ACCEPTED: ["compose"],
        }
    )
