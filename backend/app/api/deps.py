"""Dependency providers for agent collaborators (overridden in tests)."""
from __future__ import annotations

from app.services.event_bus import EventBus, get_event_bus
from app.services.reasoning import ReasoningService, get_reasoning_service


def get_reasoning() -> ReasoningService:
    return get_reasoning_service()


def get_bus() -> EventBus:
    return get_event_bus()
