"""Batch jobs run by the scheduler worker."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from app.core.context import correlation_scope
from app.services.event_bus import EventBus, get_event_bus

logger = logging.getLogger(__name__)


@dataclass
class SweepRunResult:
    correlation_id: str
    events_processed: int


def run_event_sweep(db: Session, *, bus: Optional[EventBus] = None) -> SweepRunResult:
    """Run one event-bus sweep under its own correlation id."""
    bus = bus or get_event_bus()
    with correlation_scope("sweep") as correlation_id:
        processed = bus.process_events(db)
        if processed:
            logger.info("Event sweep %s dispatched %s events", correlation_id, processed)
    return SweepRunResult(correlation_id=correlation_id, events_processed=processed)
