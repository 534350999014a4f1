"""Publishing and sweeping agent events.

Delivery is at-least-once: a subscriber that fails (or a sweep that dies
mid-dispatch) is retried on a later sweep. Each subscriber's acknowledgement is
recorded in ``processed_by`` with a compare-and-swap on ``version`` so two
overlapping sweeps never drop each other's entries, and a short per-event lease
keeps them from dispatching the same event concurrently.

An event whose subscribers keep failing is dead-lettered after
``max_delivery_attempts`` sweeps so it cannot hold the head of the queue, and
the sweep serves events with fewer failed attempts first.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.logging import log_validation
from app.db.models.agent_event import ALL_PROCESSED, AgentEvent
from app.observability.metrics import log_metric
from app.services.event_bus.dispatch import HttpSubscriberDispatcher, SubscriberDispatcher
from app.services.event_bus.subscriptions import EventType, SubscriptionTable, default_subscriptions

logger = logging.getLogger(__name__)

MAX_CAS_ATTEMPTS = 5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EventBus:
    def __init__(
        self,
        subscriptions: SubscriptionTable,
        dispatcher: SubscriberDispatcher,
        *,
        batch_size: int = 20,
        lease_seconds: int = 180,
        max_delivery_attempts: int = 5,
    ):
        self.subscriptions = subscriptions
        self.dispatcher = dispatcher
        self.batch_size = batch_size
        self.lease = timedelta(seconds=lease_seconds)
        self.max_delivery_attempts = max_delivery_attempts

    # -- publishing -------------------------------------------------------

    def stage(
        self,
        db: Session,
        *,
        user_id: UUID,
        event_type: EventType | str,
        source: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Optional[AgentEvent]:
        """Add an event to the caller's transaction without committing it."""
        kind = EventType.parse(event_type)
        if kind is None:
            log_validation(logger, "event_rejected", "unknown event type", event_type=str(event_type), source=source)
            return None
        event = AgentEvent(
            user_id=user_id,
            event_type=kind.value,
            event_source=source,
            payload=dict(payload or {}),
            processed_by=[],
            fully_processed=False,
            version=0,
        )
        db.add(event)
        return event

    def publish(
        self,
        db: Session,
        *,
        user_id: UUID,
        event_type: EventType | str,
        source: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Optional[UUID]:
        """Persist an event in its own commit. Never raises."""
        try:
            event = self.stage(db, user_id=user_id, event_type=event_type, source=source, payload=payload)
            if event is None:
                return None
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Failed to publish %s from %s", event_type, source)
            return None

        logger.info("Published %s from %s (event_id=%s)", event.event_type, source, event.id)
        return event.id

    # -- sweeping ---------------------------------------------------------

    def process_events(self, db: Session) -> int:
        """Run one sweep and return how many events had subscribers."""
        now = _utcnow()
        candidates: List[AgentEvent] = (
            db.query(AgentEvent)
            .filter(
                AgentEvent.fully_processed.is_(False),
                AgentEvent.dead_lettered_at.is_(None),
                or_(AgentEvent.lease_expires_at.is_(None), AgentEvent.lease_expires_at < now),
            )
            .order_by(AgentEvent.delivery_attempts, AgentEvent.created_at)
            .limit(self.batch_size)
            .all()
        )
        if not candidates:
            return 0

        processed = 0
        for event in candidates:
            event_id = event.id
            if not self._claim(db, event):
                logger.debug("Event %s claimed by another sweep", event_id)
                continue
            try:
                if self._process_one(db, event):
                    processed += 1
            finally:
                self._release(db, event_id)

        log_metric("event_bus.sweep", processed, metadata={"candidates": len(candidates)})
        logger.info("Event sweep processed %s of %s candidate events", processed, len(candidates))
        return processed

    def _process_one(self, db: Session, event: AgentEvent) -> bool:
        subscribers = self.subscriptions.subscribers_for(event.event_type)
        if not subscribers:
            self.mark_processed(db, event.id, ALL_PROCESSED)
            return False

        failed = False
        for subscriber in subscribers:
            if subscriber in (event.processed_by or []):
                continue
            try:
                self.dispatcher.dispatch(db, subscriber, event)
            except Exception as exc:
                # Left unacknowledged; the next sweep retries this subscriber.
                db.rollback()
                logger.error(
                    "Subscriber %s failed for event %s (%s): %s",
                    subscriber,
                    event.id,
                    event.event_type,
                    exc,
                )
                log_metric("event_bus.dispatch_failure", 1, metadata={"subscriber": subscriber})
                failed = True
                continue
            self.mark_processed(db, event.id, subscriber)

        if failed:
            self._record_failed_attempt(db, event.id)

        db.refresh(event)
        if all(subscriber in (event.processed_by or []) for subscriber in subscribers):
            self.mark_processed(db, event.id, ALL_PROCESSED)
        return True

    def mark_processed(self, db: Session, event_id: UUID, subscriber: str) -> bool:
        """Append ``subscriber`` to ``processed_by`` if absent.

        Returns False only when the event vanished or every compare-and-swap
        attempt lost to a concurrent writer.
        """
        for _ in range(MAX_CAS_ATTEMPTS):
            row = db.query(AgentEvent.processed_by, AgentEvent.version).filter(AgentEvent.id == event_id).one_or_none()
            if row is None:
                logger.warning("Event %s disappeared before %s could be recorded", event_id, subscriber)
                return False
            current = list(row.processed_by or [])
            if subscriber in current:
                return True

            values: Dict[str, Any] = {"processed_by": current + [subscriber], "version": row.version + 1}
            if subscriber == ALL_PROCESSED:
                values["fully_processed"] = True
            result = db.execute(
                update(AgentEvent)
                .where(AgentEvent.id == event_id, AgentEvent.version == row.version)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            db.commit()
            if result.rowcount == 1:
                return True
            logger.debug("Version conflict recording %s on event %s; retrying", subscriber, event_id)

        logger.error("Gave up recording %s on event %s after %s attempts", subscriber, event_id, MAX_CAS_ATTEMPTS)
        return False

    def _record_failed_attempt(self, db: Session, event_id: UUID) -> None:
        db.execute(
            update(AgentEvent)
            .where(AgentEvent.id == event_id)
            .values(delivery_attempts=AgentEvent.delivery_attempts + 1, version=AgentEvent.version + 1)
            .execution_options(synchronize_session=False)
        )
        attempts = db.query(AgentEvent.delivery_attempts).filter(AgentEvent.id == event_id).scalar() or 0
        if attempts >= self.max_delivery_attempts:
            db.execute(
                update(AgentEvent)
                .where(AgentEvent.id == event_id)
                .values(dead_lettered_at=_utcnow(), version=AgentEvent.version + 1)
                .execution_options(synchronize_session=False)
            )
            logger.error("Event %s dead-lettered after %s failed sweeps", event_id, attempts)
            log_metric("event_bus.dead_lettered", 1, metadata={"attempts": attempts})
        db.commit()

    def _claim(self, db: Session, event: AgentEvent) -> bool:
        now = _utcnow()
        result = db.execute(
            update(AgentEvent)
            .where(
                AgentEvent.id == event.id,
                AgentEvent.version == event.version,
                or_(AgentEvent.lease_expires_at.is_(None), AgentEvent.lease_expires_at < now),
            )
            .values(lease_expires_at=now + self.lease, version=AgentEvent.version + 1)
            .execution_options(synchronize_session=False)
        )
        db.commit()
        return result.rowcount == 1

    def _release(self, db: Session, event_id: UUID) -> None:
        try:
            db.execute(
                update(AgentEvent)
                .where(AgentEvent.id == event_id)
                .values(lease_expires_at=None, version=AgentEvent.version + 1)
                .execution_options(synchronize_session=False)
            )
            db.commit()
        except SQLAlchemyError:
            # An unreleased lease simply expires.
            db.rollback()
            logger.warning("Could not release lease on event %s", event_id, exc_info=True)


@lru_cache
def get_event_bus() -> EventBus:
    return EventBus(
        default_subscriptions(),
        HttpSubscriberDispatcher(),
        batch_size=settings.event_sweep_batch_size,
        lease_seconds=settings.event_lease_seconds,
        max_delivery_attempts=settings.event_max_delivery_attempts,
    )
