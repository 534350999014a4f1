"""Append-only agent event log consumed by the event-bus sweep."""
from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Boolean, Column, ForeignKey, Index, Integer, Text, text as sa_text
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base
from app.db.types import JSONBCompat, UTCDateTime

ALL_PROCESSED = "all"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AgentEvent(Base):
    __tablename__ = "agent_events"
    __table_args__ = (
        Index("ix_agent_events_pending", "fully_processed", "created_at"),
        Index("ix_agent_events_user_id", "user_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    event_type = Column(Text, nullable=False)
    event_source = Column(Text, nullable=False)
    payload = Column(JSONBCompat, nullable=False, default=dict)
    processed_by = Column(JSONBCompat, nullable=False, default=list)
    # Mirrors ALL_PROCESSED in processed_by so the sweep filter stays indexable.
    fully_processed = Column(Boolean, nullable=False, server_default=sa_text("false"), default=False)
    version = Column(Integer, nullable=False, server_default=sa_text("0"), default=0)
    lease_expires_at = Column(UTCDateTime, nullable=True)
    # Sweeps in which at least one subscriber failed; at the limit the event is dead-lettered.
    delivery_attempts = Column(Integer, nullable=False, server_default=sa_text("0"), default=0)
    dead_lettered_at = Column(UTCDateTime, nullable=True)
    # Python-side default keeps sub-second ordering on SQLite.
    created_at = Column(UTCDateTime, nullable=False, default=_utcnow)
