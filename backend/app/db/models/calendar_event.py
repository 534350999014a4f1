"""Externally-sourced calendar events."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Boolean, Column, ForeignKey, Index, Text, UniqueConstraint, func, text as sa_text
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base
from app.db.types import JSONBCompat, UTCDateTime


class CalendarEvent(Base):
    __tablename__ = "calendar_events"
    __table_args__ = (
        Index("ix_calendar_events_user_id_start_at", "user_id", "start_at"),
        UniqueConstraint("user_id", "external_id", name="uq_calendar_events_user_external"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title = Column(Text, nullable=False, server_default=sa_text("''"))
    # Nullable on purpose: upstream sync occasionally delivers rows without times.
    start_at = Column(UTCDateTime, nullable=True)
    end_at = Column(UTCDateTime, nullable=True)
    location = Column(Text, nullable=True)
    all_day = Column(Boolean, nullable=False, server_default=sa_text("false"))
    external_id = Column(Text, nullable=True)
    event_data = Column(JSONBCompat, nullable=True)
    deleted_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, server_default=func.now())

    @property
    def source_timezone(self) -> str | None:
        start = (self.event_data or {}).get("start") or {}
        return start.get("timeZone") if isinstance(start, dict) else None
