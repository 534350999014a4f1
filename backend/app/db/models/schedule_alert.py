"""Detected schedule conflicts."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Column, ForeignKey, Index, Integer, String, Text, func, text as sa_text
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base
from app.db.types import JSONBCompat, UTCDateTime

ALERT_TYPES = ("conflict", "warning", "critical")
ALERT_STATUSES = ("pending", "resolved", "dismissed", "accepted")


class ScheduleAlert(Base):
    __tablename__ = "schedule_alerts"
    __table_args__ = (Index("ix_schedule_alerts_user_id_status", "user_id", "status"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(length=20), nullable=False)
    severity = Column(Integer, nullable=True)
    message = Column(Text, nullable=False)
    recommended_action = Column(String(length=40), nullable=True)
    # Ordered; entries may point at blocks deleted since the alert was written.
    related_block_ids = Column(JSONBCompat, nullable=False, default=list)
    source_event_id = Column(UUID(as_uuid=True), nullable=True)
    status = Column(String(length=20), nullable=False, server_default=sa_text("'pending'"), default="pending")
    created_at = Column(UTCDateTime, nullable=False, server_default=func.now())
    updated_at = Column(UTCDateTime, nullable=False, server_default=func.now(), onupdate=func.now())
