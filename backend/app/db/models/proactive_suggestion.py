"""Suggestions surfaced to the user for manual review."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Column, ForeignKey, Index, String, Text, func, text as sa_text
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base
from app.db.types import JSONBCompat, UTCDateTime


class ProactiveSuggestion(Base):
    __tablename__ = "proactive_suggestions"
    __table_args__ = (Index("ix_proactive_suggestions_user_id_status", "user_id", "status"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(length=40), nullable=False)
    message = Column(Text, nullable=False)
    action_type = Column(String(length=40), nullable=False)
    action_payload = Column(JSONBCompat, nullable=False, default=dict)
    status = Column(String(length=20), nullable=False, server_default=sa_text("'pending'"), default="pending")
    created_at = Column(UTCDateTime, nullable=False, server_default=func.now())
