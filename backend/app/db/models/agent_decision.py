"""Agent decisions kept for later preference learning."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Column, ForeignKey, Index, Text, func
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base
from app.db.types import JSONBCompat, UTCDateTime


class AgentDecision(Base):
    __tablename__ = "agent_decisions"
    __table_args__ = (Index("ix_agent_decisions_user_id", "user_id"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    agent_name = Column(Text, nullable=False)
    decision_type = Column(Text, nullable=False)
    context = Column(JSONBCompat, nullable=False, default=dict)
    options_presented = Column(JSONBCompat, nullable=True)
    option_chosen = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, server_default=func.now())
