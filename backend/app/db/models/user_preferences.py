"""Per-user scheduling preferences."""
from __future__ import annotations

from sqlalchemy import Boolean, Column, ForeignKey, String, Text, func, text as sa_text
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base
from app.db.types import JSONBCompat, UTCDateTime


class UserPreferences(Base):
    __tablename__ = "user_preferences"

    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    timezone = Column(Text, nullable=True)
    working_hours_start = Column(String(length=8), nullable=False, server_default=sa_text("'09:00'"))
    working_hours_end = Column(String(length=8), nullable=False, server_default=sa_text("'17:00'"))
    # aggressive | balanced | conservative
    conflict_resolution_style = Column(String(length=20), nullable=False, server_default=sa_text("'balanced'"))
    auto_resolve_conflicts = Column(Boolean, nullable=False, server_default=sa_text("false"))
    # protect_focus | hit_deadlines | balanced
    preferred_resolution_strategy = Column(String(length=40), nullable=False, server_default=sa_text("'protect_focus'"))
    ai_preferences = Column(JSONBCompat, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, server_default=func.now())
    updated_at = Column(UTCDateTime, nullable=False, server_default=func.now(), onupdate=func.now())
