"""Planned intervals on a user's day."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    String,
    Text,
    func,
    text as sa_text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import validates

from app.db.base import Base
from app.db.types import JSONBCompat, UTCDateTime

BLOCK_TYPES = frozenset(
    {
        "deep_work",
        "meeting",
        "admin",
        "buffer",
        "micro_break",
        "errand",
        "travel",
        "prep",
        "debrief",
    }
)


def normalize_block_type(value: str | None) -> str:
    """Accept hyphenated or spaced spellings ("deep-work", "Deep Work")."""
    cleaned = (value or "").strip().lower().replace("-", "_").replace(" ", "_")
    if cleaned not in BLOCK_TYPES:
        raise ValueError(f"Unknown block type: {value!r}")
    return cleaned


class ScheduleBlock(Base):
    __tablename__ = "schedule_blocks"
    __table_args__ = (
        Index("ix_schedule_blocks_user_id_start_time", "user_id", "start_time"),
        CheckConstraint("start_time < end_time", name="ck_schedule_blocks_positive_duration"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title = Column(Text, nullable=False)
    block_type = Column(String(length=20), nullable=False)
    start_time = Column(UTCDateTime, nullable=False)
    end_time = Column(UTCDateTime, nullable=False)
    task_id = Column(UUID(as_uuid=True), nullable=True)
    event_id = Column(UUID(as_uuid=True), nullable=True)
    pinned = Column(Boolean, nullable=False, server_default=sa_text("false"), default=False)
    rationale = Column(Text, nullable=True)
    explain = Column(JSONBCompat, nullable=False, default=dict)
    created_at = Column(UTCDateTime, nullable=False, server_default=func.now())
    updated_at = Column(UTCDateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    @validates("block_type")
    def _validate_block_type(self, key, value):
        return normalize_block_type(value)

    @property
    def duration_minutes(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() // 60)

    def snapshot(self) -> dict:
        """Serializable copy used for action-log before/after records."""
        return {
            "id": str(self.id),
            "user_id": str(self.user_id),
            "title": self.title,
            "block_type": self.block_type,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "task_id": str(self.task_id) if self.task_id else None,
            "event_id": str(self.event_id) if self.event_id else None,
            "pinned": bool(self.pinned),
            "rationale": self.rationale,
            "explain": self.explain or {},
        }
