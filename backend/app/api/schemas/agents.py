"""Request/response payloads for the agent endpoints."""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

WEBHOOK_INSERT = "INSERT"
WEBHOOK_TABLE = "calendar_events"


class WebhookRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[UUID] = None
    user_id: Optional[UUID] = None


class GuardianCheckRequest(BaseModel):
    """Direct call ``{event_id, user_id}`` or a database INSERT webhook."""

    model_config = ConfigDict(extra="ignore")

    event_id: Optional[UUID] = None
    user_id: Optional[UUID] = None
    type: Optional[str] = None
    table: Optional[str] = None
    record: Optional[WebhookRecord] = None

    @property
    def is_webhook(self) -> bool:
        return self.type == WEBHOOK_INSERT and self.table == WEBHOOK_TABLE and self.record is not None

    def target(self) -> Tuple[Optional[UUID], Optional[UUID]]:
        if self.is_webhook:
            return self.record.id, self.record.user_id
        return self.event_id, self.user_id


class NegotiateRequest(BaseModel):
    alert_id: Optional[UUID] = None
    user_id: Optional[UUID] = None
    timezone: Optional[str] = None


class OrchestratorRequest(BaseModel):
    trigger: Optional[str] = None
    context: Optional[Dict[str, Any]] = None


class UndoRequest(BaseModel):
    alert_id: UUID
    user_id: UUID


class UndoResponse(BaseModel):
    success: bool = True
    alert_id: UUID
    restored: int
    block_ids: List[str] = Field(default_factory=list)
