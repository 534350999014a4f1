"""Payloads for event-bus and decision-recording endpoints."""
from __future__ import annotations

from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class PublishEventRequest(BaseModel):
    user_id: UUID
    event_type: str
    source: str = Field(..., min_length=1)
    payload: Dict[str, Any] = Field(default_factory=dict)


class PublishEventResponse(BaseModel):
    success: bool = True
    event_id: UUID


class SweepResponse(BaseModel):
    success: bool = True
    processed: int


class RecordDecisionRequest(BaseModel):
    user_id: Optional[UUID] = None
    agent_name: Optional[str] = None
    decision_type: Optional[str] = None
    context: Dict[str, Any] = Field(default_factory=dict)
    options_presented: Optional[List[Any]] = None
    option_chosen: Optional[str] = None


class RecordDecisionResponse(BaseModel):
    success: bool = True
    decision_id: UUID
