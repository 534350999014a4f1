"""Orchestrator trigger and undo endpoints."""
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_bus, get_reasoning
from app.api.schemas.agents import OrchestratorRequest, UndoRequest, UndoResponse
from app.core.auth import require_bearer
from app.db.deps import get_db
from app.services.event_bus import EventBus
from app.services.orchestrator import handle_trigger, undo_resolution
from app.services.reasoning import ReasoningService

router = APIRouter(dependencies=[Depends(require_bearer)])


@router.post("/agent-orchestrator", tags=["agents"])
def agent_orchestrator(
    payload: OrchestratorRequest,
    db: Session = Depends(get_db),
    reasoning: ReasoningService = Depends(get_reasoning),
    bus: EventBus = Depends(get_bus),
) -> Dict[str, Any]:
    result = handle_trigger(db, trigger=payload.trigger, context=payload.context, reasoning=reasoning, bus=bus)
    return {"success": True, **result.to_dict()}


@router.post("/agent-orchestrator/undo", response_model=UndoResponse, tags=["agents"])
def agent_orchestrator_undo(
    payload: UndoRequest,
    db: Session = Depends(get_db),
    bus: EventBus = Depends(get_bus),
) -> UndoResponse:
    outcome = undo_resolution(db, alert_id=payload.alert_id, user_id=payload.user_id, bus=bus)
    return UndoResponse(alert_id=payload.alert_id, restored=outcome["restored"], block_ids=outcome["block_ids"])
