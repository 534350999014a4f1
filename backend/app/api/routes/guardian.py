"""Guardian conflict-check endpoint."""
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_bus, get_reasoning
from app.api.schemas.agents import GuardianCheckRequest
from app.core.auth import require_bearer
from app.core.errors import require_fields
from app.db.deps import get_db
from app.observability.metrics import log_metric
from app.services.event_bus import EventBus
from app.services.guardian import run_guardian_check
from app.services.reasoning import ReasoningService

router = APIRouter(dependencies=[Depends(require_bearer)])


@router.post("/guardian-check", tags=["agents"])
def guardian_check(
    payload: GuardianCheckRequest,
    db: Session = Depends(get_db),
    reasoning: ReasoningService = Depends(get_reasoning),
    bus: EventBus = Depends(get_bus),
) -> Dict[str, Any]:
    event_id, user_id = payload.target()
    require_fields({"event_id": event_id, "user_id": user_id}, ["event_id", "user_id"])

    result = run_guardian_check(db, event_id=event_id, user_id=user_id, reasoning=reasoning, bus=bus)
    log_metric("guardian.check.success", 1, metadata={"status": result.status, "webhook": payload.is_webhook})
    return {"success": True, **result.to_dict()}
