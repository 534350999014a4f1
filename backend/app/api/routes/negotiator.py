"""Strategy negotiation endpoint."""
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_reasoning
from app.api.schemas.agents import NegotiateRequest
from app.core.auth import require_bearer
from app.core.errors import require_fields
from app.db.deps import get_db
from app.services.negotiator import negotiate_for_alert
from app.services.reasoning import ReasoningService

router = APIRouter(dependencies=[Depends(require_bearer)])


@router.post("/negotiate-schedule", tags=["agents"])
def negotiate_schedule(
    payload: NegotiateRequest,
    db: Session = Depends(get_db),
    reasoning: ReasoningService = Depends(get_reasoning),
) -> Dict[str, Any]:
    require_fields(payload.model_dump(), ["alert_id", "user_id"])
    result = negotiate_for_alert(
        db,
        alert_id=payload.alert_id,
        user_id=payload.user_id,
        reasoning=reasoning,
        timezone=payload.timezone,
    )
    return {"success": True, **result.to_dict()}
