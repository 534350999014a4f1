"""Manual-review suggestions surfaced when an agent will not act on its own."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.db.models.proactive_suggestion import ProactiveSuggestion

logger = logging.getLogger(__name__)

CONFLICT_RESOLUTION = "conflict_resolution"
REVIEW_CONFLICT = "review_conflict"


def suggest_conflict_review(
    db: Session,
    *,
    user_id: UUID,
    alert_id: UUID,
    message: str,
    reason: str,
    extra: Optional[Dict[str, Any]] = None,
) -> ProactiveSuggestion:
    payload: Dict[str, Any] = {"alert_id": str(alert_id), "reason": reason}
    if extra:
        payload.update(extra)
    suggestion = ProactiveSuggestion(
        user_id=user_id,
        type=CONFLICT_RESOLUTION,
        message=message,
        action_type=REVIEW_CONFLICT,
        action_payload=payload,
        status="pending",
    )
    db.add(suggestion)
    db.commit()
    db.refresh(suggestion)
    logger.info("Conflict review suggested for alert %s (%s)", alert_id, reason)
    return suggestion
