"""Agent decision records (input for later preference learning)."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.db.models.agent_decision import AgentDecision

logger = logging.getLogger(__name__)


def record_decision(
    db: Session,
    *,
    user_id: UUID,
    agent_name: str,
    decision_type: str,
    context: Optional[Dict[str, Any]] = None,
    options_presented: Optional[List[Any]] = None,
    option_chosen: Optional[str] = None,
    commit: bool = True,
) -> AgentDecision:
    decision = AgentDecision(
        user_id=user_id,
        agent_name=agent_name,
        decision_type=decision_type,
        context=dict(context or {}),
        options_presented=options_presented,
        option_chosen=option_chosen,
    )
    db.add(decision)
    if commit:
        db.commit()
        db.refresh(decision)
    logger.info("Recorded %s decision for %s (chosen=%s)", decision_type, agent_name, option_chosen)
    return decision
