"""Event-bus publish/sweep endpoints and agent decision recording."""
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_bus
from app.api.schemas.events import (
    PublishEventRequest,
    PublishEventResponse,
    RecordDecisionRequest,
    RecordDecisionResponse,
    SweepResponse,
)
from app.core.auth import require_bearer
from app.core.errors import InputValidationError, SchedulingError, require_fields
from app.db.deps import get_db
from app.services.decisions import record_decision
from app.services.event_bus import EventBus, EventType
from app.services.user_service import ensure_user

router = APIRouter(dependencies=[Depends(require_bearer)])


@router.post("/agent-events", response_model=PublishEventResponse, tags=["events"])
def publish_event(
    payload: PublishEventRequest,
    db: Session = Depends(get_db),
    bus: EventBus = Depends(get_bus),
) -> PublishEventResponse:
    if EventType.parse(payload.event_type) is None:
        raise InputValidationError(
            f"Unknown event type: {payload.event_type}",
            code="UNKNOWN_EVENT_TYPE",
            details={"event_type": payload.event_type},
        )
    ensure_user(db, payload.user_id)
    event_id = bus.publish(
        db,
        user_id=payload.user_id,
        event_type=payload.event_type,
        source=payload.source,
        payload=payload.payload,
    )
    if event_id is None:
        raise SchedulingError("Failed to publish event", code="PUBLISH_FAILED")
    return PublishEventResponse(event_id=event_id)


@router.post("/agent-event-processor", response_model=SweepResponse, tags=["events"])
def process_events(
    db: Session = Depends(get_db),
    bus: EventBus = Depends(get_bus),
) -> SweepResponse:
    return SweepResponse(processed=bus.process_events(db))


@router.post("/record-agent-decision", response_model=RecordDecisionResponse, tags=["events"])
def record_agent_decision(
    payload: RecordDecisionRequest,
    db: Session = Depends(get_db),
    bus: EventBus = Depends(get_bus),
) -> RecordDecisionResponse:
    require_fields(payload.model_dump(), ["user_id", "agent_name", "decision_type"])
    ensure_user(db, payload.user_id)
    decision = record_decision(
        db,
        user_id=payload.user_id,
        agent_name=payload.agent_name,
        decision_type=payload.decision_type,
        context=payload.context,
        options_presented=payload.options_presented,
        option_chosen=payload.option_chosen,
    )
    bus.publish(
        db,
        user_id=payload.user_id,
        event_type=EventType.DECISION_RECORDED,
        source="record-agent-decision",
        payload={
            "agent_name": payload.agent_name,
            "decision_type": payload.decision_type,
            "option_chosen": payload.option_chosen,
        },
    )
    return RecordDecisionResponse(decision_id=decision.id)
