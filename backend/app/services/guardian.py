"""Guardian agent: spots calendar events that collide with planned blocks.

The overlap itself is decided deterministically; the reasoning service only
scores how bad the collision is and phrases the alert, and even that score is
clamped by ``bound_analysis`` before anything is written.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import GuardrailViolationError
from app.core.logging import log_validation
from app.db.models.calendar_event import CalendarEvent
from app.db.models.schedule_alert import ALERT_TYPES, ScheduleAlert
from app.db.models.schedule_block import ScheduleBlock
from app.observability.metrics import log_metric, perf_timer
from app.observability.tracing import record_output, trace
from app.services.day_context import DayContext, build_day_context, format_local_time, load_preferences
from app.services.event_bus import EventBus, EventType
from app.services.interval_algebra import has_overlap
from app.services.reasoning import GenerationConfig, ReasoningService, call_reasoning, parse_model_json
from app.services.reasoning.factory import select_model

logger = logging.getLogger(__name__)

AGENT_NAME = "guardian"
RECOMMENDED_ACTIONS = ("reject", "reschedule_event", "reschedule_block")
LOW_STAKES_BLOCK_TYPES = frozenset({"buffer", "micro_break"})
DEEP_WORK_SEVERITY_FLOOR = 8
LOW_STAKES_SEVERITY_CAP = 3
ALL_DAY_SEVERITY_CAP = 4
DEFAULT_SEVERITY = 5
REDELIVERY_STATUSES = ("pending", "resolved")
_ALL_DAY_EXEMPT = re.compile(r"\bOOO\b|out of office|travel", re.IGNORECASE)


@dataclass
class GuardianAnalysis:
    type: str
    severity: int
    message: str
    recommended_action: Optional[str] = None
    model_used: Optional[str] = None
    adjustments: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["recommendedAction"] = data.pop("recommended_action")
        return data


@dataclass
class GuardianResult:
    status: str
    conflicts: int = 0
    alert_id: Optional[UUID] = None
    analysis: Optional[GuardianAnalysis] = None
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"status": self.status, "conflicts": self.conflicts}
        if self.alert_id:
            data["alert_id"] = str(self.alert_id)
        if self.analysis:
            data["alert"] = self.analysis.to_dict()
        if self.message:
            data["message"] = self.message
        return data


def find_conflicting_blocks(event: CalendarEvent, blocks: Sequence[ScheduleBlock]) -> List[ScheduleBlock]:
    return [
        block
        for block in blocks
        if has_overlap(event.start_at, event.end_at, block.start_time, block.end_time)
    ]


def run_guardian_check(
    db: Session,
    *,
    event_id: UUID,
    user_id: UUID,
    reasoning: ReasoningService,
    bus: EventBus,
) -> GuardianResult:
    event = db.get(CalendarEvent, event_id)
    if event is None or event.user_id != user_id or not event.start_at or not event.end_at:
        logger.warning(
            "Malformed or missing event",
            extra={
                "event_id": str(event_id),
                "has_event": event is not None,
                "has_start_at": bool(event and event.start_at),
                "has_end_at": bool(event and event.end_at),
            },
        )
        return GuardianResult(status="skipped", message="Event missing required fields")

    with perf_timer("guardian.check", {"user_id": str(user_id)}) as timing:
        context = build_day_context(db, user_id, event.start_at, event.source_timezone or _preferred_zone(db, user_id))
        conflicting = find_conflicting_blocks(event, context.blocks)
        timing["conflicts"] = len(conflicting)

        if not conflicting:
            logger.info("No conflicts detected for event %s (%s)", event.id, event.title)
            return GuardianResult(status="ok", conflicts=0)

        existing = find_existing_alert(db, event, conflicting)
        if existing is not None:
            logger.info("Alert %s already covers event %s; skipping redelivery", existing.id, event.id)
            return GuardianResult(status="duplicate", conflicts=len(conflicting), alert_id=existing.id)

        logger.info(
            "Conflicts detected for event %s",
            event.id,
            extra={"conflict_count": len(conflicting), "block_ids": [str(block.id) for block in conflicting]},
        )

        with trace(
            "guardian.analyze",
            metadata={"event_id": str(event.id), "conflicts": len(conflicting)},
            user_id=str(user_id),
        ) as guardian_trace:
            raw = _score_conflict(event, conflicting, context, reasoning)
            analysis = bound_analysis(raw, event, conflicting)
            record_output(guardian_trace, **analysis.to_dict())

        alert = _write_alert(db, event, conflicting, analysis, bus)

    log_metric("guardian.severity", analysis.severity, metadata={"type": analysis.type})
    return GuardianResult(status="conflict", conflicts=len(conflicting), alert_id=alert.id, analysis=analysis)


def find_existing_alert(
    db: Session,
    event: CalendarEvent,
    conflicting: Sequence[ScheduleBlock],
) -> Optional[ScheduleAlert]:
    """Return a pending or resolved alert for ``event`` over the same blocks, if any."""
    block_ids = {str(block.id) for block in conflicting}
    candidates = (
        db.query(ScheduleAlert)
        .filter(
            ScheduleAlert.user_id == event.user_id,
            ScheduleAlert.source_event_id == event.id,
            ScheduleAlert.status.in_(REDELIVERY_STATUSES),
        )
        .order_by(ScheduleAlert.created_at)
        .all()
    )
    for alert in candidates:
        if set(alert.related_block_ids or []) == block_ids:
            return alert
    return None


def bound_analysis(
    raw: Dict[str, Any],
    event: CalendarEvent,
    conflicting: Sequence[ScheduleBlock],
) -> GuardianAnalysis:
    """Clamp a model-proposed analysis to the deterministic severity rules."""
    adjustments: List[str] = []

    alert_type = raw.get("type")
    if alert_type not in ALERT_TYPES:
        log_validation(logger, "alert_type_defaulted", "type outside allowed set", received=alert_type)
        adjustments.append("type_defaulted")
        alert_type = "warning"

    try:
        severity = int(round(float(raw.get("severity"))))
    except (TypeError, ValueError, OverflowError):
        adjustments.append("severity_defaulted")
        severity = DEFAULT_SEVERITY
    clamped = max(0, min(10, severity))
    if clamped != severity:
        adjustments.append("severity_clamped")
    severity = clamped

    block_types = {block.block_type for block in conflicting}
    if "deep_work" in block_types and severity < DEEP_WORK_SEVERITY_FLOOR:
        adjustments.append("deep_work_floor")
        severity = DEEP_WORK_SEVERITY_FLOOR
    if block_types and block_types <= LOW_STAKES_BLOCK_TYPES and severity > LOW_STAKES_SEVERITY_CAP:
        adjustments.append("low_stakes_cap")
        severity = LOW_STAKES_SEVERITY_CAP
    if event.all_day and not _ALL_DAY_EXEMPT.search(event.title or "") and severity > ALL_DAY_SEVERITY_CAP:
        adjustments.append("all_day_cap")
        severity = ALL_DAY_SEVERITY_CAP

    message = str(raw.get("message") or "").strip()
    if not message:
        adjustments.append("message_defaulted")
        message = _fallback_message(event, conflicting)

    recommended = raw.get("recommendedAction") or raw.get("recommended_action")
    if recommended not in RECOMMENDED_ACTIONS:
        recommended = None

    if adjustments:
        log_validation(logger, "analysis_bounded", "model analysis adjusted", adjustments=adjustments)
    return GuardianAnalysis(
        type=alert_type,
        severity=severity,
        message=message,
        recommended_action=recommended,
        model_used=raw.get("model_used"),
        adjustments=adjustments,
    )


def build_guardian_prompt(event: CalendarEvent, conflicting: Sequence[ScheduleBlock], context: DayContext) -> str:
    zone = context.timezone
    prefs = context.user_prefs
    victims = [
        {
            "title": block.title,
            "type": block.block_type,
            "start": format_local_time(block.start_time, zone),
            "end": format_local_time(block.end_time, zone),
        }
        for block in conflicting
    ]
    return f"""You are the Guardian Agent for a high-performance daily planner.
A new calendar event conflicts with existing planned blocks.

NEW EVENT:
Title: "{event.title}"
Time: {format_local_time(event.start_at, zone)} - {format_local_time(event.end_at, zone)}{" (all day)" if event.all_day else ""}

CONFLICTING BLOCKS:
{json.dumps(victims)}

USER PREFERENCES:
- Work hours: {prefs.working_hours_start} - {prefs.working_hours_end}
- Resolution style: {prefs.conflict_resolution_style}

Rate the severity from 0 to 10:
- 9-10: immutable external conflicts or critical focus blocks.
- 7-8: significant interruption to focus, double booking of standard work.
- 4-6: flexible tasks, partial overlaps, all-day placeholders.
- 1-3: breaks, buffers, commute, informational blocks.
Deep work impacted means at least 8. Breaks and buffers alone mean at most 3.
All-day events are at most 4 unless they are OOO or travel.

Keep the message to at most two sentences with a clear call to action.

Return JSON only:
{{"type": "conflict" | "warning" | "critical", "severity": <0-10>, "message": "...", "recommendedAction": "reject" | "reschedule_event" | "reschedule_block"}}
"""


def _score_conflict(
    event: CalendarEvent,
    conflicting: Sequence[ScheduleBlock],
    context: DayContext,
    reasoning: ReasoningService,
) -> Dict[str, Any]:
    model = select_model(context.user_prefs.wants_pro_model)
    logger.info("Using model %s", model, extra={"pro": context.user_prefs.wants_pro_model})
    response = call_reasoning(
        reasoning,
        model=model,
        prompt=build_guardian_prompt(event, conflicting, context),
        generation_config=GenerationConfig(response_mime_type="application/json"),
        agent_name=AGENT_NAME,
    )
    try:
        raw = parse_model_json(response.text, agent_name=AGENT_NAME)
    except GuardrailViolationError as exc:
        # A conflict is never dropped because the model answered badly.
        logger.error("Failed to parse guardian analysis: %s", exc.message)
        raw = {"type": "conflict", "severity": DEFAULT_SEVERITY, "message": _fallback_message(event, conflicting)}
    raw["model_used"] = response.model
    return raw


def _write_alert(
    db: Session,
    event: CalendarEvent,
    conflicting: Sequence[ScheduleBlock],
    analysis: GuardianAnalysis,
    bus: EventBus,
) -> ScheduleAlert:
    alert = ScheduleAlert(
        id=uuid4(),
        user_id=event.user_id,
        type=analysis.type,
        severity=analysis.severity,
        message=analysis.message,
        recommended_action=analysis.recommended_action,
        related_block_ids=[str(block.id) for block in conflicting],
        source_event_id=event.id,
        status="pending",
    )
    db.add(alert)
    bus.stage(
        db,
        user_id=event.user_id,
        event_type=EventType.SCHEDULE_CONFLICT_DETECTED,
        source=AGENT_NAME,
        payload={
            "alert_id": str(alert.id),
            "event_id": str(event.id),
            "severity": analysis.severity,
            "type": analysis.type,
            "conflict_count": len(conflicting),
        },
    )
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to persist alert for event %s", event.id)
        raise
    db.refresh(alert)
    logger.info(
        "Alert created",
        extra={"alert_id": str(alert.id), "alert_type": analysis.type, "severity": analysis.severity},
    )
    return alert


def _preferred_zone(db: Session, user_id: UUID) -> Optional[str]:
    return load_preferences(db, user_id).timezone


def _fallback_message(event: CalendarEvent, conflicting: Sequence[ScheduleBlock]) -> str:
    count = len(conflicting)
    noun = "block" if count == 1 else "blocks"
    return f'"{event.title or "New event"}" conflicts with {count} planned {noun}.'
