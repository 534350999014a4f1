"""Orchestrator agent: routes triggers and applies a chosen strategy to the schedule.

Strategy application runs as a small saga inside one transaction: every
operation that touches a block writes an action-log row holding the block's
before/after snapshot, a storage failure rolls the whole strategy back, and
``undo_resolution`` replays the log in reverse.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import (
    ExternalServiceError,
    GuardrailViolationError,
    InputValidationError,
    NotFoundError,
    require_fields,
)
from app.db.models.agent_action_log import AgentActionLog
from app.db.models.calendar_event import CalendarEvent
from app.db.models.schedule_alert import ScheduleAlert
from app.db.models.schedule_block import ScheduleBlock
from app.db.models.user_preferences import UserPreferences
from app.observability.metrics import log_metric, perf_timer
from app.observability.tracing import trace
from app.services.decisions import record_decision
from app.services.event_bus import EventBus, EventType
from app.services.guardian import find_conflicting_blocks
from app.services.negotiator import load_related_blocks, negotiate_for_alert
from app.services.reasoning import ReasoningService, RetryPolicy
from app.services.strategies import DeleteOperation, MoveOperation, Operation, ResizeOperation, Strategy
from app.services.suggestions import suggest_conflict_review

logger = logging.getLogger(__name__)

AGENT_NAME = "orchestrator"
ACTION_TYPE = "schedule_operation_applied"
CONFLICT_DETECTED = "conflict_detected"
BUNDLE_ACCEPTED = "bundle_accepted"
DEFAULT_PREFERRED_STRATEGY = "protect_focus"
MANUAL_REVIEW_MESSAGE = "Scheduling conflict detected. Tap to resolve."


@dataclass
class OrchestrationResult:
    trigger: str
    actions_taken: List[str] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"trigger": self.trigger, "actions_taken": self.actions_taken, "details": self.details}


@dataclass
class ApplyOutcome:
    applied: int = 0
    skipped: int = 0


def handle_trigger(
    db: Session,
    *,
    trigger: Optional[str],
    context: Optional[Dict[str, Any]],
    reasoning: ReasoningService,
    bus: EventBus,
    retry_policy: Optional[RetryPolicy] = None,
) -> OrchestrationResult:
    require_fields({"trigger": trigger, "context": context}, ["trigger", "context"])
    if not isinstance(context, dict):
        raise InputValidationError("context must be an object", code="INVALID_INPUT")
    require_fields(context, ["user_id"])
    user_id = _as_uuid(context["user_id"], "user_id")

    logger.info("Received trigger: %s", trigger, extra={"user_id": str(user_id)})
    result = OrchestrationResult(trigger=trigger)

    if trigger == CONFLICT_DETECTED:
        alert_id = _optional_uuid(context.get("alert_id"))
        if alert_id is None:
            # Acknowledged so a bad event cannot stall the bus.
            logger.warning("conflict_detected without a usable alert_id (%r); skipping", context.get("alert_id"))
            result.actions_taken.append("skipped_missing_alert")
            return result
        with perf_timer("orchestrator.conflict_detected", {"alert_id": str(alert_id)}):
            handle_conflict_detected(
                db,
                user_id=user_id,
                alert_id=alert_id,
                reasoning=reasoning,
                bus=bus,
                result=result,
                retry_policy=retry_policy,
            )
    elif trigger == BUNDLE_ACCEPTED:
        logger.info("Bundle accepted trigger received; no handler registered")
        result.actions_taken.append("not_handled")
    else:
        logger.warning("Unknown trigger: %s", trigger)
        raise InputValidationError(f"Unknown trigger: {trigger}", code="UNKNOWN_TRIGGER", details={"trigger": trigger})
    return result


def handle_conflict_detected(
    db: Session,
    *,
    user_id: UUID,
    alert_id: UUID,
    reasoning: ReasoningService,
    bus: EventBus,
    result: OrchestrationResult,
    retry_policy: Optional[RetryPolicy] = None,
) -> None:
    alert = db.get(ScheduleAlert, alert_id)
    if alert is None or alert.user_id != user_id:
        logger.warning("Alert %s not found for user %s; skipping", alert_id, user_id)
        result.actions_taken.append("skipped_unknown_alert")
        return
    if alert.status != "pending":
        # Redelivered event for an alert that was already handled.
        logger.info("Alert %s is %s; nothing to do", alert_id, alert.status)
        result.actions_taken.append("skipped_alert_not_pending")
        return
    if not conflict_still_present(db, alert):
        logger.info("Alert %s no longer overlaps its blocks; resolving as stale", alert_id)
        alert.status = "resolved"
        db.commit()
        result.actions_taken.append("skipped_stale_alert")
        log_metric("orchestrator.stale_alert", 1)
        return

    prefs = db.get(UserPreferences, user_id)
    if prefs is None:
        logger.warning("No preferences stored for user %s; skipping auto-resolve", user_id)
        _suggest(db, user_id, alert_id, "no_preferences", result)
        return
    if not prefs.auto_resolve_conflicts:
        logger.info("Auto-resolve disabled by user")
        _suggest(db, user_id, alert_id, "auto_resolve_disabled", result)
        return

    try:
        negotiation = negotiate_for_alert(
            db,
            alert_id=alert_id,
            user_id=user_id,
            reasoning=reasoning,
            timezone=prefs.timezone,
            retry_policy=retry_policy,
        )
    except GuardrailViolationError as exc:
        logger.warning("Negotiation rejected (%s); falling back to manual review", exc.code)
        _suggest(db, user_id, alert_id, "negotiation_rejected", result, extra={"code": exc.code})
        return
    except ExternalServiceError as exc:
        if exc.retryable:
            raise
        logger.warning("Negotiation unavailable (status=%s); falling back to manual review", exc.status_code)
        _suggest(db, user_id, alert_id, "negotiation_unavailable", result)
        return
    result.actions_taken.append("strategies_generated")

    preferred = prefs.preferred_resolution_strategy or DEFAULT_PREFERRED_STRATEGY
    chosen, reason = _select(negotiation.strategies, preferred)
    if chosen is None:
        logger.warning("No feasible strategy for alert %s; falling back to manual review", alert_id)
        _suggest(db, user_id, alert_id, "no_feasible_strategy", result)
        return

    logger.info("Selected strategy %s (%s)", chosen.title, reason, extra={"strategy_id": chosen.id})
    result.details["chosen_strategy"] = chosen.id
    result.details["selection_reason"] = reason

    with trace(
        "orchestrator.apply",
        metadata={"alert_id": str(alert_id), "strategy_id": chosen.id, "operations": len(chosen.operations)},
        user_id=str(user_id),
    ):
        try:
            outcome = apply_strategy(db, alert=alert, strategy=chosen)
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Applying strategy %s failed; changes rolled back", chosen.id)
            _suggest(db, user_id, alert_id, "apply_failed", result, extra={"strategy_id": chosen.id})
            return

    result.actions_taken.append("operations_applied")
    result.details["applied_count"] = outcome.applied
    result.details["skipped_count"] = outcome.skipped
    log_metric("orchestrator.operations_applied", outcome.applied, metadata={"skipped": outcome.skipped})

    bus.publish(
        db,
        user_id=user_id,
        event_type=EventType.SCHEDULE_CONFLICT_RESOLVED,
        source=AGENT_NAME,
        payload={
            "original_alert_id": str(alert_id),
            "strategy_applied": chosen.id,
            "operations_count": len(chosen.operations),
            "applied_count": outcome.applied,
            "skipped_count": outcome.skipped,
        },
    )
    result.actions_taken.append("published_resolution")

    try:
        record_decision(
            db,
            user_id=user_id,
            agent_name=AGENT_NAME,
            decision_type="conflict_resolution_applied",
            context={"alert_id": str(alert_id), "selection_reason": reason},
            options_presented=[strategy.to_payload() for strategy in negotiation.strategies],
            option_chosen=chosen.id,
        )
    except SQLAlchemyError:
        db.rollback()
        logger.warning("Failed to record orchestration decision for alert %s", alert_id, exc_info=True)


def conflict_still_present(db: Session, alert: ScheduleAlert) -> bool:
    """Recompute the overlap behind ``alert``.

    Alerts that do not name a source event cannot be re-checked and count as
    live. A source event that was deleted or lost its times no longer conflicts.
    """
    if alert.source_event_id is None:
        return True
    event = db.get(CalendarEvent, alert.source_event_id)
    if event is None or event.deleted_at is not None or not event.start_at or not event.end_at:
        return False
    return bool(find_conflicting_blocks(event, load_related_blocks(db, alert)))


def select_strategy(strategies: Sequence[Strategy], preferred_key: Optional[str]) -> Optional[Strategy]:
    """Pick a strategy: preference keyword, then lowest impact, never random."""
    return _select(strategies, preferred_key)[0]


def _select(strategies: Sequence[Strategy], preferred_key: Optional[str]) -> Tuple[Optional[Strategy], str]:
    eligible = [strategy for strategy in strategies if strategy.feasible]
    if not eligible:
        return None, "none_feasible"

    key = (preferred_key or "").strip().lower()
    if key:
        phrase = key.replace("_", " ")
        for strategy in eligible:
            if phrase in strategy.id.lower().replace("_", " ") or phrase in strategy.title.lower():
                return strategy, "preference_match"

    # min() keeps the first of equally ranked strategies.
    return min(eligible, key=lambda strategy: strategy.impact_rank), "lowest_impact"


def apply_strategy(db: Session, *, alert: ScheduleAlert, strategy: Strategy) -> ApplyOutcome:
    """Apply every operation and resolve the alert in a single commit."""
    outcome = ApplyOutcome()
    for sequence, operation in enumerate(strategy.operations):
        if apply_operation(db, operation, alert=alert, strategy_id=strategy.id, sequence=sequence):
            outcome.applied += 1
        else:
            outcome.skipped += 1

    alert.status = "resolved"
    db.commit()
    logger.info(
        "Strategy %s applied (applied=%s skipped=%s)",
        strategy.id,
        outcome.applied,
        outcome.skipped,
    )
    return outcome


def apply_operation(
    db: Session,
    operation: Operation,
    *,
    alert: ScheduleAlert,
    strategy_id: str,
    sequence: int = 0,
) -> bool:
    target = operation.target_block_id
    if not target:
        logger.warning("Skipping %s operation without targetBlockId", operation.type)
        return False
    try:
        block_id = UUID(str(target))
    except ValueError:
        logger.warning("Skipping %s operation with malformed target %s", operation.type, target)
        return False

    block = db.get(ScheduleBlock, block_id)
    if block is None or block.user_id != alert.user_id:
        logger.warning("Block not found for %s operation", operation.type, extra={"target_block_id": target})
        return False
    if block.pinned:
        logger.warning("Skipping %s operation on pinned block %s", operation.type, target)
        return False

    before = block.snapshot()
    after: Optional[Dict[str, Any]]
    if isinstance(operation, DeleteOperation):
        db.delete(block)
        after = None
    elif isinstance(operation, MoveOperation):
        shift = timedelta(minutes=operation.params.shift_minutes)
        block.start_time = block.start_time + shift
        block.end_time = block.end_time + shift
        after = block.snapshot()
    elif isinstance(operation, ResizeOperation):
        duration = operation.params.duration_minutes
        if duration <= 0:
            logger.warning("Skipping resize of %s to non-positive duration %s", target, duration)
            return False
        block.end_time = block.start_time + timedelta(minutes=duration)
        after = block.snapshot()
    else:  # pragma: no cover - the operation union is closed
        return False

    db.add(
        AgentActionLog(
            user_id=alert.user_id,
            alert_id=alert.id,
            action_type=ACTION_TYPE,
            action_payload={
                "sequence": sequence,
                "strategy_id": strategy_id,
                "operation": operation.model_dump(by_alias=True, mode="json"),
                "block_id": target,
                "before": before,
                "after": after,
            },
            reason=f"Applied {operation.type} from strategy {strategy_id}",
            undo_available=True,
        )
    )
    db.flush()
    logger.info("Applied %s to block %s", operation.type, target)
    return True


def undo_resolution(db: Session, *, alert_id: UUID, user_id: UUID, bus: Optional[EventBus] = None) -> Dict[str, Any]:
    """Restore every block touched by the alert's resolution and reopen the alert."""
    alert = db.get(ScheduleAlert, alert_id)
    if alert is None or alert.user_id != user_id:
        raise NotFoundError("Alert not found", details={"alert_id": str(alert_id)})

    entries = (
        db.query(AgentActionLog)
        .filter(
            AgentActionLog.alert_id == alert_id,
            AgentActionLog.user_id == user_id,
            AgentActionLog.action_type == ACTION_TYPE,
            AgentActionLog.undo_available.is_(True),
            AgentActionLog.undone_at.is_(None),
        )
        .all()
    )
    if not entries:
        raise NotFoundError("No applied resolution to undo", code="NOTHING_TO_UNDO", details={"alert_id": str(alert_id)})

    entries.sort(key=lambda entry: (entry.created_at, (entry.action_payload or {}).get("sequence", 0)), reverse=True)
    now = datetime.now(timezone.utc)
    restored: List[str] = []
    try:
        for entry in entries:
            before = (entry.action_payload or {}).get("before")
            if before:
                _restore_block(db, before)
                restored.append(before["id"])
            entry.undone_at = now
            entry.undo_available = False
        alert.status = "pending"
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Undo of alert %s failed; nothing restored", alert_id)
        raise

    logger.info("Undid resolution of alert %s (%s blocks restored)", alert_id, len(restored))
    if bus is not None:
        bus.publish(
            db,
            user_id=user_id,
            event_type=EventType.SCHEDULE_BLOCK_MODIFIED,
            source=AGENT_NAME,
            payload={"alert_id": str(alert_id), "reason": "undo", "block_ids": restored},
        )
    return {"alert_id": str(alert_id), "restored": len(restored), "block_ids": restored}


def _restore_block(db: Session, snapshot: Dict[str, Any]) -> None:
    block_id = UUID(snapshot["id"])
    block = db.get(ScheduleBlock, block_id)
    if block is None:
        block = ScheduleBlock(id=block_id, user_id=UUID(snapshot["user_id"]))
        db.add(block)
    block.title = snapshot["title"]
    block.block_type = snapshot["block_type"]
    block.start_time = datetime.fromisoformat(snapshot["start_time"])
    block.end_time = datetime.fromisoformat(snapshot["end_time"])
    block.task_id = UUID(snapshot["task_id"]) if snapshot.get("task_id") else None
    block.event_id = UUID(snapshot["event_id"]) if snapshot.get("event_id") else None
    block.pinned = bool(snapshot.get("pinned"))
    block.rationale = snapshot.get("rationale")
    block.explain = snapshot.get("explain") or {}
    db.flush()


def _suggest(
    db: Session,
    user_id: UUID,
    alert_id: UUID,
    reason: str,
    result: OrchestrationResult,
    extra: Optional[Dict[str, Any]] = None,
) -> None:
    suggestion = suggest_conflict_review(
        db,
        user_id=user_id,
        alert_id=alert_id,
        message=MANUAL_REVIEW_MESSAGE,
        reason=reason,
        extra=extra,
    )
    result.actions_taken.append("created_suggestion")
    result.details["suggestion_id"] = str(suggestion.id)
    result.details["reason"] = reason


def _optional_uuid(value: Any) -> Optional[UUID]:
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        return None


def _as_uuid(value: Any, name: str) -> UUID:
    try:
        return UUID(str(value))
    except ValueError as exc:
        raise InputValidationError(f"{name} must be a UUID", code="INVALID_INPUT", details={"field": name}) from exc
