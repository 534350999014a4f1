"""Negotiator agent: proposes exactly three ways out of a schedule conflict."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import GuardrailViolationError, InvalidStrategyCount, NotFoundError
from app.core.logging import log_validation
from app.db.models.schedule_alert import ScheduleAlert
from app.db.models.schedule_block import ScheduleBlock
from app.observability.metrics import perf_timer
from app.observability.tracing import record_output, trace
from app.services.day_context import (
    DayContext,
    build_day_context,
    format_local_time,
    load_preferences,
    local_date_of,
    resolve_timezone,
)
from app.services.decisions import record_decision
from app.services.reasoning import GenerationConfig, ReasoningService, RetryPolicy, call_reasoning, parse_model_json
from app.services.reasoning.factory import select_model
from app.services.strategies import (
    IMPACT_LEVELS,
    OPERATION_ADAPTER,
    STRATEGY_ACTIONS,
    Operation,
    Strategy,
)
from app.services.strategy_policy import evaluate_strategies

logger = logging.getLogger(__name__)

AGENT_NAME = "negotiator"
STRATEGY_COUNT = 3
REQUIRED_STRATEGY_FIELDS = ("id", "title", "description", "impact", "action")


@dataclass
class NegotiationResult:
    alert_id: UUID
    strategies: List[Strategy]
    model_used: Optional[str] = None
    timezone: Optional[str] = None
    conflicting_block_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alert_id": str(self.alert_id),
            "strategies": [strategy.to_payload() for strategy in self.strategies],
            "model_used": self.model_used,
            "timezone": self.timezone,
        }


def negotiate(
    *,
    alert: ScheduleAlert,
    conflicting_blocks: Sequence[ScheduleBlock],
    context: DayContext,
    reasoning: ReasoningService,
    retry_policy: Optional[RetryPolicy] = None,
) -> NegotiationResult:
    model = select_model(context.user_prefs.wants_pro_model)
    logger.info("Using model %s", model, extra={"pro": context.user_prefs.wants_pro_model})

    with trace(
        "negotiator.generate",
        metadata={"alert_id": str(alert.id), "conflicts": len(conflicting_blocks), "model": model},
        user_id=str(alert.user_id),
    ) as negotiation_trace:
        response = call_reasoning(
            reasoning,
            model=model,
            prompt=build_negotiation_prompt(alert, conflicting_blocks, context),
            generation_config=GenerationConfig(response_mime_type="application/json"),
            policy=retry_policy,
            agent_name=AGENT_NAME,
        )
        payload = parse_model_json(response.text, agent_name=AGENT_NAME)
        strategies = evaluate_strategies(validate_strategies(payload), context)
        record_output(
            negotiation_trace,
            strategy_ids=[strategy.id for strategy in strategies],
            feasible=[strategy.feasible for strategy in strategies],
        )

    return NegotiationResult(
        alert_id=alert.id,
        strategies=strategies,
        model_used=response.model,
        timezone=context.timezone_name,
        conflicting_block_ids=[str(block.id) for block in conflicting_blocks],
    )


def negotiate_for_alert(
    db: Session,
    *,
    alert_id: UUID,
    user_id: UUID,
    reasoning: ReasoningService,
    timezone: Optional[str] = None,
    retry_policy: Optional[RetryPolicy] = None,
) -> NegotiationResult:
    """Load the alert's conflict, negotiate strategies and record the decision context."""
    alert = db.get(ScheduleAlert, alert_id)
    if alert is None or alert.user_id != user_id:
        logger.error("Alert not found", extra={"alert_id": str(alert_id)})
        raise NotFoundError("Alert not found", details={"alert_id": str(alert_id)})

    zone_name = timezone or load_preferences(db, user_id).timezone
    zone = resolve_timezone(zone_name)
    conflicting = load_related_blocks(db, alert)
    logger.info(
        "Loaded conflict context",
        extra={"alert_id": str(alert_id), "conflicting_blocks": len(conflicting)},
    )

    target_date = local_date_of(conflicting[0].start_time, zone) if conflicting else datetime.now(zone).date()

    with perf_timer("negotiator.run", {"alert_id": str(alert_id)}):
        context = build_day_context(db, user_id, target_date, zone.key)
        result = negotiate(
            alert=alert,
            conflicting_blocks=conflicting,
            context=context,
            reasoning=reasoning,
            retry_policy=retry_policy,
        )

    logger.info(
        "Strategies generated",
        extra={
            "alert_id": str(alert_id),
            "strategy_count": len(result.strategies),
            "feasible_count": sum(1 for strategy in result.strategies if strategy.feasible),
        },
    )

    try:
        record_decision(
            db,
            user_id=user_id,
            agent_name=AGENT_NAME,
            decision_type="conflict_resolution_generated",
            context={"alert_id": str(alert_id), "conflict_count": len(conflicting), "timezone": zone.key},
            options_presented=[strategy.to_payload() for strategy in result.strategies],
        )
    except SQLAlchemyError:
        db.rollback()
        logger.warning("Failed to record negotiation decision for alert %s", alert_id, exc_info=True)
    return result


def load_related_blocks(db: Session, alert: ScheduleAlert) -> List[ScheduleBlock]:
    """Return the alert's blocks in their recorded order, skipping dangling ids."""
    ordered_ids: List[UUID] = []
    for raw_id in alert.related_block_ids or []:
        try:
            ordered_ids.append(UUID(str(raw_id)))
        except ValueError:
            log_validation(logger, "block_id_skipped", "malformed block id on alert", block_id=raw_id)
    if not ordered_ids:
        return []

    rows = (
        db.query(ScheduleBlock)
        .filter(ScheduleBlock.id.in_(ordered_ids), ScheduleBlock.user_id == alert.user_id)
        .all()
    )
    by_id = {row.id: row for row in rows}
    missing = [str(block_id) for block_id in ordered_ids if block_id not in by_id]
    if missing:
        logger.warning(
            "Alert references blocks that no longer exist",
            extra={"alert_id": str(alert.id), "missing_block_ids": missing},
        )
    return [by_id[block_id] for block_id in ordered_ids if block_id in by_id]


def validate_strategies(payload: Dict[str, Any]) -> List[Strategy]:
    strategies = payload.get("strategies")
    if not isinstance(strategies, list):
        raise GuardrailViolationError(
            "Response is missing a strategies array",
            code="INVALID_RESPONSE_TYPE",
            details={"field": "strategies", "type": type(strategies).__name__},
        )
    if len(strategies) != STRATEGY_COUNT:
        raise InvalidStrategyCount(
            f"Expected exactly {STRATEGY_COUNT} strategies, received {len(strategies)}",
            details={"expected": STRATEGY_COUNT, "received": len(strategies)},
        )
    return [_parse_strategy(raw, index) for index, raw in enumerate(strategies)]


def _parse_strategy(raw: Any, index: int) -> Strategy:
    if not isinstance(raw, dict):
        raise _structure_error("Strategy is not an object", index)

    values: Dict[str, str] = {}
    for name in REQUIRED_STRATEGY_FIELDS:
        value = raw.get(name)
        if not isinstance(value, str) or not value.strip():
            raise _structure_error("Strategy missing required fields", index, field=name)
        values[name] = value.strip()

    impact = values["impact"].capitalize()
    if impact not in IMPACT_LEVELS:
        raise _structure_error("Strategy impact is not Low, Medium or High", index, field="impact")
    action = values["action"].lower()
    if action not in STRATEGY_ACTIONS:
        raise _structure_error("Strategy action is not recognised", index, field="action")

    return Strategy(
        id=values["id"],
        title=values["title"],
        description=values["description"],
        impact=impact,
        action=action,
        operations=_parse_operations(raw.get("operations"), values["id"]),
    )


def _parse_operations(raw_operations: Any, strategy_id: str) -> List[Operation]:
    if not isinstance(raw_operations, list):
        return []
    operations: List[Operation] = []
    for raw in raw_operations:
        try:
            operations.append(OPERATION_ADAPTER.validate_python(raw))
        except ValidationError as exc:
            log_validation(
                logger,
                "operation_dropped",
                "operation is not a move, resize or delete shape",
                strategy_id=strategy_id,
                errors=exc.error_count(),
            )
    return operations


def _structure_error(message: str, index: int, **details: Any) -> GuardrailViolationError:
    return GuardrailViolationError(
        message,
        code="INVALID_STRATEGY_STRUCTURE",
        details={"index": index, **details},
    )


def build_negotiation_prompt(
    alert: ScheduleAlert,
    conflicting_blocks: Sequence[ScheduleBlock],
    context: DayContext,
) -> str:
    zone = context.timezone
    blocks = [
        {
            "id": str(block.id),
            "title": block.title,
            "start": format_local_time(block.start_time, zone),
            "end": format_local_time(block.end_time, zone),
            "type": block.block_type,
            "durationMin": block.duration_minutes,
        }
        for block in conflicting_blocks
    ]
    slots = [
        {
            "start": format_local_time(slot.start, zone),
            "end": format_local_time(slot.end, zone),
            "durationMin": slot.duration_minutes,
        }
        for slot in context.free_slots
    ]
    deep_work_min = settings.deep_work_min_minutes
    return f"""You are the Negotiator Agent for a daily schedule.
A conflict has been detected: "{alert.message}"

Resolve it by fitting displaced blocks into the available free slots.

CONFLICTING BLOCKS (must be resolved):
{json.dumps(blocks)}

AVAILABLE FREE SLOTS:
{json.dumps(slots)}

USER PREFERENCES:
- Resolution style: {context.user_prefs.conflict_resolution_style}

Propose EXACTLY {STRATEGY_COUNT} distinct strategies (for example: move to a free slot, shorten, delete).

RULES:
- A moved or resized block must fit entirely inside one free slot. Never move a 60-minute block into a 30-minute slot.
- Use the times from the free slot list.
- Deep work blocks must stay at least {deep_work_min} minutes. If no slot is long enough, propose delete instead of shorten.
- Avoid fragmenting deep work.

OPERATIONS:
- move: params {{"shiftMinutes": <int, may be negative>}}
- resize: params {{"durationMinutes": <int>}} (keeps the start time)
- delete: params {{}}

Return JSON only:
{{"strategies": [{{"id": "strategy_1", "title": "...", "description": "One sentence.", "impact": "High" | "Medium" | "Low", "action": "move" | "shorten" | "delete" | "split" | "swap", "operations": [{{"type": "move", "targetBlockId": "<block id>", "targetBlockTitle": "...", "params": {{"shiftMinutes": 30}}}}]}}]}}
"""
