"""Deterministic feasibility check for proposed strategies.

The reasoning service is told about free slots and the deep-work minimum, but
nothing it proposes is trusted on that basis: the operations are replayed on a
copy of the day and the resulting layout is checked.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Sequence

from app.core.config import settings
from app.core.logging import log_validation
from app.services.day_context import DayContext
from app.services.interval_algebra import Interval, has_overlap
from app.services.strategies import DeleteOperation, MoveOperation, ResizeOperation, Strategy

logger = logging.getLogger(__name__)


@dataclass
class _Placement:
    start: datetime
    end: datetime
    block_type: str
    pinned: bool


def evaluate_strategy(strategy: Strategy, context: DayContext) -> Strategy:
    """Return ``strategy`` with ``feasible``/``violations`` filled in."""
    layout: Dict[str, _Placement] = {
        str(block.id): _Placement(block.start_time, block.end_time, block.block_type, bool(block.pinned))
        for block in context.blocks
    }
    events: List[Interval] = [
        Interval(event.start_at, event.end_at) for event in context.events if not event.all_day
    ]
    violations: List[str] = []
    touched: List[str] = []

    for operation in strategy.operations:
        target = operation.target_block_id
        placement = layout.get(target) if target else None
        if placement is None:
            # The orchestrator skips these; they cannot make the day worse.
            continue
        if placement.pinned:
            violations.append(f"pinned_target:{target}")
            continue

        if isinstance(operation, DeleteOperation):
            del layout[target]
            continue
        if isinstance(operation, MoveOperation):
            shift = timedelta(minutes=operation.params.shift_minutes)
            placement.start += shift
            placement.end += shift
        elif isinstance(operation, ResizeOperation):
            duration = operation.params.duration_minutes
            if duration <= 0:
                violations.append(f"non_positive_duration:{target}")
                continue
            if placement.block_type == "deep_work" and duration < settings.deep_work_min_minutes:
                violations.append(f"deep_work_below_minimum:{target}")
                continue
            placement.end = placement.start + timedelta(minutes=duration)
        if target not in touched:
            touched.append(target)

    for target in touched:
        placement = layout.get(target)
        if placement is None:
            continue
        if _lands_on_busy_time(target, placement, layout, events):
            violations.append(f"overlaps_busy_time:{target}")

    if violations:
        log_validation(
            logger,
            "strategy_infeasible",
            "operations violate scheduling policy",
            strategy_id=strategy.id,
            violations=violations,
        )
    return strategy.model_copy(update={"feasible": not violations, "violations": violations})


def evaluate_strategies(strategies: Sequence[Strategy], context: DayContext) -> List[Strategy]:
    return [evaluate_strategy(strategy, context) for strategy in strategies]


def _lands_on_busy_time(
    target: str,
    placement: _Placement,
    layout: Dict[str, _Placement],
    events: Sequence[Interval],
) -> bool:
    for other_id, other in layout.items():
        if other_id != target and has_overlap(placement.start, placement.end, other.start, other.end):
            return True
    return any(has_overlap(placement.start, placement.end, event.start, event.end) for event in events)
