from __future__ import annotations

from app.services.day_context import build_day_context
from app.services.strategies import Strategy
from app.services.strategy_policy import evaluate_strategies, evaluate_strategy
from factories import at


def _strategy(*operations: dict, strategy_id: str = "s1") -> Strategy:
    return Strategy.model_validate(
        {
            "id": strategy_id,
            "title": "Candidate",
            "description": "d",
            "impact": "Low",
            "action": "move",
            "operations": list(operations),
        }
    )


def _context(session_factory, user_id):
    with session_factory() as db:
        return build_day_context(db, user_id, at(0), "UTC")


def test_move_into_free_time_is_feasible(session_factory, seed) -> None:
    user_id = seed.user(timezone="UTC")
    block_id = seed.block(user_id, at(9), at(10))
    seed.event(user_id, at(9), at(10))
    context = _context(session_factory, user_id)

    result = evaluate_strategy(
        _strategy({"type": "move", "targetBlockId": str(block_id), "params": {"shiftMinutes": 60}}),
        context,
    )

    assert result.feasible is True
    assert result.violations == []


def test_move_onto_another_block_is_flagged(session_factory, seed) -> None:
    user_id = seed.user(timezone="UTC")
    block_id = seed.block(user_id, at(9), at(10), block_type="admin")
    seed.block(user_id, at(11), at(12))
    context = _context(session_factory, user_id)

    result = evaluate_strategy(
        _strategy({"type": "move", "targetBlockId": str(block_id), "params": {"shiftMinutes": 120}}),
        context,
    )

    assert result.feasible is False
    assert result.violations == [f"overlaps_busy_time:{block_id}"]


def test_overlap_is_judged_on_the_final_layout(session_factory, seed) -> None:
    user_id = seed.user(timezone="UTC")
    first = seed.block(user_id, at(9), at(10), block_type="admin")
    second = seed.block(user_id, at(11), at(12), block_type="admin")
    context = _context(session_factory, user_id)

    # The first move lands on the second block, which then moves out of the way.
    result = evaluate_strategy(
        _strategy(
            {"type": "move", "targetBlockId": str(first), "params": {"shiftMinutes": 120}},
            {"type": "move", "targetBlockId": str(second), "params": {"shiftMinutes": 120}},
        ),
        context,
    )

    assert result.feasible is True


def test_move_onto_a_timed_event_is_flagged_but_all_day_is_ignored(session_factory, seed) -> None:
    user_id = seed.user(timezone="UTC")
    block_id = seed.block(user_id, at(9), at(10), block_type="admin")
    seed.event(user_id, at(14), at(15), title="Dentist")
    seed.event(user_id, at(0), at(0, day=21), title="Company holiday", all_day=True)
    context = _context(session_factory, user_id)

    onto_event = evaluate_strategy(
        _strategy({"type": "move", "targetBlockId": str(block_id), "params": {"shiftMinutes": 300}}),
        context,
    )
    into_gap = evaluate_strategy(
        _strategy({"type": "move", "targetBlockId": str(block_id), "params": {"shiftMinutes": 180}}),
        context,
    )

    assert onto_event.violations == [f"overlaps_busy_time:{block_id}"]
    assert into_gap.feasible is True


def test_deep_work_cannot_shrink_below_minimum(session_factory, seed) -> None:
    user_id = seed.user(timezone="UTC")
    deep = seed.block(user_id, at(9), at(11))
    admin = seed.block(user_id, at(13), at(14), block_type="admin")
    context = _context(session_factory, user_id)

    results = evaluate_strategies(
        [
            _strategy({"type": "resize", "targetBlockId": str(deep), "params": {"durationMinutes": 30}}, strategy_id="a"),
            _strategy({"type": "resize", "targetBlockId": str(deep), "params": {"durationMinutes": 60}}, strategy_id="b"),
            _strategy({"type": "resize", "targetBlockId": str(admin), "params": {"durationMinutes": 15}}, strategy_id="c"),
        ],
        context,
    )

    assert [result.feasible for result in results] == [False, True, True]
    assert results[0].violations == [f"deep_work_below_minimum:{deep}"]


def test_non_positive_resize_is_flagged(session_factory, seed) -> None:
    user_id = seed.user(timezone="UTC")
    block_id = seed.block(user_id, at(9), at(10), block_type="admin")
    context = _context(session_factory, user_id)

    result = evaluate_strategy(
        _strategy({"type": "resize", "targetBlockId": str(block_id), "params": {"durationMinutes": 0}}),
        context,
    )

    assert result.violations == [f"non_positive_duration:{block_id}"]


def test_pinned_targets_are_flagged(session_factory, seed) -> None:
    user_id = seed.user(timezone="UTC")
    pinned = seed.block(user_id, at(9), at(10), block_type="meeting", pinned=True)
    context = _context(session_factory, user_id)

    result = evaluate_strategy(_strategy({"type": "delete", "targetBlockId": str(pinned)}), context)

    assert result.feasible is False
    assert result.violations == [f"pinned_target:{pinned}"]


def test_unknown_targets_do_not_make_a_strategy_infeasible(session_factory, seed) -> None:
    user_id = seed.user(timezone="UTC")
    context = _context(session_factory, user_id)

    result = evaluate_strategy(
        _strategy(
            {"type": "delete", "targetBlockId": "00000000-0000-0000-0000-000000000000"},
            {"type": "delete"},
        ),
        context,
    )

    assert result.feasible is True
    assert len(result.operations) == 2
