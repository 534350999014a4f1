from __future__ import annotations

import pytest

from app.core.errors import InputValidationError, InvalidTimeFormat
from app.services.interval_algebra import (
    FreeSlot,
    Interval,
    free_slots,
    has_overlap,
    merge_intervals,
    minutes_to_time,
    time_to_minutes,
)
from factories import at


@pytest.mark.parametrize(
    "text,expected",
    [
        ("00:00", 0),
        ("09:05", 545),
        ("23:59", 1439),
        ("9:30 AM", 570),
        ("12:15 am", 15),
        ("12:00 PM", 720),
        ("1:45pm", 825),
        ("11:00 p.m.", 1380),
    ],
)
def test_time_to_minutes_accepts_24h_and_meridiem(text, expected) -> None:
    assert time_to_minutes(text) == expected


@pytest.mark.parametrize("text", ["", "9", "9:5", "24:00", "12:60", "13:00 PM", "0:30 AM", "nine:30", "10:00:00"])
def test_time_to_minutes_rejects_malformed_input(text) -> None:
    with pytest.raises(InvalidTimeFormat) as excinfo:
        time_to_minutes(text)

    assert isinstance(excinfo.value, InputValidationError)
    assert excinfo.value.code == "INVALID_TIME_FORMAT"


def test_minutes_to_time_wraps_past_midnight() -> None:
    assert minutes_to_time(570) == "09:30"
    assert minutes_to_time(24 * 60 + 5) == "00:05"


def test_overlapping_ranges_are_detected_symmetrically() -> None:
    assert has_overlap(540, 570, 555, 600) is True
    assert has_overlap(555, 600, 540, 570) is True


def test_adjacent_and_zero_length_ranges_do_not_overlap() -> None:
    assert has_overlap(540, 570, 570, 600) is False
    assert has_overlap(570, 600, 540, 570) is False
    assert has_overlap(560, 560, 540, 600) is False


def test_has_overlap_works_on_datetimes() -> None:
    assert has_overlap(at(9), at(9, 30), at(9, 15), at(10)) is True
    assert has_overlap(at(9), at(9, 30), at(9, 30), at(10)) is False


def test_merge_coalesces_touching_and_overlapping_intervals() -> None:
    busy = [(600, 615), (480, 540), (540, 570)]

    merged = merge_intervals(busy)

    assert merged == [Interval(480, 570), Interval(600, 615)]
    assert busy == [(600, 615), (480, 540), (540, 570)]


def test_merge_is_idempotent() -> None:
    once = merge_intervals([(0, 10), (5, 20), (30, 40), (40, 45)])

    assert merge_intervals(once) == once


def test_free_slots_are_the_complement_of_busy_time() -> None:
    busy = [(480, 540), (540, 570), (600, 615)]

    slots = free_slots(0, 1439, busy)

    assert slots == [
        FreeSlot(0, 480, 480),
        FreeSlot(570, 600, 30),
        FreeSlot(615, 1439, 824),
    ]


def test_free_slots_drop_gaps_shorter_than_minimum() -> None:
    slots = free_slots(0, 1439, [(480, 540), (550, 600)])

    assert (540, 550) not in [(slot.start, slot.end) for slot in slots]
    assert all(slot.duration_minutes >= 15 for slot in slots)


def test_free_slots_clip_busy_time_outside_the_window() -> None:
    slots = free_slots(at(0), at(23, 59), [(at(22, day=19), at(1)), (at(23), at(2, day=21))])

    assert len(slots) == 1
    assert slots[0].start == at(1)
    assert slots[0].end == at(23)
    assert slots[0].to_dict()["durationMinutes"] == 22 * 60
