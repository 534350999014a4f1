"""Pure interval arithmetic for schedule packing.

Every helper accepts either plain numbers (minutes since midnight) or
timezone-aware datetimes, as long as both ends of an interval use the same
kind.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Iterable, List, NamedTuple

from app.core.errors import InvalidTimeFormat

MIN_FREE_SLOT_MINUTES = 15

_TIME_PATTERN = re.compile(
    r"^\s*(?P<hours>\d{1,2})\s*:\s*(?P<minutes>\d{2})\s*(?P<meridiem>[ap]\.?\s*m\.?)?\s*$",
    re.IGNORECASE,
)


class Interval(NamedTuple):
    start: Any
    end: Any


@dataclass(frozen=True)
class FreeSlot:
    start: Any
    end: Any
    duration_minutes: int

    def to_dict(self) -> dict:
        return {
            "start": _serialize(self.start),
            "end": _serialize(self.end),
            "durationMinutes": self.duration_minutes,
        }


def time_to_minutes(text: str) -> int:
    """Convert ``"HH:MM"`` or ``"H:MM AM/PM"`` into minutes since midnight."""
    match = _TIME_PATTERN.match(text or "")
    if not match:
        raise InvalidTimeFormat(f"Invalid time format: {text}", details={"input": text})

    hours = int(match.group("hours"))
    minutes = int(match.group("minutes"))
    meridiem = (match.group("meridiem") or "").lower().replace(".", "").replace(" ", "")

    if minutes > 59:
        raise InvalidTimeFormat(f"Invalid time format: {text}", details={"input": text})
    if meridiem:
        if not 1 <= hours <= 12:
            raise InvalidTimeFormat(f"Invalid time format: {text}", details={"input": text})
        if meridiem == "pm" and hours < 12:
            hours += 12
        elif meridiem == "am" and hours == 12:
            hours = 0
    elif hours > 23:
        raise InvalidTimeFormat(f"Invalid time format: {text}", details={"input": text})

    return hours * 60 + minutes


def minutes_to_time(total_minutes: int) -> str:
    total_minutes %= 24 * 60
    return f"{total_minutes // 60:02d}:{total_minutes % 60:02d}"


def has_overlap(start_a, end_a, start_b, end_b) -> bool:
    """True iff the half-open ranges share time; touching ranges do not overlap."""
    return max(start_a, start_b) < min(end_a, end_b)


def merge_intervals(intervals: Iterable) -> List[Interval]:
    """Sort by start and coalesce overlapping or touching intervals."""
    ordered = sorted((Interval(*item) for item in intervals), key=lambda item: item.start)
    merged: List[Interval] = []
    for interval in ordered:
        if merged and merged[-1].end >= interval.start:
            last = merged[-1]
            merged[-1] = Interval(last.start, max(last.end, interval.end))
        else:
            merged.append(interval)
    return merged


def free_slots(day_start, day_end, busy: Iterable, min_minutes: int = MIN_FREE_SLOT_MINUTES) -> List[FreeSlot]:
    """Gaps between busy intervals inside ``[day_start, day_end]``.

    Gaps shorter than ``min_minutes`` are dropped so callers never propose
    unusable micro-slots.
    """
    slots: List[FreeSlot] = []
    cursor = day_start
    for interval in merge_intervals(busy):
        if interval.end <= day_start or interval.start >= day_end:
            continue
        if interval.start > cursor:
            slots.append(_slot(cursor, interval.start))
        cursor = max(cursor, interval.end)
    if cursor < day_end:
        slots.append(_slot(cursor, day_end))
    return [slot for slot in slots if slot.duration_minutes >= min_minutes]


def minutes_between(start, end) -> float:
    delta = end - start
    if isinstance(delta, timedelta):
        return delta.total_seconds() / 60
    return float(delta)


def _slot(start, end) -> FreeSlot:
    return FreeSlot(start=start, end=end, duration_minutes=round(minutes_between(start, end)))


def _serialize(value):
    return value.isoformat() if isinstance(value, datetime) else value
