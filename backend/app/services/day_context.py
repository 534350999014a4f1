"""Builds the "board" for one user-day: preferences, events, blocks and free time."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone as dt_timezone
from typing import Any, Dict, List, Optional
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import InvalidTimeFormat
from app.core.logging import log_validation
from app.db.models.calendar_event import CalendarEvent
from app.db.models.schedule_block import ScheduleBlock
from app.db.models.user_preferences import UserPreferences
from app.services.interval_algebra import FreeSlot, Interval, free_slots, time_to_minutes

logger = logging.getLogger(__name__)

DEFAULT_WORKING_HOURS = ("09:00", "17:00")
# Queried around local midnight so timezone skew never truncates the day.
QUERY_PADDING_BEFORE = timedelta(hours=12)
QUERY_PADDING_AFTER = timedelta(hours=36)


@dataclass
class PreferenceState:
    working_hours_start: str = DEFAULT_WORKING_HOURS[0]
    working_hours_end: str = DEFAULT_WORKING_HOURS[1]
    conflict_resolution_style: str = "balanced"
    preferred_resolution_strategy: str = "protect_focus"
    auto_resolve_conflicts: bool = False
    timezone: Optional[str] = None
    ai_preferences: Dict[str, Any] = field(default_factory=dict)
    stored: bool = False

    @property
    def wants_pro_model(self) -> bool:
        return (self.ai_preferences or {}).get("model") == "pro"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "working_hours_start": self.working_hours_start,
            "working_hours_end": self.working_hours_end,
            "conflict_resolution_style": self.conflict_resolution_style,
            "preferred_resolution_strategy": self.preferred_resolution_strategy,
            "auto_resolve_conflicts": self.auto_resolve_conflicts,
            "timezone": self.timezone,
        }


@dataclass
class DayContext:
    target_date: date
    timezone: ZoneInfo
    user_prefs: PreferenceState
    events: List[CalendarEvent]
    blocks: List[ScheduleBlock]
    free_slots: List[FreeSlot]
    day_window: Interval
    working_window: Interval

    @property
    def timezone_name(self) -> str:
        return self.timezone.key

    def busy_intervals(self) -> List[Interval]:
        return _busy_intervals(self.events, self.blocks)


def resolve_timezone(name: Optional[str]) -> ZoneInfo:
    """Return the named zone, or the configured default when it is unknown.

    Never raises: a bad zone from upstream data should not take the pipeline down.
    """
    if name:
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            log_validation(logger, "timezone_fallback", "unknown timezone", requested=name, default=settings.default_timezone)
    try:
        return ZoneInfo(settings.default_timezone)
    except (ZoneInfoNotFoundError, ValueError):
        logger.error("Configured default timezone %s is invalid; using UTC", settings.default_timezone)
        return ZoneInfo("UTC")


def load_preferences(db: Session, user_id: UUID) -> PreferenceState:
    row = db.get(UserPreferences, user_id)
    if not row:
        return PreferenceState()
    return PreferenceState(
        working_hours_start=row.working_hours_start or DEFAULT_WORKING_HOURS[0],
        working_hours_end=row.working_hours_end or DEFAULT_WORKING_HOURS[1],
        conflict_resolution_style=row.conflict_resolution_style or "balanced",
        preferred_resolution_strategy=row.preferred_resolution_strategy or "protect_focus",
        auto_resolve_conflicts=bool(row.auto_resolve_conflicts),
        timezone=row.timezone,
        ai_preferences=dict(row.ai_preferences or {}),
        stored=True,
    )


def local_date_of(moment: datetime, zone: ZoneInfo) -> date:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=dt_timezone.utc)
    return moment.astimezone(zone).date()


def format_local_time(moment: datetime, zone: ZoneInfo) -> str:
    """Render ``moment`` as ``"9:05 AM"`` in the user's zone."""
    local = moment.astimezone(zone)
    hour = local.hour % 12 or 12
    meridiem = "AM" if local.hour < 12 else "PM"
    return f"{hour}:{local.minute:02d} {meridiem}"


def build_day_context(
    db: Session,
    user_id: UUID,
    target_date: date | datetime,
    timezone: Optional[str] = None,
) -> DayContext:
    zone = resolve_timezone(timezone)
    if isinstance(target_date, datetime):
        target_date = local_date_of(target_date, zone)

    prefs = load_preferences(db, user_id)
    local_midnight = datetime.combine(target_date, time.min, tzinfo=zone)
    query_start = local_midnight - QUERY_PADDING_BEFORE
    query_end = local_midnight + QUERY_PADDING_AFTER

    event_rows = (
        db.query(CalendarEvent)
        .filter(
            CalendarEvent.user_id == user_id,
            CalendarEvent.deleted_at.is_(None),
            CalendarEvent.start_at.is_not(None),
            CalendarEvent.end_at.is_not(None),
            CalendarEvent.start_at < query_end,
            CalendarEvent.end_at > query_start,
        )
        .order_by(CalendarEvent.start_at)
        .all()
    )
    block_rows = (
        db.query(ScheduleBlock)
        .filter(
            ScheduleBlock.user_id == user_id,
            ScheduleBlock.start_time < query_end,
            ScheduleBlock.end_time > query_start,
        )
        .order_by(ScheduleBlock.start_time)
        .all()
    )

    events = [row for row in event_rows if local_date_of(row.start_at, zone) == target_date]
    blocks = [row for row in block_rows if local_date_of(row.start_time, zone) == target_date]

    day_window = Interval(local_midnight, datetime.combine(target_date, time(23, 59), tzinfo=zone))
    working_window = _working_window(prefs, target_date, zone)
    slots = free_slots(
        day_window.start,
        day_window.end,
        _busy_intervals(events, blocks),
        min_minutes=settings.free_slot_min_minutes,
    )

    logger.debug(
        "Day context built for user=%s date=%s tz=%s (events=%s blocks=%s free_slots=%s)",
        user_id,
        target_date,
        zone.key,
        len(events),
        len(blocks),
        len(slots),
    )
    return DayContext(
        target_date=target_date,
        timezone=zone,
        user_prefs=prefs,
        events=events,
        blocks=blocks,
        free_slots=slots,
        day_window=day_window,
        working_window=working_window,
    )


def _working_window(prefs: PreferenceState, target_date: date, zone: ZoneInfo) -> Interval:
    try:
        start_minutes = time_to_minutes(prefs.working_hours_start)
        end_minutes = time_to_minutes(prefs.working_hours_end)
    except InvalidTimeFormat:
        log_validation(
            logger,
            "working_hours_fallback",
            "stored working hours are unparseable",
            start=prefs.working_hours_start,
            end=prefs.working_hours_end,
        )
        start_minutes = time_to_minutes(DEFAULT_WORKING_HOURS[0])
        end_minutes = time_to_minutes(DEFAULT_WORKING_HOURS[1])
    local_midnight = datetime.combine(target_date, time.min, tzinfo=zone)
    return Interval(
        local_midnight + timedelta(minutes=start_minutes),
        local_midnight + timedelta(minutes=end_minutes),
    )


def _busy_intervals(events: List[CalendarEvent], blocks: List[ScheduleBlock]) -> List[Interval]:
    # All-day entries are placeholders/reminders; they do not consume free time.
    busy = [Interval(event.start_at, event.end_at) for event in events if not event.all_day]
    busy.extend(Interval(block.start_time, block.end_time) for block in blocks)
    return busy
