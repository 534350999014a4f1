from __future__ import annotations

from datetime import date, datetime
from zoneinfo import ZoneInfo

from app.core.config import settings
from app.services.day_context import build_day_context, format_local_time, resolve_timezone
from factories import at


def test_unknown_timezone_falls_back_to_default() -> None:
    assert resolve_timezone("Mars/Olympus_Mons").key == settings.default_timezone
    assert resolve_timezone(None).key == settings.default_timezone
    assert resolve_timezone("Europe/Berlin").key == "Europe/Berlin"


def test_format_local_time_uses_twelve_hour_clock() -> None:
    zone = ZoneInfo("UTC")

    assert format_local_time(at(9, 5), zone) == "9:05 AM"
    assert format_local_time(at(0, 0), zone) == "12:00 AM"
    assert format_local_time(at(15, 30), zone) == "3:30 PM"


def test_context_keeps_only_rows_on_the_local_date(session_factory, seed) -> None:
    user_id = seed.user(timezone="UTC")
    seed.block(user_id, at(9), at(10))
    seed.block(user_id, at(9, day=21), at(10, day=21))
    seed.event(user_id, at(13), at(14))
    seed.event(user_id, at(23, day=19), at(23, 30, day=19))

    with session_factory() as db:
        context = build_day_context(db, user_id, date(2026, 10, 20), "UTC")

    assert [block.start_time for block in context.blocks] == [at(9)]
    assert [event.start_at for event in context.events] == [at(13)]
    assert context.timezone_name == "UTC"


def test_local_date_follows_the_requested_zone(session_factory, seed) -> None:
    user_id = seed.user()
    # 20:00 UTC on the 19th is already the 20th in Kolkata (UTC+5:30).
    seed.block(user_id, at(20, day=19), at(21, day=19))

    with session_factory() as db:
        context = build_day_context(db, user_id, date(2026, 10, 20), "Asia/Kolkata")

    assert len(context.blocks) == 1


def test_deleted_and_untimed_events_are_ignored(session_factory, seed) -> None:
    user_id = seed.user()
    seed.event(user_id, at(10), at(11), deleted_at=at(8))
    seed.event(user_id, None, None, title="Broken sync row")

    with session_factory() as db:
        context = build_day_context(db, user_id, date(2026, 10, 20), "UTC")

    assert context.events == []


def test_free_slots_cover_the_whole_day_and_skip_all_day_events(session_factory, seed) -> None:
    user_id = seed.user()
    seed.block(user_id, at(8), at(9))
    seed.block(user_id, at(9), at(9, 30), block_type="buffer")
    seed.event(user_id, at(10), at(10, 15))
    seed.event(user_id, at(0), at(23, 59), all_day=True, title="Holiday reminder")

    with session_factory() as db:
        context = build_day_context(db, user_id, date(2026, 10, 20), "UTC")

    spans = [(slot.start, slot.end, slot.duration_minutes) for slot in context.free_slots]
    assert spans == [
        (at(0), at(8), 480),
        (at(9, 30), at(10), 30),
        (at(10, 15), at(23, 59), 824),
    ]


def test_working_window_defaults_when_preferences_are_unparseable(session_factory, seed) -> None:
    user_id = seed.user(working_hours_start="late", working_hours_end="17:00")

    with session_factory() as db:
        context = build_day_context(db, user_id, date(2026, 10, 20), "UTC")

    assert context.working_window.start == datetime(2026, 10, 20, 9, 0, tzinfo=ZoneInfo("UTC"))
    assert context.working_window.end == datetime(2026, 10, 20, 17, 0, tzinfo=ZoneInfo("UTC"))


def test_missing_preferences_use_defaults(session_factory, seed) -> None:
    user_id = seed.user()

    with session_factory() as db:
        context = build_day_context(db, user_id, date(2026, 10, 20), "UTC")

    assert context.user_prefs.stored is False
    assert context.user_prefs.auto_resolve_conflicts is False
    assert context.user_prefs.working_hours_start == "09:00"
