from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import settings
from app.db import Base
from app.db.models.calendar_event import CalendarEvent
from app.db.models.schedule_block import ScheduleBlock
from app.db.models.user import User
from app.db.models.user_preferences import UserPreferences


@pytest.fixture(autouse=True)
def fast_retries(monkeypatch):
    monkeypatch.setattr(settings, "reasoning_base_delay_seconds", 0.0)
    monkeypatch.setattr(settings, "reasoning_max_delay_seconds", 0.0)


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):  # pragma: no cover - sqlite setup
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    yield factory
    engine.dispose()


@pytest.fixture()
def seed(session_factory):
    """Row builders bound to the test database."""

    class _Seed:
        def user(self, **prefs: Any) -> UUID:
            with session_factory() as db:
                user_id = uuid4()
                db.add(User(id=user_id))
                db.flush()
                if prefs:
                    db.add(UserPreferences(user_id=user_id, **prefs))
                db.commit()
                return user_id

        def block(
            self,
            user_id: UUID,
            start: datetime,
            end: datetime,
            block_type: str = "deep_work",
            **extra: Any,
        ) -> UUID:
            with session_factory() as db:
                block = ScheduleBlock(
                    user_id=user_id,
                    title=extra.pop("title", block_type.replace("_", " ").title()),
                    block_type=block_type,
                    start_time=start,
                    end_time=end,
                    **extra,
                )
                db.add(block)
                db.commit()
                return block.id

        def event(self, user_id: UUID, start: datetime | None, end: datetime | None, **extra: Any) -> UUID:
            with session_factory() as db:
                row = CalendarEvent(
                    user_id=user_id,
                    title=extra.pop("title", "Team sync"),
                    start_at=start,
                    end_at=end,
                    **extra,
                )
                db.add(row)
                db.commit()
                return row.id

    return _Seed()
