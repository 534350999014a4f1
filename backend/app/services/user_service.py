"""User rows for callers that only know a user id."""
from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.db.models.user import User

logger = logging.getLogger(__name__)


def ensure_user(db: Session, user_id: UUID) -> User:
    """Return the user, inserting a bare row first if the id is new.

    Events and decisions reference ``users`` by foreign key; publishers such as
    the calendar sync may run before anything else has created the row.
    """
    user = db.get(User, user_id)
    if user is not None:
        return user

    user = User(id=user_id)
    db.add(user)
    try:
        db.flush()
    except IntegrityError:
        # A concurrent request inserted the same id between get and flush.
        db.rollback()
        existing = db.get(User, user_id)
        if existing is None:
            raise
        return existing
    logger.info("Created user row for %s", user_id)
    return user
