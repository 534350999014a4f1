"""Relational store: declarative base plus every ORM model registered on it."""

from app.db.base import Base
from app.db import models  # noqa: F401  registers tables on Base.metadata

__all__ = ["Base"]
