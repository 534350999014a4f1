"""Centralized logging configuration."""
from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Any

import structlog

from app.core.context import get_request_id

VALIDATION = 25
logging.addLevelName(VALIDATION, "VALIDATION")

_SUBSYSTEM_ALIASES = {
    "bus": "event_bus",
    "dispatch": "event_bus",
    "subscriptions": "event_bus",
    "resilient_call": "reasoning",
    "openai_provider": "reasoning",
    "parsing": "reasoning",
    "strategy_policy": "negotiator",
}


class RequestIdFilter(logging.Filter):
    """Add request_id attribute to log records."""

    def filter(self, record: logging.LogRecord) -> bool:  # pragma: no cover - minimal logic
        record.request_id = get_request_id() or "-"
        return True


class SubsystemFilter(logging.Filter):
    """Tag each record with the agent/subsystem that emitted it."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "subsystem", None):
            leaf = record.name.rsplit(".", 1)[-1]
            record.subsystem = _SUBSYSTEM_ALIASES.get(leaf, leaf)
        return True


def log_validation(logger: logging.Logger, action: str, reason: str, **data: Any) -> None:
    """Record a guardrail decision so it stays distinguishable from real errors."""
    logger.log(VALIDATION, "%s: %s", action, reason, extra={"validation": data} if data else None)


def _json_formatter() -> dict:
    return {
        "()": structlog.stdlib.ProcessorFormatter,
        "processors": [
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.JSONRenderer(default=str),
        ],
        "foreign_pre_chain": [
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.stdlib.ExtraAdder(),
            structlog.processors.format_exc_info,
        ],
    }


def configure_logging(*, log_level: str = "INFO", log_format: str = "text") -> None:
    """Configure application logging once at startup."""
    if getattr(configure_logging, "_configured", False):
        return

    formatter = "json" if log_format.lower() == "json" else "default"
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s | %(levelname)s | %(subsystem)s | %(request_id)s | %(message)s",
                },
                "json": _json_formatter(),
            },
            "filters": {
                "request_id": {
                    "()": "app.core.logging.RequestIdFilter",
                },
                "subsystem": {
                    "()": "app.core.logging.SubsystemFilter",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": formatter,
                    "level": log_level,
                    "filters": ["request_id", "subsystem"],
                }
            },
            "loggers": {
                "httpx": {"level": "WARNING"},
                "httpcore": {"level": "WARNING"},
            },
            "root": {
                "handlers": ["console"],
                "level": log_level,
            },
        }
    )

    logging.getLogger(__name__).debug("Logging configured at %s (%s)", log_level, formatter)
    setattr(configure_logging, "_configured", True)
