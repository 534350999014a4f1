"""Lenient JSON extraction from model output."""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict

from app.core.errors import GuardrailViolationError
from app.core.logging import log_validation

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"^\s*```(?:json)?\s*|\s*```\s*$", re.IGNORECASE)


def parse_model_json(text: str, *, agent_name: str = "reasoning") -> Dict[str, Any]:
    """Parse a JSON object, repairing markdown fences and surrounding prose once."""
    try:
        parsed = json.loads(text)
    except (TypeError, ValueError):
        parsed = _repair(text, agent_name)

    if not isinstance(parsed, dict):
        raise GuardrailViolationError(
            "Model response is not a JSON object",
            code="INVALID_RESPONSE_SHAPE",
            details={"agent": agent_name, "type": type(parsed).__name__},
        )
    return parsed


def _repair(text: str, agent_name: str) -> Any:
    cleaned = _FENCE.sub("", text or "").strip()
    first, last = cleaned.find("{"), cleaned.rfind("}")
    if first != -1 and last > first:
        cleaned = cleaned[first : last + 1]
    try:
        parsed = json.loads(cleaned)
    except ValueError as exc:
        raise GuardrailViolationError(
            "Model response is not valid JSON",
            code="INVALID_RESPONSE_SHAPE",
            details={"agent": agent_name, "length": len(text or "")},
        ) from exc
    log_validation(logger, "json_repaired", "stripped fences/prose around model JSON", agent=agent_name)
    return parsed
