"""Error taxonomy shared by the scheduling agents.

Four families, each mapped to an HTTP status at the API boundary
(``app.api.errors``):

* ``InputValidationError`` - bad caller input; never retried (400).
* ``GuardrailViolationError`` - the reasoning service broke its output
  contract; not retried automatically because the same prompt tends to
  reproduce the same answer (502).
* ``ExternalServiceError`` - the reasoning service failed or was unreachable;
  carries ``status_code`` and ``retryable`` (429/503/500).
* ``NotFoundError`` / ``AuthenticationError`` - 404 / 401.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class SchedulingError(Exception):
    """Base class for errors raised by the scheduling pipeline."""

    code = "SCHEDULING_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details or {}


class InputValidationError(SchedulingError):
    code = "INVALID_INPUT"


class InvalidTimeFormat(InputValidationError):
    code = "INVALID_TIME_FORMAT"


class GuardrailViolationError(SchedulingError):
    code = "GUARDRAIL_VIOLATION"


class InvalidStrategyCount(GuardrailViolationError):
    code = "INVALID_ARRAY_LENGTH"


class NotFoundError(SchedulingError):
    code = "NOT_FOUND"


class AuthenticationError(SchedulingError):
    code = "UNAUTHORIZED"


class ExternalServiceError(SchedulingError):
    """Failure talking to the reasoning service."""

    code = "LLM_SERVICE_ERROR"

    def __init__(
        self,
        message: str,
        status_code: int,
        retryable: bool,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details=details)
        self.status_code = status_code
        self.retryable = retryable

    @classmethod
    def from_status(cls, status_code: int, message: str, **details: Any) -> "ExternalServiceError":
        """Build an error classified by HTTP status (429 and 5xx are retryable)."""
        return cls(message, status_code=status_code, retryable=is_retryable_status(status_code), details=details)


def is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


def require_fields(obj: Dict[str, Any], fields: list[str]) -> None:
    """Raise InputValidationError when any of ``fields`` is missing or empty."""
    missing = [field for field in fields if not obj.get(field)]
    if missing:
        raise InputValidationError(
            f"Missing required fields: {', '.join(missing)}",
            code="MISSING_REQUIRED_FIELDS",
            details={"missing": missing},
        )
