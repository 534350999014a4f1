"""Maps the error taxonomy onto HTTP responses."""
from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.errors import (
    AuthenticationError,
    ExternalServiceError,
    GuardrailViolationError,
    InputValidationError,
    NotFoundError,
    SchedulingError,
)

logger = logging.getLogger(__name__)

_UPSTREAM_MESSAGES = {
    429: "The AI service is busy right now. Please try again in a moment.",
    401: "The AI service is misconfigured. Please contact support.",
    403: "The AI service is misconfigured. Please contact support.",
    504: "The AI service took too long to respond. Please try again.",
}
_UPSTREAM_DEFAULT = "The AI service is temporarily unavailable. Please try again."


def _body(error: str, code: str, **extra: Any) -> Dict[str, Any]:
    return {"success": False, "error": error, "code": code, **extra}


def translate_upstream_error(exc: ExternalServiceError) -> tuple[int, str]:
    """HTTP status and user-facing text for a reasoning-service failure."""
    message = _UPSTREAM_MESSAGES.get(exc.status_code, _UPSTREAM_DEFAULT)
    if exc.status_code == 429:
        return status.HTTP_429_TOO_MANY_REQUESTS, message
    if exc.status_code in (401, 403):
        return status.HTTP_500_INTERNAL_SERVER_ERROR, message
    return status.HTTP_503_SERVICE_UNAVAILABLE, message


async def input_validation_handler(request: Request, exc: InputValidationError) -> JSONResponse:
    logger.warning("Rejected request (%s): %s", exc.code, exc.message)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=_body(exc.message, exc.code, details=exc.details))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"loc": [str(part) for part in error.get("loc", ())], "msg": error.get("msg")}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_body("Invalid request body", "INVALID_REQUEST", details={"errors": errors}),
    )


async def authentication_handler(request: Request, exc: AuthenticationError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content=_body(exc.message, exc.code))


async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content=_body(exc.message, exc.code, details=exc.details))


async def external_service_handler(request: Request, exc: ExternalServiceError) -> JSONResponse:
    status_code, message = translate_upstream_error(exc)
    logger.error("Reasoning service failure (upstream status=%s, retryable=%s)", exc.status_code, exc.retryable)
    return JSONResponse(status_code=status_code, content=_body(message, exc.code, retryable=exc.retryable))


async def guardrail_handler(request: Request, exc: GuardrailViolationError) -> JSONResponse:
    logger.error("Guardrail violation (%s): %s", exc.code, exc.message, extra={"details": exc.details})
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content=_body(exc.message, exc.code, details=exc.details, retryable=False),
    )


async def scheduling_error_handler(request: Request, exc: SchedulingError) -> JSONResponse:
    logger.error("Unhandled scheduling error (%s): %s", exc.code, exc.message)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_body("An unexpected error occurred.", "INTERNAL_ERROR", retryable=True),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s", request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_body("An unexpected error occurred.", "INTERNAL_ERROR", retryable=True),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(InputValidationError, input_validation_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(AuthenticationError, authentication_handler)
    app.add_exception_handler(NotFoundError, not_found_handler)
    app.add_exception_handler(ExternalServiceError, external_service_handler)
    app.add_exception_handler(GuardrailViolationError, guardrail_handler)
    app.add_exception_handler(SchedulingError, scheduling_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
