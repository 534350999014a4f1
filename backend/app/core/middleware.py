"""Custom FastAPI middleware."""
from __future__ import annotations

import logging
from time import perf_counter
from typing import Callable
from uuid import uuid4

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.context import request_id_ctx_var

logger = logging.getLogger(__name__)

MAX_REQUEST_ID_LENGTH = 128
QUIET_PATHS = frozenset({"/health"})


def _resolve_request_id(request: Request) -> str:
    incoming = (request.headers.get("X-Request-Id") or "").strip()
    return incoming[:MAX_REQUEST_ID_LENGTH] or str(uuid4())


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Bind a correlation id to each request and log one line per agent call.

    Event-bus dispatches forward the sweep's correlation id in ``X-Request-Id``,
    so a subscriber's log lines join up with the sweep that triggered it. The
    id is echoed back on the response either way.
    """

    async def dispatch(self, request: Request, call_next: Callable[[Request], Response]) -> Response:  # type: ignore[override]
        request_id = _resolve_request_id(request)
        request.state.request_id = request_id
        token = request_id_ctx_var.set(request_id)
        started = perf_counter()

        try:
            response = await call_next(request)
            if request.url.path not in QUIET_PATHS:
                logger.info(
                    "%s %s -> %s (%.1fms)",
                    request.method,
                    request.url.path,
                    response.status_code,
                    (perf_counter() - started) * 1000,
                )
        finally:
            request_id_ctx_var.reset(token)

        response.headers["X-Request-Id"] = request_id
        return response
