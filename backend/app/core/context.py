"""Per-request (and per-sweep) correlation id."""
from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator
from uuid import uuid4

request_id_ctx_var: ContextVar[str | None] = ContextVar("request_id", default=None)


def get_request_id() -> str | None:
    """Return the current request id if available."""
    return request_id_ctx_var.get()


@contextmanager
def correlation_scope(prefix: str) -> Iterator[str]:
    """Bind a fresh correlation id for work that does not come from an HTTP request."""
    correlation_id = f"{prefix}-{uuid4().hex[:12]}"
    token = request_id_ctx_var.set(correlation_id)
    try:
        yield correlation_id
    finally:
        request_id_ctx_var.reset(token)
