"""Opik trace spans around agent runs."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Dict, Iterator, Optional

from app.core.context import get_request_id
from app.observability.client import get_opik_client

if TYPE_CHECKING:  # pragma: no cover - typing helper
    from opik.api_objects.trace.trace_client import Trace
else:  # pragma: no cover - typing helper
    Trace = object  # type: ignore[assignment]

logger = logging.getLogger(__name__)


def _span_metadata(
    name: str,
    metadata: Optional[Dict[str, Any]],
    user_id: Optional[str],
    request_id: Optional[str],
) -> Dict[str, Any]:
    tags = dict(metadata or {})
    # "guardian.analyze" -> agent "guardian"
    tags.setdefault("agent", name.split(".", 1)[0])
    if user_id:
        tags.setdefault("user_id", str(user_id))
    correlation_id = request_id or get_request_id()
    if correlation_id:
        tags.setdefault("request_id", correlation_id)
    return tags


def _call_quietly(span: "Trace", name: str, method: str, **kwargs: Any) -> None:
    try:
        getattr(span, method)(**kwargs)
    except Exception:  # pragma: no cover - tracing must never break an agent run
        logger.debug("Opik %s failed for trace %s", method, name, exc_info=True)


def record_output(span: Optional["Trace"], **output: Any) -> None:
    """Attach an agent's result to its span; ignored when tracing is off."""
    if span is not None:
        _call_quietly(span, "output", "update", output=output)


@contextmanager
def trace(
    name: str,
    metadata: Optional[Dict[str, Any]] = None,
    user_id: Optional[str] = None,
    request_id: Optional[str] = None,
) -> Iterator[Optional["Trace"]]:
    """Open an Opik trace for one agent run; yields None when tracing is disabled.

    Spans carry the emitting agent and the current correlation id, so a sweep's
    traces line up with its log lines.
    """
    client = get_opik_client()
    span: Optional["Trace"] = None
    if client:
        try:
            span = client.trace(name=name, metadata=_span_metadata(name, metadata, user_id, request_id))
        except Exception as exc:  # pragma: no cover - SDK failure
            logger.debug("Unable to start Opik trace %s: %s", name, exc)

    if span is None:
        yield None
        return

    try:
        yield span
    except Exception as exc:
        _call_quietly(span, name, "update", error_info={"exception_type": type(exc).__name__, "message": str(exc)})
        raise
    finally:
        _call_quietly(span, name, "end")
