"""Agent counters and latencies, shipped to Opik when enabled."""
from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from app.observability.client import get_opik_client

logger = logging.getLogger(__name__)


def log_metric(name: str, value: float | int, metadata: Optional[Dict[str, Any]] = None) -> None:
    client = get_opik_client()
    if not client:
        return

    payload: Dict[str, Any] = {"value": value}
    if metadata:
        payload.update(metadata)

    try:
        client.trace(name=f"metric:{name}", metadata=payload)
    except Exception as exc:  # pragma: no cover - metrics must never break an agent run
        logger.debug("Unable to record metric %s: %s", name, exc)


@contextmanager
def perf_timer(operation: str, metadata: Optional[Dict[str, Any]] = None) -> Iterator[Dict[str, Any]]:
    """Time a block and emit ``<operation>.duration_ms``.

    The yielded dict may be updated by the caller; its contents are attached to
    the metric alongside ``success``.
    """
    extra: Dict[str, Any] = dict(metadata or {})
    started = time.perf_counter()
    success = False
    try:
        yield extra
        success = True
    finally:
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        logger.info("%s finished in %sms (success=%s)", operation, elapsed_ms, success)
        log_metric(f"{operation}.duration_ms", elapsed_ms, metadata={**extra, "success": success})
