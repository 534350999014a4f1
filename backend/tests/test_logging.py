from __future__ import annotations

import logging

from app.core.context import correlation_scope
from app.core.logging import VALIDATION, RequestIdFilter, SubsystemFilter, log_validation


def _record(name: str) -> logging.LogRecord:
    return logging.LogRecord(name, logging.INFO, __file__, 1, "msg", None, None)


def test_log_validation_uses_its_own_level(caplog) -> None:
    logger = logging.getLogger("app.services.guardian")

    with caplog.at_level(VALIDATION, logger="app.services.guardian"):
        log_validation(logger, "severity_clamped", "model score outside 0-10", received=14)

    record = caplog.records[0]
    assert record.levelname == "VALIDATION"
    assert record.getMessage() == "severity_clamped: model score outside 0-10"
    assert record.validation == {"received": 14}


def test_subsystem_filter_maps_module_to_agent() -> None:
    record = _record("app.services.event_bus.dispatch")
    SubsystemFilter().filter(record)
    assert record.subsystem == "event_bus"

    record = _record("app.services.orchestrator")
    SubsystemFilter().filter(record)
    assert record.subsystem == "orchestrator"


def test_request_id_filter_reads_correlation_scope() -> None:
    record = _record("app.services.event_bus.bus")

    RequestIdFilter().filter(record)
    assert record.request_id == "-"

    with correlation_scope("sweep") as correlation_id:
        RequestIdFilter().filter(record)
    assert record.request_id == correlation_id
