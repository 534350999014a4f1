from __future__ import annotations

from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from app.api.deps import get_bus, get_reasoning
from app.core.config import settings
from app.core.errors import ExternalServiceError
from app.db.deps import get_db
from app.db.models.agent_decision import AgentDecision
from app.db.models.agent_event import AgentEvent
from app.db.models.schedule_alert import ScheduleAlert
from app.db.models.user import User
from app.main import app
from app.services.event_bus import EventBus, default_subscriptions
from app.services.event_bus.dispatch import HttpSubscriberDispatcher
from factories import FakeReasoning, RecordingDispatcher, at, three_strategies

TOKEN = "svc-token"
AUTH = {"Authorization": f"Bearer {TOKEN}"}


@pytest.fixture()
def api(session_factory, monkeypatch):
    monkeypatch.setattr(settings, "service_token", TOKEN)

    class _Api:
        reasoning = FakeReasoning({})
        dispatcher = RecordingDispatcher()
        sessions = session_factory

    bus = EventBus(default_subscriptions(), _Api.dispatcher)

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_reasoning] = lambda: _Api.reasoning
    app.dependency_overrides[get_bus] = lambda: bus
    with TestClient(app) as test_client:
        _Api.client = test_client
        yield _Api
    app.dependency_overrides.clear()


def _seed_alert(session_factory, user_id, block_ids) -> str:
    with session_factory() as db:
        alert = ScheduleAlert(
            user_id=user_id,
            type="conflict",
            severity=8,
            message="Team sync overlaps deep work",
            related_block_ids=[str(block_id) for block_id in block_ids],
        )
        db.add(alert)
        db.commit()
        return str(alert.id)


def _negotiate(api, user_id, alert_id):
    return api.client.post(
        "/negotiate-schedule",
        json={"alert_id": alert_id, "user_id": str(user_id), "timezone": "UTC"},
        headers=AUTH,
    )


def test_health_endpoint_returns_ok(api) -> None:
    response = api.client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert response.headers.get("X-Request-Id")


def test_request_id_echoed_from_header(api) -> None:
    response = api.client.get("/health", headers={"X-Request-Id": "sweep-abc123"})

    assert response.headers.get("X-Request-Id") == "sweep-abc123"


def test_agent_endpoints_require_bearer(api) -> None:
    missing = api.client.post("/guardian-check", json={})
    wrong = api.client.post("/guardian-check", json={}, headers={"Authorization": "Bearer nope"})

    assert missing.status_code == 401
    assert missing.json()["code"] == "UNAUTHORIZED"
    assert missing.json()["success"] is False
    assert wrong.status_code == 401


def test_guardian_missing_fields_is_400(api) -> None:
    response = api.client.post("/guardian-check", json={"user_id": str(uuid4())}, headers=AUTH)

    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "MISSING_REQUIRED_FIELDS"
    assert body["details"]["missing"] == ["event_id"]


def test_malformed_body_is_400(api) -> None:
    response = api.client.post("/guardian-check", json={"event_id": "nope", "user_id": "nope"}, headers=AUTH)

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_REQUEST"


def test_guardian_webhook_creates_alert(api, seed) -> None:
    user_id = seed.user(timezone="UTC")
    seed.block(user_id, at(9, 30), at(10, 30))
    event_id = seed.event(user_id, at(9), at(10))
    api.reasoning = FakeReasoning(
        {"type": "conflict", "severity": 9, "message": "Team sync eats your focus block.", "recommendedAction": "reschedule_event"}
    )

    response = api.client.post(
        "/guardian-check",
        json={
            "type": "INSERT",
            "table": "calendar_events",
            "record": {"id": str(event_id), "user_id": str(user_id), "title": "Team sync"},
        },
        headers=AUTH,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["status"] == "conflict"
    assert body["conflicts"] == 1
    assert body["alert"]["severity"] == 9
    assert body["alert"]["recommendedAction"] == "reschedule_event"
    with api.sessions() as db:
        assert db.query(AgentEvent).filter(AgentEvent.event_type == "schedule.conflict.detected").count() == 1


def test_negotiate_returns_three_strategies(api, seed) -> None:
    user_id = seed.user(timezone="UTC")
    block_id = seed.block(user_id, at(9), at(11))
    alert_id = _seed_alert(api.sessions, user_id, [block_id])
    api.reasoning = FakeReasoning(three_strategies(block_id))

    response = _negotiate(api, user_id, alert_id)

    assert response.status_code == 200
    strategies = response.json()["strategies"]
    assert [strategy["id"] for strategy in strategies] == ["strategy_move", "strategy_shorten", "strategy_drop"]
    assert strategies[0]["operations"][0]["targetBlockId"] == str(block_id)


def test_negotiate_rate_limited_after_retries_is_429(api, seed) -> None:
    user_id = seed.user(timezone="UTC")
    block_id = seed.block(user_id, at(9), at(10))
    alert_id = _seed_alert(api.sessions, user_id, [block_id])
    api.reasoning = FakeReasoning(ExternalServiceError.from_status(429, "rate limited"))

    response = _negotiate(api, user_id, alert_id)

    assert response.status_code == 429
    body = response.json()
    assert body["code"] == "LLM_SERVICE_ERROR"
    assert body["retryable"] is True
    assert len(api.reasoning.calls) == settings.reasoning_max_attempts


def test_negotiate_upstream_auth_failure_is_500_without_retry(api, seed) -> None:
    user_id = seed.user(timezone="UTC")
    block_id = seed.block(user_id, at(9), at(10))
    alert_id = _seed_alert(api.sessions, user_id, [block_id])
    api.reasoning = FakeReasoning(ExternalServiceError.from_status(401, "bad key"))

    response = _negotiate(api, user_id, alert_id)

    assert response.status_code == 500
    assert response.json()["retryable"] is False
    assert len(api.reasoning.calls) == 1


def test_negotiate_upstream_outage_is_503(api, seed) -> None:
    user_id = seed.user(timezone="UTC")
    block_id = seed.block(user_id, at(9), at(10))
    alert_id = _seed_alert(api.sessions, user_id, [block_id])
    api.reasoning = FakeReasoning(ExternalServiceError.from_status(503, "overloaded"))

    response = _negotiate(api, user_id, alert_id)

    assert response.status_code == 503
    assert response.json()["retryable"] is True


def test_negotiate_wrong_strategy_count_is_502(api, seed) -> None:
    user_id = seed.user(timezone="UTC")
    block_id = seed.block(user_id, at(9), at(10))
    alert_id = _seed_alert(api.sessions, user_id, [block_id])
    payload = three_strategies(block_id)
    payload["strategies"].pop()
    api.reasoning = FakeReasoning(payload)

    response = _negotiate(api, user_id, alert_id)

    assert response.status_code == 502
    body = response.json()
    assert body["code"] == "INVALID_ARRAY_LENGTH"
    assert body["retryable"] is False
    assert body["details"] == {"expected": 3, "received": 2}


def test_negotiate_unknown_alert_is_404(api, seed) -> None:
    user_id = seed.user(timezone="UTC")

    response = _negotiate(api, user_id, str(uuid4()))

    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"


def test_orchestrator_unknown_trigger_is_400(api, seed) -> None:
    user_id = seed.user()

    response = api.client.post(
        "/agent-orchestrator",
        json={"trigger": "meteor_strike", "context": {"user_id": str(user_id)}},
        headers=AUTH,
    )

    assert response.status_code == 400
    assert response.json()["code"] == "UNKNOWN_TRIGGER"


def test_orchestrator_conflict_without_auto_resolve(api, seed) -> None:
    user_id = seed.user(timezone="UTC", auto_resolve_conflicts=False)
    alert_id = _seed_alert(api.sessions, user_id, [])

    response = api.client.post(
        "/agent-orchestrator",
        json={"trigger": "conflict_detected", "context": {"user_id": str(user_id), "alert_id": alert_id}},
        headers=AUTH,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["actions_taken"] == ["created_suggestion"]
    assert body["details"]["reason"] == "auto_resolve_disabled"

def test_orchestrator_acknowledges_unknown_or_missing_alert(api, seed) -> None:
    user_id = seed.user(timezone="UTC", auto_resolve_conflicts=True)

    unknown = api.client.post(
        "/agent-orchestrator",
        json={"trigger": "conflict_detected", "context": {"user_id": str(user_id), "alert_id": str(uuid4())}},
        headers=AUTH,
    )
    missing = api.client.post(
        "/agent-orchestrator",
        json={"trigger": "conflict_detected", "context": {"user_id": str(user_id)}},
        headers=AUTH,
    )

    assert unknown.status_code == 200
    assert unknown.json()["actions_taken"] == ["skipped_unknown_alert"]
    assert missing.status_code == 200
    assert missing.json()["actions_taken"] == ["skipped_missing_alert"]


def test_sweep_over_http_drains_events_for_unknown_alerts(api, seed) -> None:
    user_id = seed.user(timezone="UTC", auto_resolve_conflicts=True)
    dispatcher = HttpSubscriberDispatcher(base_url="http://testserver", service_token=TOKEN, client=api.client)
    bus = EventBus(default_subscriptions(), dispatcher, batch_size=2)
    with api.sessions() as db:
        for _ in range(2):
            bus.publish(
                db,
                user_id=user_id,
                event_type="schedule.conflict.detected",
                source="guardian",
                payload={"alert_id": str(uuid4())},
            )
        later = bus.publish(db, user_id=user_id, event_type="schedule.block.created", source="planner")

    for _ in range(2):
        with api.sessions() as db:
            bus.process_events(db)

    with api.sessions() as db:
        events = db.query(AgentEvent).all()
        assert all(event.fully_processed for event in events)
        assert db.get(AgentEvent, later).processed_by == ["all"]


def test_undo_without_resolution_is_404(api, seed) -> None:
    user_id = seed.user()
    alert_id = _seed_alert(api.sessions, user_id, [])

    response = api.client.post(
        "/agent-orchestrator/undo",
        json={"alert_id": alert_id, "user_id": str(user_id)},
        headers=AUTH,
    )

    assert response.status_code == 404
    assert response.json()["code"] == "NOTHING_TO_UNDO"


def test_publish_and_sweep(api) -> None:
    user_id = uuid4()

    rejected = api.client.post(
        "/agent-events",
        json={"user_id": str(user_id), "event_type": "calendar.event.exploded", "source": "sync"},
        headers=AUTH,
    )
    published = api.client.post(
        "/agent-events",
        json={
            "user_id": str(user_id),
            "event_type": "schedule.conflict.detected",
            "source": "sync",
            "payload": {"alert_id": str(uuid4())},
        },
        headers=AUTH,
    )
    swept = api.client.post("/agent-event-processor", headers=AUTH)

    assert rejected.status_code == 400
    assert rejected.json()["code"] == "UNKNOWN_EVENT_TYPE"
    assert published.status_code == 200
    event_id = published.json()["event_id"]
    assert swept.json() == {"success": True, "processed": 1}
    assert [str(call[1]) for call in api.dispatcher.calls] == [event_id]
    with api.sessions() as db:
        assert db.get(User, user_id) is not None


def test_record_agent_decision_publishes_event(api) -> None:
    user_id = uuid4()

    missing = api.client.post("/record-agent-decision", json={"user_id": str(user_id)}, headers=AUTH)
    recorded = api.client.post(
        "/record-agent-decision",
        json={
            "user_id": str(user_id),
            "agent_name": "negotiator",
            "decision_type": "strategy_chosen",
            "options_presented": ["a", "b", "c"],
            "option_chosen": "b",
        },
        headers=AUTH,
    )

    assert missing.status_code == 400
    assert sorted(missing.json()["details"]["missing"]) == ["agent_name", "decision_type"]
    assert recorded.status_code == 200
    with api.sessions() as db:
        decision = db.query(AgentDecision).one()
        assert decision.option_chosen == "b"
        assert db.query(AgentEvent).filter(AgentEvent.event_type == "decision.recorded").count() == 1


def test_unexpected_failure_is_500(session_factory, monkeypatch) -> None:
    monkeypatch.setattr(settings, "service_token", TOKEN)

    def broken_bus():
        raise RuntimeError("bus offline")

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_bus] = broken_bus
    try:
        client = TestClient(app, raise_server_exceptions=False)
        response = client.post("/agent-event-processor", headers=AUTH)
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 500
    assert response.json() == {
        "success": False,
        "error": "An unexpected error occurred.",
        "code": "INTERNAL_ERROR",
        "retryable": True,
    }
