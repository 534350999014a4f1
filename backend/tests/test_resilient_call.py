from __future__ import annotations

from types import SimpleNamespace

import httpx
import openai
import pytest

from app.core.errors import ExternalServiceError, GuardrailViolationError
from app.services.reasoning import RetryPolicy, call_reasoning, parse_model_json
from app.services.reasoning.base import GenerationConfig, UnconfiguredReasoningService
from app.services.reasoning.openai_provider import OpenAIReasoningService
from factories import FakeReasoning

POLICY = RetryPolicy(max_attempts=3, base_delay=0.5, max_delay=5.0, timeout=30.0)


def _rate_limited() -> ExternalServiceError:
    return ExternalServiceError.from_status(429, "rate limited")


def test_succeeds_after_transient_failures() -> None:
    service = FakeReasoning(_rate_limited(), ExternalServiceError.from_status(503, "down"), '{"ok": true}')
    delays: list[float] = []

    response = call_reasoning(service, model="m", prompt="p", policy=POLICY, agent_name="test", sleep=delays.append)

    assert response.text == '{"ok": true}'
    assert len(service.calls) == 3
    assert delays == [0.5, 1.0]


def test_rate_limit_three_times_surfaces_retryable_429() -> None:
    service = FakeReasoning(_rate_limited())
    delays: list[float] = []

    with pytest.raises(ExternalServiceError) as excinfo:
        call_reasoning(service, model="m", prompt="p", policy=POLICY, sleep=delays.append)

    assert excinfo.value.status_code == 429
    assert excinfo.value.retryable is True
    assert len(service.calls) == 3
    assert delays == [0.5, 1.0]


def test_non_retryable_error_short_circuits() -> None:
    service = FakeReasoning(ExternalServiceError.from_status(400, "bad prompt"))
    delays: list[float] = []

    with pytest.raises(ExternalServiceError) as excinfo:
        call_reasoning(service, model="m", prompt="p", policy=POLICY, sleep=delays.append)

    assert excinfo.value.status_code == 400
    assert excinfo.value.retryable is False
    assert len(service.calls) == 1
    assert delays == []


def test_backoff_is_non_decreasing_and_capped() -> None:
    policy = RetryPolicy(max_attempts=6, base_delay=1.0, max_delay=4.0)

    delays = [policy.delay_after(attempt) for attempt in range(1, 6)]

    assert delays == [1.0, 2.0, 4.0, 4.0, 4.0]
    assert delays == sorted(delays)


def test_policy_timeout_is_passed_to_each_attempt() -> None:
    service = FakeReasoning('{"ok": true}')

    call_reasoning(service, model="m", prompt="p", policy=RetryPolicy(timeout=12.0), sleep=lambda _: None)

    assert service.calls[0]["config"].timeout_seconds == 12.0


def test_unconfigured_service_fails_fast() -> None:
    with pytest.raises(ExternalServiceError) as excinfo:
        call_reasoning(UnconfiguredReasoningService(), model="m", prompt="p", policy=POLICY, sleep=lambda _: None)

    assert excinfo.value.retryable is False


def test_parse_model_json_repairs_fenced_output() -> None:
    text = 'Here you go:\n```json\n{"type": "warning", "severity": 4}\n```'

    assert parse_model_json(text) == {"type": "warning", "severity": 4}


@pytest.mark.parametrize("text", ["no json here", "[1, 2, 3]", '{"unterminated": '])
def test_parse_model_json_rejects_non_objects(text) -> None:
    with pytest.raises(GuardrailViolationError) as excinfo:
        parse_model_json(text)

    assert excinfo.value.code == "INVALID_RESPONSE_SHAPE"


class _Completions:
    def __init__(self, outcome):
        self.outcome = outcome
        self.requests: list[dict] = []

    def create(self, **request):
        self.requests.append(request)
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


def _client(outcome):
    completions = _Completions(outcome)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


def _completion(content):
    message = SimpleNamespace(content=content)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)], model="gpt-test")


def test_openai_provider_requests_json_and_returns_text() -> None:
    client, completions = _client(_completion('{"a": 1}'))
    service = OpenAIReasoningService("key", client=client)

    response = service.generate("gpt-test", "prompt", GenerationConfig(timeout_seconds=7.0))

    assert response.text == '{"a": 1}'
    assert completions.requests[0]["response_format"] == {"type": "json_object"}
    assert completions.requests[0]["timeout"] == 7.0


def test_openai_provider_maps_empty_body_to_retryable_error() -> None:
    client, _ = _client(_completion(""))
    service = OpenAIReasoningService("key", client=client)

    with pytest.raises(ExternalServiceError) as excinfo:
        service.generate("gpt-test", "prompt", GenerationConfig())

    assert excinfo.value.retryable is True


def test_openai_provider_maps_status_errors() -> None:
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    error = openai.RateLimitError("slow down", response=httpx.Response(429, request=request), body=None)
    client, _ = _client(error)
    service = OpenAIReasoningService("key", client=client)

    with pytest.raises(ExternalServiceError) as excinfo:
        service.generate("gpt-test", "prompt", GenerationConfig())

    assert excinfo.value.status_code == 429
    assert excinfo.value.retryable is True


def test_openai_provider_maps_timeouts() -> None:
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    client, _ = _client(openai.APITimeoutError(request=request))
    service = OpenAIReasoningService("key", client=client)

    with pytest.raises(ExternalServiceError) as excinfo:
        service.generate("gpt-test", "prompt", GenerationConfig())

    assert excinfo.value.status_code == 504
    assert excinfo.value.retryable is True
