"""OpenAI chat-completions backed reasoning service."""
from __future__ import annotations

import logging

import openai

from app.core.errors import ExternalServiceError
from app.services.reasoning.base import GenerationConfig, ReasoningResponse, ReasoningService

logger = logging.getLogger(__name__)


class OpenAIReasoningService(ReasoningService):
    def __init__(self, api_key: str, *, default_timeout: float = 30.0, client: openai.OpenAI | None = None):
        # Retries are owned by call_reasoning; the SDK must not add its own.
        self._client = client or openai.OpenAI(api_key=api_key, max_retries=0, timeout=default_timeout)
        self._default_timeout = default_timeout

    def generate(self, model: str, prompt: str, generation_config: GenerationConfig) -> ReasoningResponse:
        request = {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            "timeout": generation_config.timeout_seconds or self._default_timeout,
        }
        if generation_config.response_mime_type == "application/json":
            request["response_format"] = {"type": "json_object"}
        if generation_config.temperature is not None:
            request["temperature"] = generation_config.temperature

        try:
            completion = self._client.chat.completions.create(**request)
        except openai.APITimeoutError as exc:
            raise ExternalServiceError("Reasoning service timed out", status_code=504, retryable=True) from exc
        except openai.APIConnectionError as exc:
            raise ExternalServiceError("Reasoning service unreachable", status_code=503, retryable=True) from exc
        except openai.APIStatusError as exc:
            raise ExternalServiceError.from_status(
                exc.status_code,
                f"Reasoning service returned HTTP {exc.status_code}",
                body=_truncate(getattr(exc, "message", "")),
            ) from exc

        choices = completion.choices or []
        text = (choices[0].message.content or "").strip() if choices else ""
        if not text:
            # Empty bodies are treated as a transient upstream glitch.
            raise ExternalServiceError("Invalid response structure from reasoning service", status_code=502, retryable=True)
        return ReasoningResponse(text=text, model=completion.model or model)


def _truncate(value: str, limit: int = 500) -> str:
    return value if len(value) <= limit else f"{value[:limit]}..."
