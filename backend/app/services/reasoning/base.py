"""Reasoning service interface."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass
class GenerationConfig:
    response_mime_type: str = "application/json"
    temperature: Optional[float] = None
    timeout_seconds: Optional[float] = None


@dataclass
class ReasoningResponse:
    text: str
    model: str


class ReasoningService:
    """Single request/response completion call.

    Implementations raise ``ExternalServiceError`` for transport and HTTP
    failures; they never retry on their own.
    """

    def generate(self, model: str, prompt: str, generation_config: GenerationConfig) -> ReasoningResponse:
        raise NotImplementedError


class UnconfiguredReasoningService(ReasoningService):
    """Used when no API key is configured; fails fast without retries."""

    def generate(self, model: str, prompt: str, generation_config: GenerationConfig) -> ReasoningResponse:
        from app.core.errors import ExternalServiceError

        raise ExternalServiceError("Reasoning service is not configured", status_code=503, retryable=False)
