"""Bounded retry with exponential backoff around reasoning-service calls."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from app.core.config import settings
from app.core.errors import ExternalServiceError
from app.observability.metrics import log_metric
from app.services.reasoning.base import GenerationConfig, ReasoningResponse, ReasoningService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 5.0
    timeout: float = 30.0

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_attempts=settings.reasoning_max_attempts,
            base_delay=settings.reasoning_base_delay_seconds,
            max_delay=settings.reasoning_max_delay_seconds,
            timeout=settings.reasoning_timeout_seconds,
        )

    def delay_after(self, attempt: int) -> float:
        """Backoff before the attempt following ``attempt`` (1-indexed)."""
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)


def call_reasoning(
    service: ReasoningService,
    *,
    model: str,
    prompt: str,
    generation_config: Optional[GenerationConfig] = None,
    policy: Optional[RetryPolicy] = None,
    agent_name: str = "unknown",
    sleep: Callable[[float], None] = time.sleep,
) -> ReasoningResponse:
    """Call ``service.generate`` up to ``policy.max_attempts`` times.

    Retryable failures (429, 5xx, timeouts, empty bodies) back off and try
    again; anything else propagates immediately. After the last attempt the
    last error propagates unchanged.
    """
    policy = policy or RetryPolicy.from_settings()
    config = generation_config or GenerationConfig()
    if config.timeout_seconds is None:
        config = GenerationConfig(
            response_mime_type=config.response_mime_type,
            temperature=config.temperature,
            timeout_seconds=policy.timeout,
        )

    last_error: ExternalServiceError | None = None
    for attempt in range(1, policy.max_attempts + 1):
        logger.info(
            "LLM call attempt %s/%s",
            attempt,
            policy.max_attempts,
            extra={"agent": agent_name, "model": model, "prompt_length": len(prompt)},
        )
        try:
            response = service.generate(model, prompt, config)
        except ExternalServiceError as exc:
            last_error = exc
            if not exc.retryable:
                logger.error("Non-retryable LLM error (status=%s): %s", exc.status_code, exc.message, extra={"agent": agent_name})
                log_metric("reasoning.failure", 1, metadata={"agent": agent_name, "status": exc.status_code})
                raise
            if attempt == policy.max_attempts:
                logger.error(
                    "LLM retry limit exceeded after %s attempts (status=%s)",
                    attempt,
                    exc.status_code,
                    extra={"agent": agent_name},
                )
                break
            delay = policy.delay_after(attempt)
            logger.warning(
                "LLM call failed (status=%s), retrying in %.2fs",
                exc.status_code,
                delay,
                extra={"agent": agent_name, "attempt": attempt},
            )
            sleep(delay)
            continue

        log_metric("reasoning.attempts", attempt, metadata={"agent": agent_name, "model": model})
        logger.info("LLM call succeeded on attempt %s", attempt, extra={"agent": agent_name, "response_length": len(response.text)})
        return response

    log_metric("reasoning.failure", 1, metadata={"agent": agent_name, "status": last_error.status_code if last_error else None})
    if last_error is None:
        raise ExternalServiceError("Reasoning call made no attempts", status_code=503, retryable=True)
    raise last_error
