"""Reasoning service factory."""
from __future__ import annotations

import logging
from functools import lru_cache

from app.core.config import settings
from app.services.reasoning.base import ReasoningService, UnconfiguredReasoningService
from app.services.reasoning.openai_provider import OpenAIReasoningService

logger = logging.getLogger(__name__)


@lru_cache
def get_reasoning_service() -> ReasoningService:
    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY missing; reasoning calls will fail as non-retryable.")
        return UnconfiguredReasoningService()
    return OpenAIReasoningService(settings.openai_api_key, default_timeout=settings.reasoning_timeout_seconds)


def select_model(wants_pro: bool) -> str:
    return settings.reasoning_pro_model if wants_pro else settings.reasoning_model
