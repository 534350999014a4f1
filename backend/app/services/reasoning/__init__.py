"""Boundary around the external reasoning (LLM completion) service."""
from app.services.reasoning.base import GenerationConfig, ReasoningResponse, ReasoningService
from app.services.reasoning.factory import get_reasoning_service
from app.services.reasoning.parsing import parse_model_json
from app.services.reasoning.resilient_call import RetryPolicy, call_reasoning

__all__ = [
    "GenerationConfig",
    "ReasoningResponse",
    "ReasoningService",
    "RetryPolicy",
    "call_reasoning",
    "get_reasoning_service",
    "parse_model_json",
]
