"""OpenAI analysis backend."""

from nutrition_engine.infrastructure.ai.openai.client import (
    OpenAIAnalysisBackend,
    classify_openai_error,
)

__all__ = [
    "OpenAIAnalysisBackend",
    "classify_openai_error",
]
