"""Gemini analysis backend."""

from nutrition_engine.infrastructure.ai.gemini.client import (
    GeminiAnalysisBackend,
    classify_gemini_error,
)

__all__ = [
    "GeminiAnalysisBackend",
    "classify_gemini_error",
]
