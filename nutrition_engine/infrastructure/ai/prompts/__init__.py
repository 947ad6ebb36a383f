"""Prompts for AI backends."""

from .food_detection import (
    IMAGE_ANALYSIS_PROMPT,
    NAME_DETECTION_PROMPT,
    TEXT_ANALYSIS_PROMPT,
    build_text_prompt,
)

__all__ = [
    "IMAGE_ANALYSIS_PROMPT",
    "NAME_DETECTION_PROMPT",
    "TEXT_ANALYSIS_PROMPT",
    "build_text_prompt",
]
