"""Analysis domain entities."""

from .analysis_input import AnalysisInput, AnalysisMode, TimeContext, normalize_text
from .analysis_result import AnalysisResult, ResolvedFoodItem, Totals
from .detected_food import (
    GENERIC_ICON,
    NAME_ONLY_PORTION,
    DetectedFood,
    DetectionResult,
    NameDetectionResult,
)

__all__ = [
    "AnalysisInput",
    "AnalysisMode",
    "TimeContext",
    "normalize_text",
    "AnalysisResult",
    "ResolvedFoodItem",
    "Totals",
    "DetectedFood",
    "DetectionResult",
    "NameDetectionResult",
    "GENERIC_ICON",
    "NAME_ONLY_PORTION",
]
