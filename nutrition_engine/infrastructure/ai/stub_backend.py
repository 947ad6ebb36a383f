"""Stub analysis backend for testing and keyless local runs.

Returns deterministic detections without calling any external API.
"""

import re
from typing import Optional

from nutrition_engine.domain.analysis.entities.analysis_input import TimeContext
from nutrition_engine.domain.analysis.entities.detected_food import (
    DetectedFood,
    DetectionResult,
    NameDetectionResult,
)
from nutrition_engine.domain.analysis.ports.analysis_backend import AnalysisBackend

# Every photo is a full English breakfast
STUB_IMAGE_ITEMS = (
    DetectedFood(name="fried egg", portion_text="2 large eggs", icon="egg"),
    DetectedFood(name="back bacon", portion_text="2 rashers back bacon", icon="bacon"),
    DetectedFood(name="white toast", portion_text="1 slice", icon="bread-slice"),
)

ICON_KEYWORDS = {
    "egg": "egg",
    "bacon": "bacon",
    "toast": "bread-slice",
    "bread": "bread-slice",
    "apple": "apple-alt",
    "banana": "apple-alt",
}

_SPLIT_RE = re.compile(r",|\band\b|\bwith\b|\+")


class StubAnalysisBackend(AnalysisBackend):
    """
    Stub implementation of AnalysisBackend.

    Text is split on commas / "and" / "with"; each part becomes one item
    whose name and portion are the part itself, which the portion
    normalizer and food matcher already know how to clean up.
    """

    name = "stub"
    priority = 99
    max_retries = 1

    async def analyze_image(self, image_bytes: bytes) -> DetectionResult:
        return DetectionResult(confidence=85, items=STUB_IMAGE_ITEMS)

    async def analyze_text(
        self, text: str, time_context: Optional[TimeContext] = None
    ) -> DetectionResult:
        parts = [part.strip() for part in _SPLIT_RE.split(text) if part.strip()]
        items = tuple(
            DetectedFood(name=part, portion_text=part, icon=self._icon_for(part))
            for part in parts
        )
        return DetectionResult(confidence=90, items=items)

    async def detect_names(self, image_bytes: bytes) -> NameDetectionResult:
        return NameDetectionResult(
            confidence=85,
            names=tuple(item.name for item in STUB_IMAGE_ITEMS),
        )

    @staticmethod
    def _icon_for(text: str) -> str:
        lowered = text.lower()
        for keyword, icon in ICON_KEYWORDS.items():
            if keyword in lowered:
                return icon
        return "utensils"
