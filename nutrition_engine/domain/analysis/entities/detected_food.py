"""Detection entities - raw output of an AI analysis backend.

Backends only name foods and guess portions; nutrition values are resolved
afterwards against the nutrient databases.
"""

from dataclasses import dataclass, field
from typing import Tuple

GENERIC_ICON = "utensils"
NAME_ONLY_PORTION = "1 serving"


@dataclass(frozen=True)
class DetectedFood:
    """
    Entity: one food named by a backend.

    Example:
        DetectedFood(name="fried egg", portion_text="2 large eggs", icon="egg")
    """

    name: str
    portion_text: str = NAME_ONLY_PORTION
    icon: str = GENERIC_ICON

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValueError("Detected food name cannot be empty")


def _check_confidence(confidence: float) -> None:
    if not 0 <= confidence <= 100:
        raise ValueError(f"Confidence must be between 0 and 100, got {confidence}")


@dataclass(frozen=True)
class DetectionResult:
    """Entity: foods detected in one image or description."""

    confidence: float  # 0-100
    items: Tuple[DetectedFood, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        _check_confidence(self.confidence)


@dataclass(frozen=True)
class NameDetectionResult:
    """Entity: food names only, without portions (name-only mode)."""

    confidence: float  # 0-100
    names: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        _check_confidence(self.confidence)

    def to_detection_result(self) -> DetectionResult:
        """
        Promote names to detected foods with a one-serving portion.

        Example:
            >>> NameDetectionResult(80, ("apple",)).to_detection_result().items[0].portion_text
            '1 serving'
        """
        items = tuple(
            DetectedFood(name=name.strip(), portion_text=NAME_ONLY_PORTION, icon=GENERIC_ICON)
            for name in self.names
            if name and name.strip()
        )
        return DetectionResult(confidence=self.confidence, items=items)
