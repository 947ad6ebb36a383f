"""Pydantic models for structured AI outputs.

These models define the schema both backends must answer with. OpenAI
receives them through beta.chat.completions.parse(), Gemini through
response_schema. Validation failures are malformed responses.
"""

from typing import List

from pydantic import BaseModel, Field

from nutrition_engine.domain.analysis.entities.detected_food import (
    GENERIC_ICON,
    DetectedFood,
    DetectionResult,
    NameDetectionResult,
)


class DetectedFoodItem(BaseModel):
    """
    Single food item named by the model.

    Maps to domain entity DetectedFood.
    """

    name: str = Field(
        ...,
        min_length=1,
        description="Generic food name in English (e.g., 'back bacon', 'fried egg')",
    )
    portion: str = Field(
        ...,
        description="Portion as text with quantity (e.g., '2 large eggs', '150g', '1 packet')",
    )
    icon: str = Field(
        default=GENERIC_ICON,
        description="Icon name (e.g., 'egg', 'bacon', 'bread-slice')",
    )


class FoodDetectionResponse(BaseModel):
    """Root model for image and text analysis."""

    confidence: int = Field(..., ge=0, le=100, description="Overall confidence 0-100")
    items: List[DetectedFoodItem] = Field(
        default_factory=list,
        description="Every distinct food item",
    )

    def to_domain(self) -> DetectionResult:
        return DetectionResult(
            confidence=self.confidence,
            items=tuple(
                DetectedFood(
                    name=item.name.strip(),
                    portion_text=item.portion.strip() or "1 serving",
                    icon=item.icon or GENERIC_ICON,
                )
                for item in self.items
                if item.name.strip()
            ),
        )


class FoodNamesResponse(BaseModel):
    """Root model for name-only detection."""

    confidence: int = Field(..., ge=0, le=100, description="Overall confidence 0-100")
    names: List[str] = Field(default_factory=list, description="Food names only")

    def to_domain(self) -> NameDetectionResult:
        return NameDetectionResult(
            confidence=self.confidence,
            names=tuple(name.strip() for name in self.names if name and name.strip()),
        )
