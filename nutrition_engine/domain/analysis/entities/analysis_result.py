"""AnalysisResult entities - the engine's final, unit-consistent answer."""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Tuple

from nutrition_engine.domain.analysis.entities.detected_food import GENERIC_ICON

MACRO_FIELDS = ("calories", "protein", "carbs", "fat")


@dataclass(frozen=True)
class ResolvedFoodItem:
    """
    Entity: one detected food with nutrition scaled to its portion.

    Macros are whole numbers and never negative. ``grams`` and ``source``
    record how the values were obtained.
    """

    name: str
    portion_text: str
    calories: int
    protein: int
    carbs: int
    fat: int
    icon: str = GENERIC_ICON
    grams: float = 0.0
    source: str = "ESTIMATE"

    def __post_init__(self) -> None:
        """Validate invariants after initialization."""
        for field_name in MACRO_FIELDS:
            value = getattr(self, field_name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise ValueError(f"{field_name.capitalize()} must be an integer, got {value!r}")
            if value < 0:
                raise ValueError(f"{field_name.capitalize()} cannot be negative, got {value}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "portion_text": self.portion_text,
            "calories": self.calories,
            "protein": self.protein,
            "carbs": self.carbs,
            "fat": self.fat,
            "icon": self.icon,
            "grams": self.grams,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResolvedFoodItem":
        return cls(
            name=data["name"],
            portion_text=data["portion_text"],
            calories=int(data["calories"]),
            protein=int(data["protein"]),
            carbs=int(data["carbs"]),
            fat=int(data["fat"]),
            icon=data.get("icon", GENERIC_ICON),
            grams=float(data.get("grams", 0.0)),
            source=data.get("source", "ESTIMATE"),
        )


@dataclass(frozen=True)
class Totals:
    """Value Object: summed macros of a meal."""

    calories: int = 0
    protein: int = 0
    carbs: int = 0
    fat: int = 0

    @classmethod
    def from_items(cls, items: Iterable[ResolvedFoodItem]) -> "Totals":
        """
        Sum macros over items.

        Example:
            >>> egg = ResolvedFoodItem("egg", "1 egg", 72, 6, 0, 5)
            >>> Totals.from_items([egg, egg]).calories
            144
        """
        items = list(items)
        return cls(
            calories=sum(item.calories for item in items),
            protein=sum(item.protein for item in items),
            carbs=sum(item.carbs for item in items),
            fat=sum(item.fat for item in items),
        )


@dataclass(frozen=True)
class AnalysisResult:
    """
    Entity: complete result of one resolution.

    Invariants:
    - confidence is between 0 and 100
    - totals always equal the sum of the items (derived, never stored)
    - degraded=True means every backend failed and the items are static
      fallback data; confidence is 0 in that case
    """

    confidence: int
    items: Tuple[ResolvedFoodItem, ...] = field(default_factory=tuple)
    degraded: bool = False
    provider: Optional[str] = None  # Backend that produced the detection

    def __post_init__(self) -> None:
        if not 0 <= self.confidence <= 100:
            raise ValueError(f"Confidence must be between 0 and 100, got {self.confidence}")
        if self.degraded and self.confidence != 0:
            raise ValueError("Degraded results must have confidence 0")

    @property
    def totals(self) -> Totals:
        return Totals.from_items(self.items)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for persistence (JSON-compatible)."""
        totals = self.totals
        return {
            "confidence": self.confidence,
            "degraded": self.degraded,
            "provider": self.provider,
            "totals": {name: getattr(totals, name) for name in MACRO_FIELDS},
            "items": [item.to_dict() for item in self.items],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalysisResult":
        """Rebuild from ``to_dict()`` output; stored totals are ignored and re-derived."""
        return cls(
            confidence=int(data["confidence"]),
            items=tuple(ResolvedFoodItem.from_dict(item) for item in data.get("items", [])),
            degraded=bool(data.get("degraded", False)),
            provider=data.get("provider"),
        )
