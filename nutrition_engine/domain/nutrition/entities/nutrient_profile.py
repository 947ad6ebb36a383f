"""NutrientProfile entity - per-100g nutritional data for a food item."""

from dataclasses import dataclass
from typing import Literal, Optional

NutrientSource = Literal["USDA", "OPENFOODFACTS", "ESTIMATE"]


@dataclass(frozen=True)
class NutrientProfile:
    """
    Entity: Nutrient values for a reference quantity of a food.

    Sourced from the authoritative database (USDA), the secondary source
    (OpenFoodFacts) or a static estimate. Nutrition databases always report
    per 100g, so quantity_g is 100.0 unless the profile has been scaled.

    Immutable once fetched: cached profiles are shared across requests.
    """

    # Macronutrients (required)
    calories: float  # kcal
    protein: float  # grams
    carbs: float  # grams
    fat: float  # grams

    # Micronutrients (optional)
    fiber: Optional[float] = None  # grams
    sugar: Optional[float] = None  # grams
    sodium: Optional[float] = None  # milligrams

    # Metadata
    source: NutrientSource = "USDA"
    quantity_g: float = 100.0  # Reference quantity
    description: Optional[str] = None  # Matched database entry

    def __post_init__(self) -> None:
        """Validate invariants after initialization."""
        if self.quantity_g <= 0:
            raise ValueError(f"Quantity must be positive, got {self.quantity_g}")

        for field_name in ("calories", "protein", "carbs", "fat"):
            value = getattr(self, field_name)
            if value < 0:
                raise ValueError(f"{field_name.capitalize()} cannot be negative, got {value}")

    def scale_to_quantity(self, target_g: float) -> "NutrientProfile":
        """
        Scale nutrients to target quantity.

        Args:
            target_g: Target quantity in grams

        Returns:
            New NutrientProfile scaled to target quantity (unrounded)

        Raises:
            ValueError: If target_g is not positive

        Example:
            >>> profile = NutrientProfile(calories=143, protein=12.6, carbs=0.7, fat=9.5)
            >>> profile.scale_to_quantity(50).calories
            71.5
        """
        if target_g <= 0:
            raise ValueError(f"Target quantity must be positive, got {target_g}")

        factor = target_g / self.quantity_g

        return NutrientProfile(
            calories=self.calories * factor,
            protein=self.protein * factor,
            carbs=self.carbs * factor,
            fat=self.fat * factor,
            fiber=self.fiber * factor if self.fiber is not None else None,
            sugar=self.sugar * factor if self.sugar is not None else None,
            sodium=self.sodium * factor if self.sodium is not None else None,
            source=self.source,
            quantity_g=target_g,
            description=self.description,
        )


# Conservative per-100g estimate used when no database has the food.
STATIC_ESTIMATE = NutrientProfile(
    calories=150,
    protein=8.0,
    carbs=15.0,
    fat=6.0,
    source="ESTIMATE",
    description="Generic food estimate",
)
