"""Domain service for enriching detected foods with nutritional data.

This service implements a cascade strategy to find the best available
nutritional data for a detected food, then scales it to the portion.
"""

import logging
import math
from typing import Iterable, Optional, Tuple

from nutrition_engine.domain.analysis.entities.analysis_result import ResolvedFoodItem
from nutrition_engine.domain.analysis.entities.detected_food import DetectedFood
from nutrition_engine.domain.nutrition.entities.nutrient_profile import (
    STATIC_ESTIMATE,
    NutrientProfile,
)
from nutrition_engine.domain.nutrition.ports.nutrition_provider import INutritionProvider
from nutrition_engine.domain.nutrition.services.portion_normalizer import normalize

logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    """Round to the nearest whole number, halves away from zero (2.5 → 3)."""
    return int(math.floor(value + 0.5)) if value >= 0 else -int(math.floor(-value + 0.5))


class NutritionEnrichmentService:
    """
    Domain service for enriching detected foods with nutrients.

    Implements a cascading strategy to maximize data quality:
    1. USDA FoodData Central (authoritative)
    2. OpenFoodFacts (secondary, community data)
    3. Static estimate (always available)

    A provider that raises is treated like a miss: the cascade moves on and
    the failure is only logged.
    """

    def __init__(
        self,
        primary_provider: INutritionProvider,
        secondary_provider: Optional[INutritionProvider] = None,
        fallback_profile: NutrientProfile = STATIC_ESTIMATE,
    ):
        """
        Initialize enrichment service with cascade providers.

        Args:
            primary_provider: Authoritative provider (USDA)
            secondary_provider: Secondary provider (OpenFoodFacts), optional
            fallback_profile: Per-100g profile used when both miss
        """
        self._primary = primary_provider
        self._secondary = secondary_provider
        self._fallback = fallback_profile

    async def lookup_per_100g(self, label: str) -> NutrientProfile:
        """
        Find per-100g nutrients for a food label using the cascade.

        Args:
            label: Food name as detected (e.g., "back bacon", "banana")

        Returns:
            Per-100g NutrientProfile; source tells which tier answered
        """
        # Strategy 1: USDA (highest quality)
        try:
            profile = await self._primary.get_nutrients(label, 100.0)
            if profile:
                logger.info(
                    "USDA enrichment success",
                    extra={"label": label, "source": profile.source},
                )
                return profile
        except Exception as e:
            logger.warning(
                "USDA enrichment failed",
                extra={"label": label, "error": str(e)},
            )

        # Strategy 2: OpenFoodFacts
        if self._secondary is not None:
            try:
                profile = await self._secondary.get_nutrients(label, 100.0)
                if profile:
                    logger.info(
                        "OpenFoodFacts enrichment success",
                        extra={"label": label, "source": profile.source},
                    )
                    return profile
            except Exception as e:
                logger.warning(
                    "OpenFoodFacts enrichment failed",
                    extra={"label": label, "error": str(e)},
                )

        # Strategy 3: static estimate (always succeeds)
        logger.info(
            "Fallback enrichment",
            extra={"label": label, "reason": "USDA and OpenFoodFacts unavailable"},
        )
        return self._fallback

    async def enrich(self, label: str, quantity_g: float) -> NutrientProfile:
        """
        Enrich food label with nutrient data scaled to a quantity.

        Raises:
            ValueError: If quantity_g is not positive

        Example:
            >>> profile = await service.enrich("chicken breast", 150.0)
            >>> print(f"Source: {profile.source}")  # "USDA" if found
        """
        if quantity_g <= 0:
            raise ValueError(f"Quantity must be positive, got {quantity_g}")

        profile = await self.lookup_per_100g(label)
        return profile.scale_to_quantity(quantity_g)

    async def resolve_item(self, food: DetectedFood) -> ResolvedFoodItem:
        """
        Turn a detected food into a resolved item with whole-number macros.

        The portion text is converted to grams, the per-100g values are
        scaled by grams / 100 and each macro is rounded independently.

        Example:
            >>> item = await service.resolve_item(DetectedFood("egg", "2 large eggs"))
            >>> item.grams
            100.0
        """
        grams = normalize(food.portion_text, food.name)
        scaled = await self.enrich(food.name, grams)

        item = ResolvedFoodItem(
            name=food.name,
            portion_text=food.portion_text,
            calories=max(0, round_half_up(scaled.calories)),
            protein=max(0, round_half_up(scaled.protein)),
            carbs=max(0, round_half_up(scaled.carbs)),
            fat=max(0, round_half_up(scaled.fat)),
            icon=food.icon,
            grams=grams,
            source=scaled.source,
        )

        logger.debug(
            "Food resolved",
            extra={
                "food": food.name,
                "portion": food.portion_text,
                "grams": grams,
                "calories": item.calories,
                "source": item.source,
            },
        )
        return item

    def estimate_item(self, food: DetectedFood) -> ResolvedFoodItem:
        """100g of the static estimate, for a food that could not be resolved."""
        return ResolvedFoodItem(
            name=food.name,
            portion_text=food.portion_text,
            calories=round_half_up(self._fallback.calories),
            protein=round_half_up(self._fallback.protein),
            carbs=round_half_up(self._fallback.carbs),
            fat=round_half_up(self._fallback.fat),
            icon=food.icon,
            grams=self._fallback.quantity_g,
            source=self._fallback.source,
        )

    async def resolve_items(self, foods: Iterable[DetectedFood]) -> Tuple[ResolvedFoodItem, ...]:
        """
        Resolve every detected food, sequentially, preserving order.

        A food that fails to resolve becomes a static-estimate item; the
        other foods are unaffected.
        """
        # Sequential: USDA search is rate-limited per key
        resolved = []
        for food in foods:
            try:
                resolved.append(await self.resolve_item(food))
            except Exception as e:
                logger.warning(
                    "Food resolution failed, using estimate",
                    extra={"food": food.name, "portion": food.portion_text, "error": str(e)},
                )
                resolved.append(self.estimate_item(food))
        return tuple(resolved)
