"""Port (interface) for nutrition data providers.

This port defines the contract that external nutrition data providers
(USDA FoodData Central, OpenFoodFacts) must implement to be used by the
domain layer.
"""

from typing import Optional, Protocol

from nutrition_engine.domain.nutrition.entities.nutrient_profile import NutrientProfile


class INutritionProvider(Protocol):
    """
    Interface for nutrition data providers.

    This port follows the Dependency Inversion Principle:
    - Domain layer defines the interface (port)
    - Infrastructure layer implements it (adapter)

    Implementations:
    - USDAClient (authoritative)
    - OpenFoodFactsClient (secondary)
    """

    async def get_nutrients(
        self, food_name: str, quantity_g: float = 100.0
    ) -> Optional[NutrientProfile]:
        """
        Get nutrient profile for a food name.

        Args:
            food_name: Free-text food name as produced by an analysis backend
            quantity_g: Reference quantity in grams (typically 100.0)

        Returns:
            NutrientProfile if found, None if the food is not in the database

        Raises:
            NutritionLookupError: On network, API or configuration errors
        """
        ...
