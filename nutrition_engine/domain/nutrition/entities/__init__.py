"""Nutrition domain entities."""

from .nutrient_profile import STATIC_ESTIMATE, NutrientProfile, NutrientSource

__all__ = [
    "NutrientProfile",
    "NutrientSource",
    "STATIC_ESTIMATE",
]
