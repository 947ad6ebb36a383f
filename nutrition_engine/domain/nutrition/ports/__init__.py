"""Nutrition domain ports."""

from .nutrition_provider import INutritionProvider

__all__ = ["INutritionProvider"]
