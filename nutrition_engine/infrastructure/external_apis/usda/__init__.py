"""USDA FoodData Central client."""

from .client import USDAClient

__all__ = ["USDAClient"]
