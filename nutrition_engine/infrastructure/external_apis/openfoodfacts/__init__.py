"""OpenFoodFacts client."""

from .client import OpenFoodFactsClient

__all__ = ["OpenFoodFactsClient"]
