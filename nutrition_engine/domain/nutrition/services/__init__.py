"""Nutrition domain services."""

from .enrichment_service import NutritionEnrichmentService, round_half_up
from .food_matching import preprocess_food_name, score_candidate, select_best_candidate
from .portion_normalizer import PortionEstimate, estimate_portion, normalize

__all__ = [
    "NutritionEnrichmentService",
    "round_half_up",
    "preprocess_food_name",
    "score_candidate",
    "select_best_candidate",
    "PortionEstimate",
    "estimate_portion",
    "normalize",
]
