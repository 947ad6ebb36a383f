"""Environment-based wiring of backends, nutrition clients and cache."""

from .factory import (
    create_analysis_backend,
    create_analysis_backends,
    create_analysis_cache,
    create_analyze_meal_handler,
    get_analyze_meal_handler,
    reset_providers,
)

__all__ = [
    "create_analysis_backend",
    "create_analysis_backends",
    "create_analysis_cache",
    "create_analyze_meal_handler",
    "get_analyze_meal_handler",
    "reset_providers",
]
