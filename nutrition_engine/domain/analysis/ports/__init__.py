"""Analysis domain ports."""

from .analysis_backend import AnalysisBackend, AvailabilityState, ProviderStatus
from .analysis_cache import IAnalysisCache

__all__ = [
    "AnalysisBackend",
    "AvailabilityState",
    "ProviderStatus",
    "IAnalysisCache",
]
