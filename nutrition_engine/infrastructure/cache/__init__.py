"""Cache implementations."""

from .analysis_cache import CacheStats, InMemoryAnalysisCache
from .ttl_cache import TTLCache

__all__ = ["CacheStats", "InMemoryAnalysisCache", "TTLCache"]
