"""
Analysis cache port.

Memoizes complete analysis results by request fingerprint so repeated
photos or descriptions never reach an AI backend twice.
"""

from typing import Optional, Protocol

from nutrition_engine.domain.analysis.entities.analysis_result import AnalysisResult


class IAnalysisCache(Protocol):
    """Port for analysis result caching.

    Implementations own expiry and size bounds. Callers treat store
    failures as non-fatal.
    """

    async def get(self, fingerprint: str) -> Optional[AnalysisResult]:
        """Get a cached result.

        Args:
            fingerprint: Request fingerprint (see AnalysisInput.fingerprint)

        Returns:
            The cached result if present and not expired, None otherwise
        """
        ...

    async def set(self, fingerprint: str, result: AnalysisResult) -> None:
        """Store a result under a fingerprint (last write wins)."""
        ...
