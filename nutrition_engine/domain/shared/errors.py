"""
Domain exceptions.

Typed exceptions for explicit error handling across the
nutrition-resolution engine.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Optional


# ═══════════════════════════════════════════════════════════
# BASE EXCEPTION
# ═══════════════════════════════════════════════════════════


class DomainError(Exception):
    """
    Base exception for all domain errors.

    All domain-specific exceptions inherit from this.
    Allows catching all domain errors with single except clause.
    """

    pass


class ConfigurationError(DomainError):
    """
    Engine wiring failed at startup.

    Raised when:
    - A backend is requested but its API key is missing
    - An unknown backend name appears in ANALYSIS_BACKENDS
    """

    pass


# ═══════════════════════════════════════════════════════════
# BACKEND (AI ANALYSIS) ERRORS
# ═══════════════════════════════════════════════════════════


# Error codes shared by every backend implementation
RATE_LIMIT = "RATE_LIMIT"
SERVER_ERROR = "SERVER_ERROR"
TIMEOUT = "TIMEOUT"
CONFIG_ERROR = "CONFIG_ERROR"
MALFORMED_RESPONSE = "MALFORMED_RESPONSE"
ANALYSIS_ERROR = "ANALYSIS_ERROR"

DEFAULT_RATE_LIMIT_COOLDOWN_S = 60


@dataclass(eq=False)
class BackendError(DomainError):
    """
    Classified failure of an AI analysis backend.

    Backends never let SDK exceptions escape: they translate them into a
    BackendError so the orchestrator can decide between retrying the same
    backend, moving to the next one, or giving up.

    Example:
        >>> raise BackendError(RATE_LIMIT, "OpenAI rate limit exceeded",
        ...                    is_rate_limit=True, retry_after_seconds=60)
    """

    code: str
    message: str
    is_rate_limit: bool = False
    is_temporary: bool = True
    retry_after_seconds: Optional[float] = None
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        super().__init__(f"{self.code}: {self.message}")

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"

    def cooldown_until(self) -> float:
        """Epoch seconds after which a rate-limited backend may be retried."""
        retry_after = self.retry_after_seconds or DEFAULT_RATE_LIMIT_COOLDOWN_S
        return self.timestamp + retry_after

    @classmethod
    def rate_limit(cls, message: str, retry_after_seconds: float = 60) -> "BackendError":
        return cls(
            RATE_LIMIT,
            message,
            is_rate_limit=True,
            is_temporary=True,
            retry_after_seconds=retry_after_seconds,
        )

    @classmethod
    def temporary(
        cls, code: str, message: str, retry_after_seconds: Optional[float] = None
    ) -> "BackendError":
        return cls(code, message, retry_after_seconds=retry_after_seconds)

    @classmethod
    def malformed(cls, message: str) -> "BackendError":
        """Response failed to parse; retried like any temporary error."""
        return cls(MALFORMED_RESPONSE, message, is_temporary=True)

    @classmethod
    def permanent(cls, code: str, message: str) -> "BackendError":
        return cls(code, message, is_temporary=False)


# ═══════════════════════════════════════════════════════════
# NUTRITION LOOKUP ERRORS
# ═══════════════════════════════════════════════════════════


class NutritionLookupError(DomainError):
    """
    Nutrition database lookup failed.

    Raised when:
    - USDA or OpenFoodFacts API is unreachable
    - API key is not configured
    - Response is not valid JSON

    A miss is not an error: clients return None for "not found".
    """

    pass


class NutritionRateLimitError(NutritionLookupError):
    """Nutrition database answered HTTP 429."""

    pass
