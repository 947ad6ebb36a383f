"""AI analysis backend port.

Backends (OpenAI, Gemini, stub) are interchangeable: each one names the
foods in an image or description and owns an availability state that the
provider orchestrator reads to decide whether to call it at all.
"""

import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Deque, Optional, Tuple

from nutrition_engine.domain.analysis.entities.analysis_input import TimeContext
from nutrition_engine.domain.analysis.entities.detected_food import (
    DetectionResult,
    NameDetectionResult,
)
from nutrition_engine.domain.shared.errors import BackendError

# Backends failing this share of their recent requests are skipped
MAX_ERROR_RATE = 0.8
ERROR_WINDOW_S = 300
OUTCOME_HISTORY = 50


@dataclass
class AvailabilityState:
    """
    Mutable health counters of one backend, kept for the process lifetime.

    A backend is available when it has no unexpired rate-limit error and
    its rolling error rate (outcomes of the last ERROR_WINDOW_S seconds,
    rate limits excluded) is below 80%. request_count / error_count are
    lifetime totals for status reporting.
    """

    request_count: int = 0
    error_count: int = 0
    last_error: Optional[BackendError] = None
    last_success: Optional[datetime] = None
    # (timestamp, succeeded) of recent requests
    outcomes: Deque[Tuple[float, bool]] = field(
        default_factory=lambda: deque(maxlen=OUTCOME_HISTORY)
    )

    def error_rate(self, now: Optional[float] = None) -> float:
        now = time.time() if now is None else now
        recent = [ok for ts, ok in self.outcomes if now - ts <= ERROR_WINDOW_S]
        if not recent:
            return 0.0
        return recent.count(False) / len(recent)

    def is_available(self, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        if self.last_error is not None and self.last_error.is_rate_limit:
            if now <= self.last_error.cooldown_until():
                return False
        return self.error_rate(now) < MAX_ERROR_RATE

    def record_success(self) -> None:
        self.request_count += 1
        self.last_success = datetime.now(timezone.utc)
        self.last_error = None
        self.outcomes.append((time.time(), True))

    def record_error(self, error: BackendError) -> None:
        self.request_count += 1
        self.error_count += 1
        self.last_error = error
        # Rate limits are governed by their cooldown alone
        if not error.is_rate_limit:
            self.outcomes.append((error.timestamp, False))

    def reset(self) -> None:
        """Forget errors; success history is kept."""
        self.error_count = 0
        self.last_error = None
        self.outcomes.clear()


@dataclass(frozen=True)
class ProviderStatus:
    """Snapshot of a backend's availability for health reporting."""

    name: str
    available: bool
    request_count: int
    error_count: int
    last_error: Optional[BackendError] = None
    last_success: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "available": self.available,
            "request_count": self.request_count,
            "error_count": self.error_count,
            "last_error": (
                {
                    "code": self.last_error.code,
                    "message": self.last_error.message,
                    "is_rate_limit": self.last_error.is_rate_limit,
                    "is_temporary": self.last_error.is_temporary,
                    "retry_after_seconds": self.last_error.retry_after_seconds,
                }
                if self.last_error
                else None
            ),
            "last_success": self.last_success.isoformat() if self.last_success else None,
        }


class AnalysisBackend(ABC):
    """
    AI analysis backend interface.

    Subclasses set ``name``, ``priority`` (lower is tried first) and
    ``max_retries``, and implement the three analysis operations. Every
    failure must surface as a BackendError; malformed model output is a
    BackendError too, never a partially filled result.

    Examples:
        >>> class EchoBackend(AnalysisBackend):
        ...     name = "echo"
        ...     priority = 9
        ...     max_retries = 1
        ...     async def analyze_image(self, image_bytes): ...
        ...     async def analyze_text(self, text, time_context=None): ...
        ...     async def detect_names(self, image_bytes): ...
    """

    name: str = "backend"
    priority: int = 100
    max_retries: int = 1

    def __init__(self) -> None:
        self.availability = AvailabilityState()

    def is_available(self) -> bool:
        return self.availability.is_available()

    def record_success(self) -> None:
        self.availability.record_success()

    def record_error(self, error: BackendError) -> None:
        self.availability.record_error(error)

    def status(self) -> ProviderStatus:
        state = self.availability
        return ProviderStatus(
            name=self.name,
            available=self.is_available(),
            request_count=state.request_count,
            error_count=state.error_count,
            last_error=state.last_error,
            last_success=state.last_success,
        )

    @abstractmethod
    async def analyze_image(self, image_bytes: bytes) -> DetectionResult:
        """Detect foods and rough portions in a photo.

        Raises:
            BackendError: On any SDK, network or parsing failure
        """
        pass

    @abstractmethod
    async def analyze_text(
        self, text: str, time_context: Optional[TimeContext] = None
    ) -> DetectionResult:
        """Detect foods and portions in a free-text meal description.

        Raises:
            BackendError: On any SDK, network or parsing failure
        """
        pass

    @abstractmethod
    async def detect_names(self, image_bytes: bytes) -> NameDetectionResult:
        """Name the foods in a photo without estimating portions.

        Raises:
            BackendError: On any SDK, network or parsing failure
        """
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, priority={self.priority})"
