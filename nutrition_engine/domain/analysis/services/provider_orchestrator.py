"""Provider orchestrator - sequences AI backends with retry and failover.

The retry loop is an explicit state machine (see TRANSITIONS):

    NEXT_BACKEND  --found backend-->     TRY_BACKEND
    NEXT_BACKEND  --none left-->         EXHAUSTED
    TRY_BACKEND   --succeeded-->         DONE
    TRY_BACKEND   --rate limited-->      NEXT_BACKEND
    TRY_BACKEND   --attempts spent-->    NEXT_BACKEND
    TRY_BACKEND   --retryable failure--> BACKOFF
    BACKOFF       --slept-->             TRY_BACKEND

Rate limits abandon a backend immediately without sleeping. Other failures
are retried up to the backend's max_retries with exponential backoff
(1s, 2s, 4s, capped at 5s). When every backend is exhausted a static,
degraded result is returned: resolve() never raises.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from nutrition_engine.domain.analysis.entities.analysis_input import (
    AnalysisInput,
    AnalysisMode,
)
from nutrition_engine.domain.analysis.entities.analysis_result import (
    AnalysisResult,
    ResolvedFoodItem,
)
from nutrition_engine.domain.analysis.entities.detected_food import DetectionResult
from nutrition_engine.domain.analysis.ports.analysis_backend import (
    AnalysisBackend,
    ProviderStatus,
)
from nutrition_engine.domain.nutrition.services.enrichment_service import (
    NutritionEnrichmentService,
)
from nutrition_engine.domain.shared.errors import ANALYSIS_ERROR, BackendError

logger = logging.getLogger(__name__)

BACKOFF_BASE_MS = 1000
BACKOFF_CAP_MS = 5000

# Returned when every backend failed
FALLBACK_ITEMS: Tuple[ResolvedFoodItem, ...] = (
    ResolvedFoodItem(
        name="AI Analysis Unavailable",
        portion_text="All AI services temporarily unavailable",
        calories=250,
        protein=12,
        carbs=25,
        fat=10,
        icon="apple-alt",
        source="ESTIMATE",
    ),
)


class State(str, Enum):
    TRY_BACKEND = "try_backend"
    BACKOFF = "backoff"
    NEXT_BACKEND = "next_backend"
    EXHAUSTED = "exhausted"
    DONE = "done"


class Event(str, Enum):
    SUCCEEDED = "succeeded"
    RATE_LIMITED = "rate_limited"
    RETRYABLE_FAILURE = "retryable_failure"
    ATTEMPTS_SPENT = "attempts_spent"
    SLEPT = "slept"
    FOUND_BACKEND = "found_backend"
    NONE_LEFT = "none_left"


TRANSITIONS: Dict[Tuple[State, Event], State] = {
    (State.NEXT_BACKEND, Event.FOUND_BACKEND): State.TRY_BACKEND,
    (State.NEXT_BACKEND, Event.NONE_LEFT): State.EXHAUSTED,
    (State.TRY_BACKEND, Event.SUCCEEDED): State.DONE,
    (State.TRY_BACKEND, Event.RATE_LIMITED): State.NEXT_BACKEND,
    (State.TRY_BACKEND, Event.ATTEMPTS_SPENT): State.NEXT_BACKEND,
    (State.TRY_BACKEND, Event.RETRYABLE_FAILURE): State.BACKOFF,
    (State.BACKOFF, Event.SLEPT): State.TRY_BACKEND,
}

TERMINAL_STATES = (State.DONE, State.EXHAUSTED)


def backoff_delay_ms(attempt: int) -> int:
    """
    Delay before retrying after a failed attempt (1-based).

    Example:
        >>> [backoff_delay_ms(n) for n in (1, 2, 3, 4)]
        [1000, 2000, 4000, 5000]
    """
    return min(BACKOFF_BASE_MS * 2 ** (attempt - 1), BACKOFF_CAP_MS)


@dataclass
class _Run:
    """Per-call bookkeeping; never shared between calls."""

    request: AnalysisInput
    candidates: List[AnalysisBackend]
    index: int = -1
    attempt: int = 0
    detection: Optional[DetectionResult] = None
    errors: List[BackendError] = field(default_factory=list)

    @property
    def backend(self) -> AnalysisBackend:
        return self.candidates[self.index]


class ProviderOrchestrator:
    """
    Domain service: resolve an analysis request against AI backends.

    Backends are kept sorted by priority (stable for equal priorities).
    The orchestrator records every outcome on the backend it invoked and
    nowhere else.

    Example:
        >>> orchestrator = ProviderOrchestrator([openai, gemini], enrichment)
        >>> result = await orchestrator.resolve(AnalysisInput.from_text("2 eggs"))
        >>> result.degraded
        False
    """

    def __init__(
        self,
        backends: Iterable[AnalysisBackend],
        enrichment: NutritionEnrichmentService,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            backends: Analysis backends, any order
            enrichment: Per-food nutrition resolution
            sleep: Awaitable sleep in seconds (injectable for tests)
        """
        self._backends: List[AnalysisBackend] = sorted(backends, key=lambda b: b.priority)
        self._enrichment = enrichment
        self._sleep = sleep
        self._handlers: Dict[State, Callable[[_Run], Awaitable[Event]]] = {
            State.NEXT_BACKEND: self._next_backend,
            State.TRY_BACKEND: self._try_backend,
            State.BACKOFF: self._backoff,
        }

    @property
    def backends(self) -> List[AnalysisBackend]:
        return list(self._backends)

    # ---- Resolution ----

    async def resolve(self, request: AnalysisInput) -> AnalysisResult:
        """
        Detect foods with the best available backend and resolve nutrition.

        Never raises: total failure yields a degraded result with
        confidence 0.
        """
        candidates = [backend for backend in self._backends if backend.is_available()]
        run = _Run(request=request, candidates=candidates)

        logger.info(
            "Analysis started",
            extra={
                "mode": request.mode.value,
                "candidates": [backend.name for backend in candidates],
            },
        )

        state = State.NEXT_BACKEND
        while state not in TERMINAL_STATES:
            event = await self._handlers[state](run)
            state = TRANSITIONS[(state, event)]

        if state == State.EXHAUSTED or run.detection is None:
            logger.warning(
                "All analysis backends failed, returning fallback",
                extra={
                    "mode": request.mode.value,
                    "errors": [str(error) for error in run.errors],
                },
            )
            return self.fallback_result()

        items = await self._enrichment.resolve_items(run.detection.items)
        confidence = int(round(min(max(run.detection.confidence, 0), 100)))

        logger.info(
            "Analysis complete",
            extra={
                "provider": run.backend.name,
                "items_count": len(items),
                "confidence": confidence,
            },
        )
        return AnalysisResult(
            confidence=confidence,
            items=items,
            degraded=False,
            provider=run.backend.name,
        )

    @staticmethod
    def fallback_result() -> AnalysisResult:
        return AnalysisResult(confidence=0, items=FALLBACK_ITEMS, degraded=True)

    # ---- State handlers ----

    async def _next_backend(self, run: _Run) -> Event:
        run.index += 1
        run.attempt = 0
        while run.index < len(run.candidates):
            # Another call may have tripped this backend since the run started
            if run.backend.is_available():
                return Event.FOUND_BACKEND
            logger.info(
                "Skipping unavailable backend",
                extra={"backend": run.backend.name},
            )
            run.index += 1
        return Event.NONE_LEFT

    async def _try_backend(self, run: _Run) -> Event:
        backend = run.backend
        run.attempt += 1

        logger.info(
            "Attempting analysis",
            extra={
                "backend": backend.name,
                "attempt": run.attempt,
                "max_retries": backend.max_retries,
            },
        )

        try:
            run.detection = await self._invoke(backend, run.request)
        except Exception as e:
            error = self._classify(e)
            backend.record_error(error)
            run.errors.append(error)

            logger.warning(
                "Analysis attempt failed",
                extra={
                    "backend": backend.name,
                    "attempt": run.attempt,
                    "code": error.code,
                    "error": error.message,
                    "is_rate_limit": error.is_rate_limit,
                },
            )

            if error.is_rate_limit:
                return Event.RATE_LIMITED
            if not error.is_temporary or run.attempt >= backend.max_retries:
                return Event.ATTEMPTS_SPENT
            return Event.RETRYABLE_FAILURE

        backend.record_success()
        return Event.SUCCEEDED

    async def _backoff(self, run: _Run) -> Event:
        delay_ms = backoff_delay_ms(run.attempt)
        logger.debug(
            "Backing off before retry",
            extra={"backend": run.backend.name, "delay_ms": delay_ms},
        )
        await self._sleep(delay_ms / 1000)
        return Event.SLEPT

    @staticmethod
    async def _invoke(backend: AnalysisBackend, request: AnalysisInput) -> DetectionResult:
        if request.mode == AnalysisMode.IMAGE:
            return await backend.analyze_image(request.image_bytes or b"")
        if request.mode == AnalysisMode.TEXT:
            return await backend.analyze_text(request.text or "", request.time_context)
        names = await backend.detect_names(request.image_bytes or b"")
        return names.to_detection_result()

    @staticmethod
    def _classify(error: Exception) -> BackendError:
        if isinstance(error, BackendError):
            return error
        # Backends should translate their own errors; anything else is retryable
        return BackendError.temporary(ANALYSIS_ERROR, f"{type(error).__name__}: {error}")

    # ---- Registry and health ----

    def provider_statuses(self) -> List[ProviderStatus]:
        return [backend.status() for backend in self._backends]

    def system_health(self) -> Dict[str, object]:
        """Healthy when at least one backend is available."""
        statuses = self.provider_statuses()
        available = sum(1 for status in statuses if status.available)
        return {
            "healthy": available > 0,
            "available_providers": available,
            "total_providers": len(statuses),
            "statuses": [status.to_dict() for status in statuses],
        }

    def reset_providers(self) -> None:
        for backend in self._backends:
            backend.availability.reset()
        logger.info("All backends reset")

    def add_provider(self, backend: AnalysisBackend) -> None:
        self._backends = sorted([*self._backends, backend], key=lambda b: b.priority)
        logger.info("Backend added", extra={"backend": backend.name, "priority": backend.priority})

    def remove_provider(self, name: str) -> bool:
        remaining = [backend for backend in self._backends if backend.name != name]
        removed = len(remaining) != len(self._backends)
        self._backends = remaining
        if removed:
            logger.info("Backend removed", extra={"backend": name})
        return removed

    def recommended_provider(self) -> Optional[AnalysisBackend]:
        """Highest-priority available backend, if any."""
        for backend in self._backends:
            if backend.is_available():
                return backend
        return None
