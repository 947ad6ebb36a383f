"""Unit tests for ProviderOrchestrator.

Tests failover order, retry/backoff, rate-limit short-circuit, exhaustion
fallback and the provider registry, with fake backends and a recorded
sleep (no real waiting).
"""

from typing import Any, List, Optional

import pytest

from nutrition_engine.domain.analysis.entities import (
    AnalysisInput,
    DetectedFood,
    DetectionResult,
    NameDetectionResult,
    TimeContext,
)
from nutrition_engine.domain.analysis.ports.analysis_backend import AnalysisBackend
from nutrition_engine.domain.analysis.services import ProviderOrchestrator, backoff_delay_ms
from nutrition_engine.domain.nutrition.entities import NutrientProfile
from nutrition_engine.domain.nutrition.services import NutritionEnrichmentService
from nutrition_engine.domain.shared.errors import (
    CONFIG_ERROR,
    SERVER_ERROR,
    BackendError,
)

EGG_PROFILE = NutrientProfile(calories=143, protein=12.6, carbs=0.7, fat=9.5, source="USDA")

BREAKFAST = DetectionResult(
    confidence=87,
    items=(
        DetectedFood(name="egg", portion_text="2 large eggs", icon="egg"),
        DetectedFood(name="egg", portion_text="1 large egg", icon="egg"),
    ),
)


class FakeBackend(AnalysisBackend):
    """Backend replaying scripted outcomes (exceptions are raised)."""

    def __init__(
        self,
        name: str,
        priority: int,
        outcomes: Optional[List[Any]] = None,
        max_retries: int = 2,
    ):
        super().__init__()
        self.name = name
        self.priority = priority
        self.max_retries = max_retries
        self._outcomes = list(outcomes or [])
        self.calls: List[str] = []
        self.time_contexts: List[Optional[TimeContext]] = []

    def _next(self, operation: str, default: Any) -> Any:
        self.calls.append(operation)
        outcome = self._outcomes.pop(0) if self._outcomes else default
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def analyze_image(self, image_bytes: bytes) -> DetectionResult:
        return self._next("analyze_image", BREAKFAST)

    async def analyze_text(
        self, text: str, time_context: Optional[TimeContext] = None
    ) -> DetectionResult:
        self.time_contexts.append(time_context)
        return self._next("analyze_text", BREAKFAST)

    async def detect_names(self, image_bytes: bytes) -> NameDetectionResult:
        return self._next("detect_names", NameDetectionResult(confidence=70, names=("egg",)))


class EggProvider:
    """Nutrition provider that knows only eggs."""

    async def get_nutrients(self, food_name: str, quantity_g: float = 100.0) -> Optional[NutrientProfile]:
        return EGG_PROFILE if "egg" in food_name else None


class SleepRecorder:
    """Records requested sleeps instead of sleeping."""

    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def _temporary() -> BackendError:
    return BackendError.temporary(SERVER_ERROR, "server hiccup")


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def enrichment() -> NutritionEnrichmentService:
    return NutritionEnrichmentService(EggProvider())


@pytest.fixture
def photo() -> AnalysisInput:
    return AnalysisInput.from_image(b"\xff\xd8fake-jpeg")


class TestBackoffDelay:
    """Test backoff schedule."""

    def test_schedule(self) -> None:
        assert [backoff_delay_ms(n) for n in (1, 2, 3, 4, 5)] == [1000, 2000, 4000, 5000, 5000]


class TestResolveSuccess:
    """Test successful resolutions."""

    @pytest.mark.asyncio
    async def test_first_backend_success(
        self, enrichment: NutritionEnrichmentService, sleep: SleepRecorder, photo: AnalysisInput
    ) -> None:
        backend = FakeBackend("gemini", priority=2)
        orchestrator = ProviderOrchestrator([backend], enrichment, sleep=sleep)

        result = await orchestrator.resolve(photo)

        assert not result.degraded
        assert result.confidence == 87
        assert result.provider == "gemini"
        assert backend.calls == ["analyze_image"]
        assert sleep.calls == []
        assert backend.availability.last_success is not None

    @pytest.mark.asyncio
    async def test_portion_scaling(
        self, enrichment: NutritionEnrichmentService, sleep: SleepRecorder, photo: AnalysisInput
    ) -> None:
        orchestrator = ProviderOrchestrator([FakeBackend("gemini", 2)], enrichment, sleep=sleep)

        result = await orchestrator.resolve(photo)

        two_eggs, one_egg = result.items
        assert two_eggs.grams == 100.0
        assert two_eggs.calories == 143
        assert one_egg.calories == 72

    @pytest.mark.asyncio
    async def test_totals_equal_sum_of_items(
        self, enrichment: NutritionEnrichmentService, sleep: SleepRecorder, photo: AnalysisInput
    ) -> None:
        orchestrator = ProviderOrchestrator([FakeBackend("gemini", 2)], enrichment, sleep=sleep)

        result = await orchestrator.resolve(photo)

        assert result.totals.calories == sum(item.calories for item in result.items)
        assert result.totals.protein == sum(item.protein for item in result.items)
        assert result.totals.carbs == sum(item.carbs for item in result.items)
        assert result.totals.fat == sum(item.fat for item in result.items)

    @pytest.mark.asyncio
    async def test_priority_order(
        self, enrichment: NutritionEnrichmentService, sleep: SleepRecorder, photo: AnalysisInput
    ) -> None:
        openai = FakeBackend("openai", priority=3)
        gemini = FakeBackend("gemini", priority=2)
        orchestrator = ProviderOrchestrator([openai, gemini], enrichment, sleep=sleep)

        result = await orchestrator.resolve(photo)

        assert result.provider == "gemini"
        assert openai.calls == []

    @pytest.mark.asyncio
    async def test_equal_priority_keeps_insertion_order(
        self, enrichment: NutritionEnrichmentService, sleep: SleepRecorder, photo: AnalysisInput
    ) -> None:
        first = FakeBackend("first", priority=1)
        second = FakeBackend("second", priority=1)
        orchestrator = ProviderOrchestrator([first, second], enrichment, sleep=sleep)

        result = await orchestrator.resolve(photo)

        assert result.provider == "first"

    @pytest.mark.asyncio
    async def test_text_passes_time_context(
        self, enrichment: NutritionEnrichmentService, sleep: SleepRecorder
    ) -> None:
        backend = FakeBackend("gemini", 2)
        orchestrator = ProviderOrchestrator([backend], enrichment, sleep=sleep)
        context = TimeContext(hour=8)

        await orchestrator.resolve(AnalysisInput.from_text("two eggs", context))

        assert backend.calls == ["analyze_text"]
        assert backend.time_contexts == [context]

    @pytest.mark.asyncio
    async def test_name_only_mode(
        self, enrichment: NutritionEnrichmentService, sleep: SleepRecorder
    ) -> None:
        backend = FakeBackend("gemini", 2)
        orchestrator = ProviderOrchestrator([backend], enrichment, sleep=sleep)

        result = await orchestrator.resolve(AnalysisInput.names_from_image(b"jpeg"))

        assert backend.calls == ["detect_names"]
        assert result.confidence == 70
        (item,) = result.items
        assert item.portion_text == "1 serving"
        assert item.grams == 150.0

    @pytest.mark.asyncio
    async def test_absurd_portion_does_not_raise(
        self, enrichment: NutritionEnrichmentService, sleep: SleepRecorder, photo: AnalysisInput
    ) -> None:
        detection = DetectionResult(
            confidence=60,
            items=(
                DetectedFood(name="rice", portion_text="9" * 400 + " pieces"),
                DetectedFood(name="egg", portion_text="1 large egg", icon="egg"),
            ),
        )
        backend = FakeBackend("gemini", 2, outcomes=[detection])
        orchestrator = ProviderOrchestrator([backend], enrichment, sleep=sleep)

        result = await orchestrator.resolve(photo)

        assert not result.degraded
        rice, egg = result.items
        assert rice.grams == 10_000.0
        assert rice.calories == 15_000
        assert egg.calories == 72


class TestRetryAndFailover:
    """Test retry, backoff and failover."""

    @pytest.mark.asyncio
    async def test_backoff_between_attempts(
        self, enrichment: NutritionEnrichmentService, sleep: SleepRecorder, photo: AnalysisInput
    ) -> None:
        """max_retries=2: one 1000 ms sleep between attempts 1 and 2."""
        backend = FakeBackend("gemini", 2, outcomes=[_temporary()], max_retries=2)
        orchestrator = ProviderOrchestrator([backend], enrichment, sleep=sleep)

        result = await orchestrator.resolve(photo)

        assert not result.degraded
        assert backend.calls == ["analyze_image", "analyze_image"]
        assert sleep.calls == [1.0]

    @pytest.mark.asyncio
    async def test_rate_limit_short_circuits(
        self, enrichment: NutritionEnrichmentService, sleep: SleepRecorder, photo: AnalysisInput
    ) -> None:
        """Rate-limited backend is abandoned at once: no retry, no sleep."""
        gemini = FakeBackend("gemini", 2, outcomes=[BackendError.rate_limit("quota", 120)])
        openai = FakeBackend("openai", 3)
        orchestrator = ProviderOrchestrator([gemini, openai], enrichment, sleep=sleep)

        result = await orchestrator.resolve(photo)

        assert result.provider == "openai"
        assert gemini.calls == ["analyze_image"]
        assert sleep.calls == []
        assert not gemini.is_available()

    @pytest.mark.asyncio
    async def test_permanent_error_advances_without_retry(
        self, enrichment: NutritionEnrichmentService, sleep: SleepRecorder, photo: AnalysisInput
    ) -> None:
        gemini = FakeBackend("gemini", 2, outcomes=[BackendError.permanent(CONFIG_ERROR, "no key")])
        openai = FakeBackend("openai", 3)
        orchestrator = ProviderOrchestrator([gemini, openai], enrichment, sleep=sleep)

        result = await orchestrator.resolve(photo)

        assert result.provider == "openai"
        assert gemini.calls == ["analyze_image"]
        assert sleep.calls == []

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_retried(
        self, enrichment: NutritionEnrichmentService, sleep: SleepRecorder, photo: AnalysisInput
    ) -> None:
        backend = FakeBackend("gemini", 2, outcomes=[RuntimeError("socket closed")])
        orchestrator = ProviderOrchestrator([backend], enrichment, sleep=sleep)

        result = await orchestrator.resolve(photo)

        assert not result.degraded
        assert len(backend.calls) == 2
        assert backend.availability.error_count == 1

    @pytest.mark.asyncio
    async def test_unavailable_backend_is_skipped(
        self, enrichment: NutritionEnrichmentService, sleep: SleepRecorder, photo: AnalysisInput
    ) -> None:
        gemini = FakeBackend("gemini", 2)
        gemini.record_error(BackendError.rate_limit("quota", 120))
        openai = FakeBackend("openai", 3)
        orchestrator = ProviderOrchestrator([gemini, openai], enrichment, sleep=sleep)

        result = await orchestrator.resolve(photo)

        assert result.provider == "openai"
        assert gemini.calls == []


class TestExhaustion:
    """Test the degraded fallback."""

    @pytest.mark.asyncio
    async def test_all_backends_fail(
        self, enrichment: NutritionEnrichmentService, sleep: SleepRecorder, photo: AnalysisInput
    ) -> None:
        gemini = FakeBackend("gemini", 2, outcomes=[_temporary(), _temporary()])
        openai = FakeBackend("openai", 3, outcomes=[_temporary(), _temporary()])
        orchestrator = ProviderOrchestrator([gemini, openai], enrichment, sleep=sleep)

        result = await orchestrator.resolve(photo)

        assert result.degraded
        assert result.confidence == 0
        assert result.provider is None
        assert result.items[0].name == "AI Analysis Unavailable"
        assert result.totals.calories == 250
        assert sleep.calls == [1.0, 1.0]
        assert len(gemini.calls) == 2
        assert len(openai.calls) == 2

    @pytest.mark.asyncio
    async def test_no_backends(
        self, enrichment: NutritionEnrichmentService, sleep: SleepRecorder, photo: AnalysisInput
    ) -> None:
        orchestrator = ProviderOrchestrator([], enrichment, sleep=sleep)

        result = await orchestrator.resolve(photo)

        assert result.degraded
        assert result.confidence == 0


class TestRegistry:
    """Test provider registry and health reporting."""

    def test_system_health(self, enrichment: NutritionEnrichmentService) -> None:
        gemini = FakeBackend("gemini", 2)
        openai = FakeBackend("openai", 3)
        openai.record_error(BackendError.rate_limit("quota"))
        orchestrator = ProviderOrchestrator([openai, gemini], enrichment)

        health = orchestrator.system_health()

        assert health["healthy"] is True
        assert health["available_providers"] == 1
        assert health["total_providers"] == 2
        assert [status["name"] for status in health["statuses"]] == ["gemini", "openai"]
        assert health["statuses"][1]["last_error"]["code"] == "RATE_LIMIT"

    def test_unhealthy_when_nothing_available(self, enrichment: NutritionEnrichmentService) -> None:
        gemini = FakeBackend("gemini", 2)
        gemini.record_error(BackendError.rate_limit("quota"))
        orchestrator = ProviderOrchestrator([gemini], enrichment)

        assert orchestrator.system_health()["healthy"] is False
        assert orchestrator.recommended_provider() is None

    def test_reset_providers(self, enrichment: NutritionEnrichmentService) -> None:
        gemini = FakeBackend("gemini", 2)
        gemini.record_error(BackendError.rate_limit("quota"))
        orchestrator = ProviderOrchestrator([gemini], enrichment)

        orchestrator.reset_providers()

        assert orchestrator.recommended_provider() is gemini
        assert gemini.availability.error_count == 0

    def test_add_and_remove_provider(self, enrichment: NutritionEnrichmentService) -> None:
        openai = FakeBackend("openai", 3)
        orchestrator = ProviderOrchestrator([openai], enrichment)

        orchestrator.add_provider(FakeBackend("gemini", 2))

        assert [backend.name for backend in orchestrator.backends] == ["gemini", "openai"]
        assert orchestrator.remove_provider("gemini") is True
        assert orchestrator.remove_provider("gemini") is False
        assert [backend.name for backend in orchestrator.backends] == ["openai"]
