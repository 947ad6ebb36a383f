"""Unit tests for AnalyzeMealCommandHandler.

Tests focus on:
- Cache lookups short-circuiting the orchestrator
- Degraded results never cached
- Cache failures never surfacing to the caller
- Bounded concurrency and resource lifecycle
"""

import asyncio
from typing import Any, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from nutrition_engine.application.analysis import (
    AnalyzeMealCommand,
    AnalyzeMealCommandHandler,
)
from nutrition_engine.domain.analysis.entities import (
    AnalysisInput,
    AnalysisResult,
    DetectionResult,
    ResolvedFoodItem,
    TimeContext,
)
from nutrition_engine.domain.analysis.services import ProviderOrchestrator
from nutrition_engine.domain.nutrition.entities import NutrientProfile
from nutrition_engine.domain.nutrition.services import NutritionEnrichmentService
from nutrition_engine.infrastructure.ai.stub_backend import StubAnalysisBackend
from nutrition_engine.infrastructure.cache.analysis_cache import InMemoryAnalysisCache


def _result(degraded: bool = False) -> AnalysisResult:
    return AnalysisResult(
        confidence=0 if degraded else 90,
        items=(
            ResolvedFoodItem(
                name="white toast",
                portion_text="1 slice",
                calories=80,
                protein=3,
                carbs=15,
                fat=1,
                icon="bread-slice",
                grams=30.0,
                source="USDA",
            ),
        ),
        degraded=degraded,
        provider=None if degraded else "stub",
    )


@pytest.fixture
def mock_orchestrator() -> MagicMock:
    orchestrator = MagicMock(spec=ProviderOrchestrator)
    orchestrator.resolve = AsyncMock(return_value=_result())
    return orchestrator


class CountingStub(StubAnalysisBackend):
    """Stub backend counting every backend call."""

    def __init__(self) -> None:
        super().__init__()
        self.calls = 0

    async def analyze_text(
        self, text: str, time_context: Optional[TimeContext] = None
    ) -> DetectionResult:
        self.calls += 1
        return await super().analyze_text(text, time_context)


class FlatProvider:
    """Every food is 200 kcal per 100g."""

    async def get_nutrients(self, food_name: str, quantity_g: float = 100.0) -> NutrientProfile:
        return NutrientProfile(calories=200, protein=10, carbs=20, fat=5).scale_to_quantity(
            quantity_g
        )


class TestHandleWithCache:
    """Test cache behaviour."""

    @pytest.mark.asyncio
    async def test_second_request_served_from_cache(self) -> None:
        backend = CountingStub()
        orchestrator = ProviderOrchestrator([backend], NutritionEnrichmentService(FlatProvider()))
        handler = AnalyzeMealCommandHandler(orchestrator, cache=InMemoryAnalysisCache())

        first = await handler.resolve(AnalysisInput.from_text("2 eggs and toast"))
        second = await handler.resolve(AnalysisInput.from_text("  2 Eggs and  toast "))

        assert backend.calls == 1
        assert second == first
        assert first.provider == "stub"

    @pytest.mark.asyncio
    async def test_use_cache_false_bypasses_cache(self, mock_orchestrator: MagicMock) -> None:
        cache = AsyncMock()
        handler = AnalyzeMealCommandHandler(mock_orchestrator, cache=cache)

        await handler.handle(
            AnalyzeMealCommand(request=AnalysisInput.from_text("toast"), use_cache=False)
        )

        cache.get.assert_not_called()
        cache.set.assert_not_called()
        mock_orchestrator.resolve.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cache_hit_skips_orchestrator(self, mock_orchestrator: MagicMock) -> None:
        cache = AsyncMock()
        cache.get.return_value = _result()
        handler = AnalyzeMealCommandHandler(mock_orchestrator, cache=cache)

        result = await handler.resolve(AnalysisInput.from_image(b"photo"))

        assert result == _result()
        mock_orchestrator.resolve.assert_not_called()

    @pytest.mark.asyncio
    async def test_stored_under_fingerprint(self, mock_orchestrator: MagicMock) -> None:
        cache = AsyncMock()
        cache.get.return_value = None
        handler = AnalyzeMealCommandHandler(mock_orchestrator, cache=cache)
        request = AnalysisInput.names_from_image(b"photo")

        await handler.resolve(request)

        cache.set.assert_awaited_once_with(request.fingerprint(), _result())

    @pytest.mark.asyncio
    async def test_degraded_result_not_cached(self, mock_orchestrator: MagicMock) -> None:
        mock_orchestrator.resolve.return_value = _result(degraded=True)
        cache = AsyncMock()
        cache.get.return_value = None
        handler = AnalyzeMealCommandHandler(mock_orchestrator, cache=cache)

        result = await handler.resolve(AnalysisInput.from_text("toast"))

        assert result.degraded
        cache.set.assert_not_called()

    @pytest.mark.asyncio
    async def test_cache_failures_are_swallowed(self, mock_orchestrator: MagicMock) -> None:
        cache = AsyncMock()
        cache.get.side_effect = OSError("read failed")
        cache.set.side_effect = OSError("write failed")
        handler = AnalyzeMealCommandHandler(mock_orchestrator, cache=cache)

        result = await handler.resolve(AnalysisInput.from_text("toast"))

        assert result == _result()

    @pytest.mark.asyncio
    async def test_without_cache(self, mock_orchestrator: MagicMock) -> None:
        handler = AnalyzeMealCommandHandler(mock_orchestrator)

        await handler.resolve(AnalysisInput.from_text("toast"))
        await handler.resolve(AnalysisInput.from_text("toast"))

        assert mock_orchestrator.resolve.await_count == 2


class TestConcurrency:
    """Test the concurrency limit."""

    def test_invalid_limit(self, mock_orchestrator: MagicMock) -> None:
        with pytest.raises(ValueError, match="max_concurrent must be positive"):
            AnalyzeMealCommandHandler(mock_orchestrator, max_concurrent=0)

    @pytest.mark.asyncio
    async def test_limit_respected(self) -> None:
        active = 0
        peak = 0

        async def slow_resolve(request: AnalysisInput) -> AnalysisResult:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return _result()

        orchestrator = MagicMock(spec=ProviderOrchestrator)
        orchestrator.resolve = AsyncMock(side_effect=slow_resolve)
        handler = AnalyzeMealCommandHandler(orchestrator, max_concurrent=2)

        await asyncio.gather(
            *(handler.resolve(AnalysisInput.from_text(f"meal {i}")) for i in range(6))
        )

        assert peak == 2
        assert orchestrator.resolve.await_count == 6


class FakeResource:
    def __init__(self, log: List[str], name: str, fail: bool = False) -> None:
        self._log = log
        self._name = name
        self._fail = fail

    async def __aenter__(self) -> "FakeResource":
        if self._fail:
            raise RuntimeError(f"{self._name} failed to open")
        self._log.append(f"open {self._name}")
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self._log.append(f"close {self._name}")


class TestLifecycle:
    """Test resource handling."""

    @pytest.mark.asyncio
    async def test_resources_opened_and_closed(self, mock_orchestrator: MagicMock) -> None:
        log: List[str] = []
        handler = AnalyzeMealCommandHandler(
            mock_orchestrator,
            resources=(FakeResource(log, "usda"), FakeResource(log, "off")),
        )

        async with handler:
            assert log == ["open usda", "open off"]

        assert log == ["open usda", "open off", "close off", "close usda"]

    @pytest.mark.asyncio
    async def test_partial_open_is_rolled_back(self, mock_orchestrator: MagicMock) -> None:
        log: List[str] = []
        handler = AnalyzeMealCommandHandler(
            mock_orchestrator,
            resources=(FakeResource(log, "usda"), FakeResource(log, "off", fail=True)),
        )

        with pytest.raises(RuntimeError, match="off failed to open"):
            async with handler:
                pass

        assert log == ["open usda", "close usda"]

    def test_system_health_delegates(self, mock_orchestrator: MagicMock) -> None:
        mock_orchestrator.system_health.return_value = {"status": "healthy"}
        handler = AnalyzeMealCommandHandler(mock_orchestrator)

        assert handler.system_health() == {"status": "healthy"}
