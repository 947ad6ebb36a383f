"""Analyze meal command and handler.

Entry point for the ingestion collaborator: an image or a description goes
in, a fully resolved AnalysisResult comes out.

Flow:
1. Look the request fingerprint up in the analysis cache
2. On miss, run the provider orchestrator (bounded concurrency)
3. Store non-degraded results in the cache
"""

import asyncio
import logging
from contextlib import AsyncExitStack
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from nutrition_engine.domain.analysis.entities.analysis_input import AnalysisInput
from nutrition_engine.domain.analysis.entities.analysis_result import AnalysisResult
from nutrition_engine.domain.analysis.ports.analysis_cache import IAnalysisCache
from nutrition_engine.domain.analysis.services.provider_orchestrator import (
    ProviderOrchestrator,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENT = 5


@dataclass(frozen=True)
class AnalyzeMealCommand:
    """
    Command: resolve one photo or meal description.

    Attributes:
        request: Image bytes or text, with optional time context
        use_cache: Set False to force a fresh analysis
    """

    request: AnalysisInput
    use_cache: bool = True


class AnalyzeMealCommandHandler:
    """
    Handler for AnalyzeMealCommand.

    Usable as an async context manager: entering it opens every HTTP client
    passed in ``resources`` and exiting closes them.

    Example:
        >>> async with AnalyzeMealCommandHandler(orchestrator, cache) as handler:
        ...     result = await handler.handle(
        ...         AnalyzeMealCommand(AnalysisInput.from_text("2 eggs and toast"))
        ...     )
    """

    def __init__(
        self,
        orchestrator: ProviderOrchestrator,
        cache: Optional[IAnalysisCache] = None,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        resources: Iterable[Any] = (),
    ):
        """
        Initialize handler.

        Args:
            orchestrator: Provider orchestrator
            cache: Analysis cache port (None disables caching)
            max_concurrent: Concurrent orchestrator runs; cache hits bypass the limit
            resources: Async context managers to open with the handler
        """
        if max_concurrent <= 0:
            raise ValueError(f"max_concurrent must be positive, got {max_concurrent}")

        self._orchestrator = orchestrator
        self._cache = cache
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._resources = list(resources)
        self._exit_stack: Optional[AsyncExitStack] = None

    async def __aenter__(self) -> "AnalyzeMealCommandHandler":
        stack = AsyncExitStack()
        try:
            for resource in self._resources:
                await stack.enter_async_context(resource)
        except BaseException:
            await stack.aclose()
            raise
        self._exit_stack = stack
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._exit_stack is not None:
            await self._exit_stack.aclose()
            self._exit_stack = None

    @property
    def orchestrator(self) -> ProviderOrchestrator:
        return self._orchestrator

    async def handle(self, command: AnalyzeMealCommand) -> AnalysisResult:
        """
        Execute the analysis command.

        Never raises for backend, nutrition or cache failures: the worst
        outcome is a degraded result with confidence 0.

        Args:
            command: AnalyzeMealCommand

        Returns:
            AnalysisResult (possibly served from cache)
        """
        request = command.request
        fingerprint = request.fingerprint()

        if command.use_cache:
            cached = await self._cache_get(fingerprint)
            if cached is not None:
                logger.info(
                    "Analysis cache hit",
                    extra={"mode": request.mode.value, "fingerprint": fingerprint},
                )
                return cached

        async with self._semaphore:
            result = await self._orchestrator.resolve(request)

        if command.use_cache and not result.degraded:
            await self._cache_set(fingerprint, result)

        logger.info(
            "Meal analyzed",
            extra={
                "mode": request.mode.value,
                "provider": result.provider,
                "degraded": result.degraded,
                "items_count": len(result.items),
                "total_calories": result.totals.calories,
            },
        )
        return result

    async def resolve(self, request: AnalysisInput) -> AnalysisResult:
        """Shortcut for ``handle(AnalyzeMealCommand(request))``."""
        return await self.handle(AnalyzeMealCommand(request=request))

    async def _cache_get(self, fingerprint: str) -> Optional[AnalysisResult]:
        if self._cache is None:
            return None
        try:
            return await self._cache.get(fingerprint)
        except Exception as e:
            logger.warning(
                "Analysis cache read failed",
                extra={"fingerprint": fingerprint, "error": str(e)},
            )
            return None

    async def _cache_set(self, fingerprint: str, result: AnalysisResult) -> None:
        if self._cache is None:
            return
        try:
            await self._cache.set(fingerprint, result)
        except Exception as e:
            logger.warning(
                "Analysis cache write failed",
                extra={"fingerprint": fingerprint, "error": str(e)},
            )

    def system_health(self) -> Dict[str, object]:
        return self._orchestrator.system_health()
