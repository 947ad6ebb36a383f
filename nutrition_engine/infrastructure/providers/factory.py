"""Provider Factory for the nutrition-resolution engine.

Environment-based wiring with graceful fallback to the stub backend.
Strategy:
- .env (runtime): ANALYSIS_BACKENDS=openai,gemini plus API keys
- Default: every listed backend with a key; stub if none has one

Usage:
    from nutrition_engine.infrastructure.providers.factory import (
        create_analyze_meal_handler,
    )

    async with create_analyze_meal_handler() as handler:
        result = await handler.resolve(AnalysisInput.from_text("2 eggs"))
"""

import logging
from typing import List, Optional

from nutrition_engine.application.analysis.analyze_meal import AnalyzeMealCommandHandler
from nutrition_engine.config import Settings
from nutrition_engine.domain.analysis.ports.analysis_backend import AnalysisBackend
from nutrition_engine.domain.analysis.services.provider_orchestrator import (
    ProviderOrchestrator,
)
from nutrition_engine.domain.nutrition.services.enrichment_service import (
    NutritionEnrichmentService,
)
from nutrition_engine.domain.shared.errors import ConfigurationError

# Stub backend (fast, deterministic)
from nutrition_engine.infrastructure.ai.stub_backend import StubAnalysisBackend

# Real backends (require API keys)
from nutrition_engine.infrastructure.ai.gemini.client import GeminiAnalysisBackend
from nutrition_engine.infrastructure.ai.openai.client import OpenAIAnalysisBackend
from nutrition_engine.infrastructure.cache.analysis_cache import InMemoryAnalysisCache
from nutrition_engine.infrastructure.external_apis.openfoodfacts.client import (
    OpenFoodFactsClient,
)
from nutrition_engine.infrastructure.external_apis.usda.client import USDAClient

logger = logging.getLogger(__name__)

KNOWN_BACKENDS = ("openai", "gemini", "stub")


def create_analysis_backend(name: str, settings: Settings) -> AnalysisBackend:
    """Create one analysis backend by name.

    Values:
        - "openai": OpenAI (requires OPENAI_API_KEY)
        - "gemini": Gemini (requires GEMINI_API_KEY)
        - "stub": Stub backend

    Raises:
        ConfigurationError: Unknown name, or the backend's API key is not set
    """
    mode = name.strip().lower()

    if mode == "openai":
        if not settings.openai_api_key:
            raise ConfigurationError(
                "Backend 'openai' requested but OPENAI_API_KEY not set. "
                "Set OPENAI_API_KEY in .env or remove it from ANALYSIS_BACKENDS"
            )
        return OpenAIAnalysisBackend(api_key=settings.openai_api_key, model=settings.openai_model)

    if mode == "gemini":
        if not settings.gemini_api_key:
            raise ConfigurationError(
                "Backend 'gemini' requested but GEMINI_API_KEY not set. "
                "Set GEMINI_API_KEY in .env or remove it from ANALYSIS_BACKENDS"
            )
        return GeminiAnalysisBackend(api_key=settings.gemini_api_key, model=settings.gemini_model)

    if mode == "stub":
        return StubAnalysisBackend()

    raise ConfigurationError(
        f"Unknown analysis backend {name!r}. Expected one of: {', '.join(KNOWN_BACKENDS)}"
    )


def create_analysis_backends(settings: Optional[Settings] = None) -> List[AnalysisBackend]:
    """Create every backend listed in ANALYSIS_BACKENDS.

    Backends without an API key are skipped with a warning; when nothing is
    left the stub backend is used so the engine still answers.

    Raises:
        ConfigurationError: On an unknown backend name
    """
    settings = settings or Settings.from_env()
    backends: List[AnalysisBackend] = []

    for name in settings.backends:
        try:
            backends.append(create_analysis_backend(name, settings))
        except ConfigurationError:
            if name.strip().lower() not in KNOWN_BACKENDS:
                raise
            logger.warning("Analysis backend skipped: missing API key", extra={"backend": name})

    if not backends:
        logger.warning("No analysis backend configured, using stub")
        backends.append(StubAnalysisBackend())

    return backends


def create_analysis_cache(settings: Optional[Settings] = None) -> InMemoryAnalysisCache:
    """Create the analysis cache, restoring persisted entries if configured."""
    settings = settings or Settings.from_env()
    cache = InMemoryAnalysisCache(
        ttl_hours=settings.analysis_cache_ttl_hours,
        max_size=settings.analysis_cache_max_size,
        persistence_file=settings.analysis_cache_file,
    )
    if settings.analysis_cache_file:
        cache.load_from_disk()
    return cache


def create_analyze_meal_handler(settings: Optional[Settings] = None) -> AnalyzeMealCommandHandler:
    """Wire the full pipeline: backends → orchestrator → USDA/OpenFoodFacts → cache.

    The returned handler must be entered (``async with``) so the HTTP
    clients open their sessions.
    """
    settings = settings or Settings.from_env()

    usda = USDAClient(api_key=settings.usda_api_key)
    openfoodfacts = OpenFoodFactsClient()
    enrichment = NutritionEnrichmentService(
        primary_provider=usda,
        secondary_provider=openfoodfacts,
    )
    orchestrator = ProviderOrchestrator(create_analysis_backends(settings), enrichment)

    logger.info(
        "Analysis pipeline created",
        extra={
            "backends": [backend.name for backend in orchestrator.backends],
            "usda_configured": bool(settings.usda_api_key),
        },
    )

    return AnalyzeMealCommandHandler(
        orchestrator=orchestrator,
        cache=create_analysis_cache(settings),
        max_concurrent=settings.max_concurrent_analyses,
        resources=(usda, openfoodfacts),
    )


# Singleton instance (lazy initialization)
_analyze_meal_handler: Optional[AnalyzeMealCommandHandler] = None


def get_analyze_meal_handler() -> AnalyzeMealCommandHandler:
    """Get singleton handler instance (built from the environment)."""
    global _analyze_meal_handler
    if _analyze_meal_handler is None:
        _analyze_meal_handler = create_analyze_meal_handler()
    return _analyze_meal_handler


def reset_providers() -> None:
    """Reset the singleton handler.

    Useful for testing to force re-creation with different env vars.
    """
    global _analyze_meal_handler
    _analyze_meal_handler = None
