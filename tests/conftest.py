"""Shared test fixtures.

Every test starts without API keys or backend selection in the environment,
so a developer's .env never leaks real credentials into unit tests. Tests
that need a value set it with monkeypatch.setenv.
"""

from typing import Generator

import pytest

from nutrition_engine.infrastructure.providers import reset_providers

_ENGINE_ENV_VARS = (
    "OPENAI_API_KEY",
    "GEMINI_API_KEY",
    "USDA_API_KEY",
    "ANALYSIS_BACKENDS",
    "ANALYSIS_CACHE_FILE",
)


@pytest.fixture(autouse=True)
def _clear_engine_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Remove engine variables and reset the handler singleton around each test."""
    for name in _ENGINE_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_providers()
    yield
    reset_providers()
