"""Configuration for the nutrition-resolution engine.

Every setting comes from environment variables, optionally loaded from a
``.env`` file next to the working directory.

Example .env:
    OPENAI_API_KEY=sk-...
    GEMINI_API_KEY=...
    USDA_API_KEY=...
    ANALYSIS_BACKENDS=openai,gemini
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv


def load_environment(env_file: Optional[Path] = None) -> None:
    """Load ``.env`` (if present) without overriding variables already set."""
    path = env_file or Path.cwd() / ".env"
    if path.exists():
        load_dotenv(path)


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    """Resolved engine settings."""

    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.5-flash"
    usda_api_key: Optional[str] = None
    backends: Tuple[str, ...] = ("openai", "gemini")
    analysis_cache_ttl_hours: int = 36
    analysis_cache_max_size: int = 1000
    analysis_cache_file: Optional[str] = None
    max_concurrent_analyses: int = 5

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Build settings from environment variables.

        Returns:
            Settings with defaults for anything not set

        Raises:
            ValueError: If a numeric variable cannot be parsed
        """
        backends_raw = os.getenv("ANALYSIS_BACKENDS", "openai,gemini")
        backends = tuple(
            name.strip().lower() for name in backends_raw.split(",") if name.strip()
        )

        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            openai_model=os.getenv("OPENAI_VISION_MODEL", "gpt-4o-mini"),
            gemini_api_key=os.getenv("GEMINI_API_KEY") or None,
            gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
            usda_api_key=os.getenv("USDA_API_KEY") or None,
            backends=backends,
            analysis_cache_ttl_hours=_get_int("ANALYSIS_CACHE_TTL_HOURS", 36),
            analysis_cache_max_size=_get_int("ANALYSIS_CACHE_MAX_SIZE", 1000),
            analysis_cache_file=os.getenv("ANALYSIS_CACHE_FILE") or None,
            max_concurrent_analyses=_get_int("ANALYSIS_MAX_CONCURRENT", 5),
        )
