"""OpenAI analysis backend - Implements AnalysisBackend port.

Key Features:
- Structured outputs (native Pydantic support via beta.chat.completions.parse)
- Images sent inline as base64 data URLs
- SDK exceptions classified into BackendError (rate limit, server, timeout, config)
- Prompt cache metrics tracking

Retries and backoff are owned by the provider orchestrator, so calls here
are single-shot.
"""

import base64
import logging
import time
from typing import Any, Dict, List, Optional, Type, TypeVar

import openai
from openai import AsyncOpenAI
from pydantic import BaseModel, ValidationError

from nutrition_engine.domain.analysis.entities.analysis_input import TimeContext
from nutrition_engine.domain.analysis.entities.detected_food import (
    DetectionResult,
    NameDetectionResult,
)
from nutrition_engine.domain.analysis.ports.analysis_backend import AnalysisBackend
from nutrition_engine.domain.shared.errors import (
    ANALYSIS_ERROR,
    CONFIG_ERROR,
    SERVER_ERROR,
    TIMEOUT,
    BackendError,
)
from nutrition_engine.infrastructure.ai.models import (
    FoodDetectionResponse,
    FoodNamesResponse,
)
from nutrition_engine.infrastructure.ai.prompts.food_detection import (
    IMAGE_ANALYSIS_PROMPT,
    NAME_DETECTION_PROMPT,
    TEXT_ANALYSIS_PROMPT,
    build_text_prompt,
)

logger = logging.getLogger(__name__)

RATE_LIMIT_COOLDOWN_S = 60
SERVER_ERROR_RETRY_AFTER_S = 30

ResponseT = TypeVar("ResponseT", bound=BaseModel)


def classify_openai_error(error: Exception) -> BackendError:
    """
    Map an OpenAI SDK exception onto a BackendError.

    - 429 / rate_limit_exceeded → RATE_LIMIT (60s cooldown)
    - 5xx → SERVER_ERROR (temporary)
    - timeout / connection → TIMEOUT / SERVER_ERROR (temporary)
    - 401 / 403 → CONFIG_ERROR (permanent)
    - unparseable output → MALFORMED_RESPONSE (temporary)
    - anything else → ANALYSIS_ERROR (permanent)
    """
    if isinstance(error, BackendError):
        return error

    if isinstance(error, openai.RateLimitError):
        return BackendError.rate_limit(f"OpenAI rate limit exceeded: {error}", RATE_LIMIT_COOLDOWN_S)

    if isinstance(error, openai.APITimeoutError):
        return BackendError.temporary(TIMEOUT, f"OpenAI request timed out: {error}")

    if isinstance(error, openai.APIConnectionError):
        return BackendError.temporary(SERVER_ERROR, f"OpenAI connection failed: {error}")

    if isinstance(error, openai.APIStatusError):
        status = error.status_code
        if status == 429 or getattr(error, "code", None) == "rate_limit_exceeded":
            return BackendError.rate_limit(f"OpenAI rate limit exceeded: {error}", RATE_LIMIT_COOLDOWN_S)
        if status >= 500:
            return BackendError.temporary(
                SERVER_ERROR, f"OpenAI server error ({status})", SERVER_ERROR_RETRY_AFTER_S
            )
        if status in (401, 403):
            return BackendError.permanent(CONFIG_ERROR, f"OpenAI rejected credentials ({status})")
        return BackendError.permanent(ANALYSIS_ERROR, f"OpenAI request failed ({status}): {error}")

    if isinstance(error, (ValidationError, ValueError)):
        return BackendError.malformed(f"OpenAI returned an unusable response: {error}")

    return BackendError.permanent(ANALYSIS_ERROR, f"OpenAI analysis failed: {error}")


class OpenAIAnalysisBackend(AnalysisBackend):
    """
    OpenAI backend implementing AnalysisBackend port.

    Example:
        >>> backend = OpenAIAnalysisBackend(api_key="sk-...")
        >>> result = await backend.analyze_text("two eggs and toast")
        >>> [item.name for item in result.items]
        ['fried egg', 'white toast']
    """

    name = "openai"
    priority = 3
    max_retries = 2

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gpt-4o-mini",
        temperature: float = 0.1,
        client: Optional[Any] = None,
    ):
        """
        Initialize OpenAI backend.

        Args:
            api_key: OpenAI API key (None leaves the backend unusable: every call
                fails with a permanent CONFIG_ERROR)
            model: Model name (must support structured outputs)
            temperature: Sampling temperature (0.1 for consistency)
            client: Pre-built AsyncOpenAI-compatible client (tests)
        """
        super().__init__()
        self._model = model
        self._temperature = temperature
        self._cache_stats = {"hits": 0, "misses": 0}
        if client is not None:
            self._client = client
        elif api_key:
            self._client = AsyncOpenAI(api_key=api_key)
        else:
            self._client = None

    async def analyze_image(self, image_bytes: bytes) -> DetectionResult:
        response = await self._call(
            system_prompt=IMAGE_ANALYSIS_PROMPT,
            user_content=self._image_content(image_bytes, "Analyze this meal."),
            response_model=FoodDetectionResponse,
            operation="analyze_image",
        )
        return response.to_domain()

    async def analyze_text(
        self, text: str, time_context: Optional[TimeContext] = None
    ) -> DetectionResult:
        response = await self._call(
            system_prompt=TEXT_ANALYSIS_PROMPT,
            user_content=build_text_prompt(text, time_context),
            response_model=FoodDetectionResponse,
            operation="analyze_text",
        )
        return response.to_domain()

    async def detect_names(self, image_bytes: bytes) -> NameDetectionResult:
        response = await self._call(
            system_prompt=NAME_DETECTION_PROMPT,
            user_content=self._image_content(image_bytes, "List the foods in this photo."),
            response_model=FoodNamesResponse,
            operation="detect_names",
        )
        return response.to_domain()

    @staticmethod
    def _image_content(image_bytes: bytes, instruction: str) -> List[Dict[str, Any]]:
        encoded = base64.b64encode(image_bytes).decode("ascii")
        return [
            {"type": "text", "text": instruction},
            {"type": "image_url", "image_url": {"url": f"data:image/jpeg;base64,{encoded}"}},
        ]

    async def _call(
        self,
        system_prompt: str,
        user_content: Any,
        response_model: Type[ResponseT],
        operation: str,
    ) -> ResponseT:
        if self._client is None:
            raise BackendError.permanent(CONFIG_ERROR, "OpenAI API key not configured")

        start_time = time.time()
        try:
            parsed = await self._structured_completion(system_prompt, user_content, response_model)
        except Exception as e:
            error = classify_openai_error(e)
            logger.warning(
                "OpenAI analysis failed",
                extra={
                    "operation": operation,
                    "code": error.code,
                    "is_rate_limit": error.is_rate_limit,
                    "is_temporary": error.is_temporary,
                },
            )
            raise error from e

        logger.info(
            "OpenAI analysis complete",
            extra={
                "operation": operation,
                "model": self._model,
                "processing_time_ms": int((time.time() - start_time) * 1000),
            },
        )
        return parsed

    async def _structured_completion(
        self,
        system_prompt: str,
        user_content: Any,
        response_model: Type[ResponseT],
    ) -> ResponseT:
        """
        Execute OpenAI completion with structured output.

        Raises:
            openai.OpenAIError: On API failures
            ValueError: On empty parsed response
        """
        response = await self._client.beta.chat.completions.parse(
            model=self._model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content},
            ],
            response_format=response_model,
            temperature=self._temperature,
        )

        usage = response.usage
        if usage is not None:
            details = getattr(usage, "prompt_tokens_details", None)
            cached = getattr(details, "cached_tokens", 0) if details else 0
            if isinstance(cached, int) and cached > 0:
                self._cache_stats["hits"] += 1
            else:
                self._cache_stats["misses"] += 1
            logger.debug(
                "OpenAI response received",
                extra={
                    "model": self._model,
                    "total_tokens": getattr(usage, "total_tokens", None),
                },
            )

        parsed = response.choices[0].message.parsed
        if not parsed:
            raise ValueError("OpenAI returned empty parsed response")

        return parsed

    def get_cache_stats(self) -> Dict[str, Any]:
        """Prompt cache hits, misses and hit rate."""
        total = self._cache_stats["hits"] + self._cache_stats["misses"]
        hit_rate = (self._cache_stats["hits"] / total * 100) if total > 0 else 0

        return {
            **self._cache_stats,
            "hit_rate_percent": round(hit_rate, 2),
        }
