"""Gemini analysis backend - Implements AnalysisBackend port.

Uses the google-genai SDK with JSON structured output (response_schema).
Preferred over OpenAI when both are configured (priority 2).
"""

import logging
import time
from typing import Any, List, Optional, Type, TypeVar

from google import genai
from google.genai import errors as genai_errors
from google.genai.types import GenerateContentConfig, Part
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

RATE_LIMIT_COOLDOWN_S = 120
ANALYSIS_RETRY_AFTER_S = 60

RATE_LIMIT_MARKERS = ("quota", "rate limit", "rate_limit", "resource_exhausted", "resource exhausted")

ResponseT = TypeVar("ResponseT", bound=BaseModel)


def classify_gemini_error(error: Exception) -> BackendError:
    """
    Map a google-genai exception onto a BackendError.

    Gemini reports quota exhaustion as HTTP 429 / RESOURCE_EXHAUSTED, and
    sometimes only in the message text, so both are checked.
    """
    if isinstance(error, BackendError):
        return error

    text = str(error).lower()
    code = getattr(error, "code", None)

    if code == 429 or any(marker in text for marker in RATE_LIMIT_MARKERS):
        return BackendError.rate_limit(f"Gemini rate limit exceeded: {error}", RATE_LIMIT_COOLDOWN_S)

    if isinstance(error, genai_errors.ClientError) and code in (401, 403):
        return BackendError.permanent(CONFIG_ERROR, f"Gemini rejected credentials ({code})")

    if isinstance(error, genai_errors.ServerError):
        return BackendError.temporary(SERVER_ERROR, f"Gemini server error ({code})", ANALYSIS_RETRY_AFTER_S)

    if isinstance(error, (ValidationError, ValueError)):
        return BackendError.malformed(f"Gemini returned an unusable response: {error}")

    return BackendError.temporary(ANALYSIS_ERROR, f"Gemini analysis failed: {error}", ANALYSIS_RETRY_AFTER_S)


class GeminiAnalysisBackend(AnalysisBackend):
    """
    Gemini backend implementing AnalysisBackend port.

    Example:
        >>> backend = GeminiAnalysisBackend(api_key="AIza...")
        >>> result = await backend.detect_names(photo_bytes)
        >>> result.names
        ('fried egg', 'baked beans')
    """

    name = "gemini"
    priority = 2
    max_retries = 2

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gemini-2.5-flash",
        temperature: float = 0.1,
        client: Optional[Any] = None,
    ):
        """
        Initialize Gemini backend.

        Args:
            api_key: Gemini API key (None: every call fails with CONFIG_ERROR)
            model: Model name
            temperature: Sampling temperature
            client: Pre-built genai.Client-compatible client (tests)
        """
        super().__init__()
        self._model = model
        self._temperature = temperature
        if client is not None:
            self._client = client
        elif api_key:
            self._client = genai.Client(api_key=api_key)
        else:
            self._client = None

    async def analyze_image(self, image_bytes: bytes) -> DetectionResult:
        response = await self._generate(
            contents=[self._image_part(image_bytes), "Analyze this meal."],
            system_prompt=IMAGE_ANALYSIS_PROMPT,
            response_model=FoodDetectionResponse,
            operation="analyze_image",
        )
        return response.to_domain()

    async def analyze_text(
        self, text: str, time_context: Optional[TimeContext] = None
    ) -> DetectionResult:
        response = await self._generate(
            contents=[build_text_prompt(text, time_context)],
            system_prompt=TEXT_ANALYSIS_PROMPT,
            response_model=FoodDetectionResponse,
            operation="analyze_text",
        )
        return response.to_domain()

    async def detect_names(self, image_bytes: bytes) -> NameDetectionResult:
        response = await self._generate(
            contents=[self._image_part(image_bytes), "List the foods in this photo."],
            system_prompt=NAME_DETECTION_PROMPT,
            response_model=FoodNamesResponse,
            operation="detect_names",
        )
        return response.to_domain()

    @staticmethod
    def _image_part(image_bytes: bytes) -> Part:
        return Part.from_bytes(data=image_bytes, mime_type="image/jpeg")

    async def _generate(
        self,
        contents: List[Any],
        system_prompt: str,
        response_model: Type[ResponseT],
        operation: str,
    ) -> ResponseT:
        if self._client is None:
            raise BackendError.permanent(CONFIG_ERROR, "Gemini API key not configured")

        start_time = time.time()
        try:
            response = await self._client.aio.models.generate_content(
                model=self._model,
                contents=contents,
                config=GenerateContentConfig(
                    system_instruction=system_prompt,
                    response_mime_type="application/json",
                    response_schema=response_model,
                    temperature=self._temperature,
                ),
            )
            parsed = self._parse(response, response_model)
        except Exception as e:
            error = classify_gemini_error(e)
            logger.warning(
                "Gemini analysis failed",
                extra={
                    "operation": operation,
                    "code": error.code,
                    "is_rate_limit": error.is_rate_limit,
                    "is_temporary": error.is_temporary,
                },
            )
            raise error from e

        logger.info(
            "Gemini analysis complete",
            extra={
                "operation": operation,
                "model": self._model,
                "processing_time_ms": int((time.time() - start_time) * 1000),
            },
        )
        return parsed

    @staticmethod
    def _parse(response: Any, response_model: Type[ResponseT]) -> ResponseT:
        """Prefer the SDK-parsed object; fall back to validating the raw text."""
        parsed = getattr(response, "parsed", None)
        if isinstance(parsed, response_model):
            return parsed
        if isinstance(parsed, dict):
            return response_model.model_validate(parsed)

        text = getattr(response, "text", None)
        if not text:
            raise ValueError("Gemini returned an empty response")
        return response_model.model_validate_json(text)
