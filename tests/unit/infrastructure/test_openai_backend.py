"""Unit tests for OpenAIAnalysisBackend.

Tests focus on:
- Structured output parsing into domain entities
- Error classification (rate limit, server, credentials, malformed)
- Prompt cache stats

Note: These are UNIT tests with a mocked AsyncOpenAI client.
"""

import base64
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from nutrition_engine.domain.analysis.entities.analysis_input import TimeContext
from nutrition_engine.domain.nutrition.services.portion_normalizer import normalize
from nutrition_engine.domain.shared.errors import (
    ANALYSIS_ERROR,
    CONFIG_ERROR,
    MALFORMED_RESPONSE,
    RATE_LIMIT,
    SERVER_ERROR,
    TIMEOUT,
    BackendError,
)
from nutrition_engine.infrastructure.ai.models import (
    DetectedFoodItem,
    FoodDetectionResponse,
    FoodNamesResponse,
)
from nutrition_engine.infrastructure.ai.openai.client import (
    OpenAIAnalysisBackend,
    classify_openai_error,
)
from nutrition_engine.infrastructure.ai.prompts.food_detection import build_text_prompt

_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def _status_error(cls: Any, status: int, body: Any = None) -> Exception:
    response = httpx.Response(status, request=_REQUEST)
    return cls(f"HTTP {status}", response=response, body=body)


def _completion(parsed: Any, cached_tokens: int = 0) -> MagicMock:
    mock_response = MagicMock()
    mock_response.choices = [MagicMock(message=MagicMock(parsed=parsed))]
    mock_response.usage = MagicMock(
        total_tokens=120,
        prompt_tokens_details=MagicMock(cached_tokens=cached_tokens),
    )
    return mock_response


@pytest.fixture
def mock_client() -> MagicMock:
    client = MagicMock()
    client.beta.chat.completions.parse = AsyncMock()
    return client


@pytest.fixture
def backend(mock_client: MagicMock) -> OpenAIAnalysisBackend:
    return OpenAIAnalysisBackend(api_key=None, client=mock_client)


@pytest.fixture
def breakfast() -> FoodDetectionResponse:
    return FoodDetectionResponse(
        confidence=88,
        items=[
            DetectedFoodItem(name="fried egg", portion="2 large eggs", icon="egg"),
            DetectedFoodItem(name=" back bacon ", portion="", icon="bacon"),
        ],
    )


class TestAnalyze:
    """Test analysis operations."""

    @pytest.mark.asyncio
    async def test_analyze_image(
        self,
        backend: OpenAIAnalysisBackend,
        mock_client: MagicMock,
        breakfast: FoodDetectionResponse,
    ) -> None:
        mock_client.beta.chat.completions.parse.return_value = _completion(breakfast)

        result = await backend.analyze_image(b"\xff\xd8jpeg")

        assert result.confidence == 88
        assert [item.name for item in result.items] == ["fried egg", "back bacon"]
        assert result.items[1].portion_text == "1 serving"

        kwargs = mock_client.beta.chat.completions.parse.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["response_format"] is FoodDetectionResponse
        user_content = kwargs["messages"][1]["content"]
        encoded = base64.b64encode(b"\xff\xd8jpeg").decode("ascii")
        assert user_content[1]["image_url"]["url"] == f"data:image/jpeg;base64,{encoded}"

    @pytest.mark.asyncio
    async def test_analyze_text_includes_time_and_uk_mapping(
        self,
        backend: OpenAIAnalysisBackend,
        mock_client: MagicMock,
        breakfast: FoodDetectionResponse,
    ) -> None:
        mock_client.beta.chat.completions.parse.return_value = _completion(breakfast)

        await backend.analyze_text("courgette", TimeContext(hour=8))

        user_content = mock_client.beta.chat.completions.parse.call_args.kwargs["messages"][1]["content"]
        assert user_content.startswith("Current time: 08:00")
        assert '"zucchini"' in user_content

    @pytest.mark.asyncio
    async def test_detect_names(
        self, backend: OpenAIAnalysisBackend, mock_client: MagicMock
    ) -> None:
        mock_client.beta.chat.completions.parse.return_value = _completion(
            FoodNamesResponse(confidence=70, names=["apple", "  ", "banana"])
        )

        result = await backend.detect_names(b"photo")

        assert result.names == ("apple", "banana")
        kwargs = mock_client.beta.chat.completions.parse.call_args.kwargs
        assert kwargs["response_format"] is FoodNamesResponse

    @pytest.mark.asyncio
    async def test_empty_parsed_is_malformed(
        self, backend: OpenAIAnalysisBackend, mock_client: MagicMock
    ) -> None:
        mock_client.beta.chat.completions.parse.return_value = _completion(None)

        with pytest.raises(BackendError) as exc_info:
            await backend.analyze_text("toast")

        assert exc_info.value.code == MALFORMED_RESPONSE
        assert exc_info.value.is_temporary

    @pytest.mark.asyncio
    async def test_sdk_error_is_classified(
        self, backend: OpenAIAnalysisBackend, mock_client: MagicMock
    ) -> None:
        mock_client.beta.chat.completions.parse.side_effect = _status_error(
            openai.RateLimitError, 429
        )

        with pytest.raises(BackendError) as exc_info:
            await backend.analyze_image(b"photo")

        assert exc_info.value.is_rate_limit
        assert exc_info.value.retry_after_seconds == 60

    @pytest.mark.asyncio
    async def test_missing_key(self) -> None:
        backend = OpenAIAnalysisBackend(api_key=None)

        with pytest.raises(BackendError) as exc_info:
            await backend.analyze_text("toast")

        assert exc_info.value.code == CONFIG_ERROR
        assert not exc_info.value.is_temporary


class TestClassifyOpenAIError:
    """Test SDK exception mapping."""

    def test_rate_limit(self) -> None:
        error = classify_openai_error(_status_error(openai.RateLimitError, 429))
        assert error.code == RATE_LIMIT
        assert error.is_rate_limit

    def test_server_error(self) -> None:
        error = classify_openai_error(_status_error(openai.InternalServerError, 503))
        assert error.code == SERVER_ERROR
        assert error.is_temporary
        assert error.retry_after_seconds == 30

    def test_bad_credentials(self) -> None:
        error = classify_openai_error(_status_error(openai.AuthenticationError, 401))
        assert error.code == CONFIG_ERROR
        assert not error.is_temporary

    def test_bad_request_is_permanent(self) -> None:
        error = classify_openai_error(_status_error(openai.BadRequestError, 400))
        assert error.code == ANALYSIS_ERROR
        assert not error.is_temporary

    def test_timeout(self) -> None:
        error = classify_openai_error(openai.APITimeoutError(request=_REQUEST))
        assert error.code == TIMEOUT
        assert error.is_temporary

    def test_connection_error(self) -> None:
        error = classify_openai_error(openai.APIConnectionError(request=_REQUEST))
        assert error.code == SERVER_ERROR
        assert error.is_temporary

    def test_value_error_is_malformed(self) -> None:
        error = classify_openai_error(ValueError("bad json"))
        assert error.code == MALFORMED_RESPONSE

    def test_backend_error_passes_through(self) -> None:
        original = BackendError.permanent(CONFIG_ERROR, "no key")
        assert classify_openai_error(original) is original

    def test_unknown_error_is_permanent(self) -> None:
        error = classify_openai_error(RuntimeError("boom"))
        assert error.code == ANALYSIS_ERROR
        assert not error.is_temporary


class TestCacheStats:
    """Test prompt cache metrics."""

    @pytest.mark.asyncio
    async def test_hits_and_misses(
        self,
        backend: OpenAIAnalysisBackend,
        mock_client: MagicMock,
        breakfast: FoodDetectionResponse,
    ) -> None:
        mock_client.beta.chat.completions.parse.side_effect = [
            _completion(breakfast, cached_tokens=1024),
            _completion(breakfast, cached_tokens=0),
        ]

        await backend.analyze_text("eggs")
        await backend.analyze_text("eggs")

        stats = backend.get_cache_stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate_percent"] == 50.0

    def test_empty_stats(self, backend: OpenAIAnalysisBackend) -> None:
        assert backend.get_cache_stats() == {"hits": 0, "misses": 0, "hit_rate_percent": 0}


class TestTextPrompt:
    """Test the text analysis user message."""

    def test_weetabix_survives_mapping(self) -> None:
        prompt = build_text_prompt("4 Weetabix")

        assert prompt == 'Meal description: "4 weetabix cereal biscuit"'
        mapped = prompt.split('"')[1]
        assert normalize(mapped, mapped) == 76.0
