"""USDA FoodData Central API client - Implements INutritionProvider port.

Key Features:
- USDA API search and food detail lookup
- Query preprocessing and heuristic candidate scoring
- Circuit breaker (5 network failures → 60s open)
- Retry logic (exponential backoff) for timeouts and dropped connections
- 1 hour response cache (search and detail)
- HTTP 429 surfaces as NutritionRateLimitError
"""

# mypy: warn-unused-ignores=False

import asyncio
import logging
import os
from typing import Any, Dict, List, Optional

import aiohttp
from circuitbreaker import circuit
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from nutrition_engine.domain.nutrition.entities.nutrient_profile import NutrientProfile
from nutrition_engine.domain.nutrition.services.food_matching import (
    nutrient_values,
    preprocess_food_name,
    select_best_candidate,
)
from nutrition_engine.domain.shared.errors import (
    NutritionLookupError,
    NutritionRateLimitError,
)
from nutrition_engine.infrastructure.cache.ttl_cache import TTLCache

logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS = 3600

_NETWORK_ERRORS = (asyncio.TimeoutError, aiohttp.ClientConnectionError)

# Legacy nutrient numbers first, then current nutrient ids
NUTRIENT_NUMBERS: Dict[str, tuple] = {
    "calories": ("208", "1008", "957", "958"),
    "protein": ("203", "1003"),
    "carbs": ("205", "1005"),
    "fat": ("204", "1004"),
    "fiber": ("291", "1079"),
    "sugar": ("269", "2000", "1063"),
    "sodium": ("307", "1093"),
}


class USDAClient:
    """
    USDA FoodData Central API client implementing INutritionProvider port.

    Example:
        >>> async with USDAClient() as client:
        ...     profile = await client.get_nutrients("back bacon", 100.0)
        ...     if profile:
        ...         print(f"Calories: {profile.calories}")
    """

    BASE_URL = "https://api.nal.usda.gov/fdc/v1"
    DATA_TYPES = "Foundation,SR Legacy,Survey (FNDDS)"

    def __init__(self, api_key: Optional[str] = None, cache: Optional[TTLCache] = None):
        """
        Initialize USDA client.

        API documentation: https://fdc.nal.usda.gov/api-guide

        Args:
            api_key: USDA FoodData Central API key; falls back to USDA_API_KEY
            cache: Response cache (default: 1 hour TTL, 1000 entries)
        """
        self.api_key = api_key or os.getenv("USDA_API_KEY")
        self._cache: TTLCache = cache or TTLCache(ttl_seconds=CACHE_TTL_SECONDS, name="usda")
        self._session: Optional[aiohttp.ClientSession] = None

        if not self.api_key:
            logger.warning("USDA_API_KEY not configured")

    async def __aenter__(self) -> "USDAClient":
        """Async context manager entry."""
        self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=5.0))
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        if self._session:
            await self._session.close()
            self._session = None

    def _check_ready(self) -> aiohttp.ClientSession:
        if not self._session:
            raise RuntimeError("Client not initialized. Use async context manager.")
        if not self.api_key:
            raise NutritionLookupError("USDA API key not configured")
        return self._session

    async def _get_json(self, path: str, params: Dict[str, str]) -> Any:
        session = self._check_ready()
        params = {**params, "api_key": self.api_key or ""}

        async with session.get(f"{self.BASE_URL}{path}", params=params) as response:
            if response.status == 429:
                raise NutritionRateLimitError("USDA API rate limit exceeded")
            if response.status == 404:
                return None
            if response.status != 200:
                raise NutritionLookupError(f"USDA API error: {response.status}")
            try:
                return await response.json()
            except (aiohttp.ContentTypeError, ValueError) as e:
                raise NutritionLookupError(f"USDA API returned invalid JSON: {e}") from e

    @circuit(  # type: ignore[misc]
        failure_threshold=5,
        recovery_timeout=60,
        expected_exception=_NETWORK_ERRORS,
        name="usda_search",
    )
    @retry(  # type: ignore[misc]
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(_NETWORK_ERRORS),
        reraise=True,
    )
    async def search_food(self, query: str, limit: int = 10) -> List[Dict[str, Any]]:
        """
        Search for foods in USDA database.

        Args:
            query: Search term
            limit: Maximum number of results

        Returns:
            List of found foods (empty when nothing matches)

        Raises:
            NutritionRateLimitError: On HTTP 429
            NutritionLookupError: On other API errors
        """
        cache_key = f"search:{query}"
        cached = self._cache.get(cache_key)
        # A page fetched with a smaller limit cannot answer a larger one
        if cached is not None and cached[0] >= limit:
            logger.debug("USDA search cache hit", extra={"query": query})
            return cached[1][:limit]

        logger.debug("Searching USDA", extra={"query": query, "limit": limit})

        data = await self._get_json(
            "/foods/search",
            {"query": query, "dataType": self.DATA_TYPES, "pageSize": str(limit)},
        )
        foods = (data or {}).get("foods", [])
        result = foods if isinstance(foods, list) else []

        self._cache.set(cache_key, (limit, result))
        logger.info(
            "USDA search complete",
            extra={"query": query, "results_count": len(result)},
        )
        return result

    @circuit(  # type: ignore[misc]
        failure_threshold=5,
        recovery_timeout=60,
        expected_exception=_NETWORK_ERRORS,
        name="usda_details",
    )
    @retry(  # type: ignore[misc]
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(_NETWORK_ERRORS),
        reraise=True,
    )
    async def get_food_details(self, fdc_id: int) -> Optional[Dict[str, Any]]:
        """
        Get the full record of a food by FDC ID.

        Returns:
            Food record, or None if the id is unknown

        Raises:
            NutritionRateLimitError: On HTTP 429
            NutritionLookupError: On other API errors
        """
        cache_key = f"food:{fdc_id}"
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.debug("USDA food cache hit", extra={"fdc_id": fdc_id})
            return cached

        data = await self._get_json(f"/food/{fdc_id}", {})
        if data is None:
            logger.warning("USDA food not found", extra={"fdc_id": fdc_id})
            return None

        self._cache.set(cache_key, data)
        logger.info(
            "USDA food details retrieved",
            extra={"fdc_id": fdc_id, "description": data.get("description")},
        )
        return data

    async def get_nutrients(
        self, food_name: str, quantity_g: float = 100.0
    ) -> Optional[NutrientProfile]:
        """
        Get nutrient profile for a detected food name.

        Implements INutritionProvider.get_nutrients() port.

        Args:
            food_name: Food name as detected (e.g., "2 rashers back bacon")
            quantity_g: Quantity to scale to (USDA reports per 100g)

        Returns:
            NutrientProfile if found, None if USDA has no candidate

        Raises:
            NutritionLookupError: On API errors (including rate limits)
        """
        term = preprocess_food_name(food_name)
        if not term:
            return None

        logger.info(
            "Getting nutrients from USDA",
            extra={"food_name": food_name, "search_term": term, "quantity_g": quantity_g},
        )

        foods = await self.search_food(term, limit=10)
        best = select_best_candidate(foods, term)
        if best is None:
            logger.info("No USDA results", extra={"food_name": food_name, "search_term": term})
            return None

        candidate, score = best
        logger.info(
            "USDA food selected",
            extra={
                "food_name": food_name,
                "fdc_id": candidate.get("fdcId"),
                "description": candidate.get("description"),
                "score": score,
            },
        )

        details = None
        if candidate.get("fdcId") is not None:
            details = await self.get_food_details(candidate["fdcId"])

        profile = self.extract_profile(details or candidate)
        if quantity_g != profile.quantity_g:
            profile = profile.scale_to_quantity(quantity_g)
        return profile

    @staticmethod
    def extract_profile(food: Dict[str, Any]) -> NutrientProfile:
        """
        Build a per-100g profile from a USDA search result or food record.

        FoodData Central normalizes nutrient amounts to 100g. Missing core
        nutrients count as 0; missing optional ones stay None.
        """
        values = nutrient_values(food)

        def pick(field_name: str) -> Optional[float]:
            for number in NUTRIENT_NUMBERS[field_name]:
                if number in values:
                    return max(0.0, values[number])
            return None

        return NutrientProfile(
            calories=pick("calories") or 0.0,
            protein=pick("protein") or 0.0,
            carbs=pick("carbs") or 0.0,
            fat=pick("fat") or 0.0,
            fiber=pick("fiber"),
            sugar=pick("sugar"),
            sodium=pick("sodium"),
            source="USDA",
            quantity_g=100.0,
            description=food.get("description"),
        )

    async def health_check(self) -> Dict[str, str]:
        """Run a one-result search and report whether USDA answers."""
        if not self.api_key:
            return {"status": "unhealthy", "message": "USDA API key not configured"}

        try:
            await self.search_food("apple", limit=1)
            return {"status": "healthy", "message": "USDA API is responding normally"}
        except Exception as e:
            return {"status": "unhealthy", "message": f"USDA API error: {e}"}

    def clear_cache(self) -> None:
        self._cache.clear()
