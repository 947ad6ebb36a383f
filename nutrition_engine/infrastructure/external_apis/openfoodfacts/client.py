"""OpenFoodFacts API client - Implements INutritionProvider port.

Secondary nutrition source, queried when USDA has no match or fails.

Key Features:
- OpenFoodFacts API v2 product search by name (first product wins)
- Circuit breaker (5 network failures → 60s open)
- Retry logic (exponential backoff) for transport errors
- Nutrient extraction with fallbacks (energy kJ→kcal, salt→sodium)
- 24 hour cache keyed by lower-cased name; misses are cached too
"""
# mypy: warn-unused-ignores=False

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx
from circuitbreaker import circuit
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from nutrition_engine.domain.nutrition.entities.nutrient_profile import NutrientProfile
from nutrition_engine.domain.shared.errors import (
    NutritionLookupError,
    NutritionRateLimitError,
)
from nutrition_engine.infrastructure.cache.ttl_cache import TTLCache

logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS = 24 * 3600

# Cached in place of a profile when OpenFoodFacts has no usable product
NOT_FOUND = "not found"


class OpenFoodFactsClient:
    """
    OpenFoodFacts API client implementing INutritionProvider port.

    Example:
        >>> async with OpenFoodFactsClient() as client:
        ...     profile = await client.get_nutrients("crisps", 100.0)
        ...     if profile:
        ...         print(f"Calories: {profile.calories}")
    """

    BASE_URL = "https://world.openfoodfacts.org/api/v2/search"
    USER_AGENT = "NutritionEngine/1.0 (nutrition-engine)"
    TIMEOUT_S = 8.0

    def __init__(self, cache: Optional[TTLCache] = None) -> None:
        """Initialize OpenFoodFacts client."""
        self._session: Optional[httpx.AsyncClient] = None
        self._cache: TTLCache = cache or TTLCache(
            ttl_seconds=CACHE_TTL_SECONDS, name="openfoodfacts"
        )

    async def __aenter__(self) -> "OpenFoodFactsClient":
        """Async context manager entry."""
        self._session = httpx.AsyncClient(
            timeout=httpx.Timeout(self.TIMEOUT_S),
            headers={"User-Agent": self.USER_AGENT},
        )
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        if self._session:
            await self._session.aclose()
            self._session = None

    @staticmethod
    def _cache_key(food_name: str) -> str:
        return food_name.lower().strip()

    async def get_nutrients(
        self, food_name: str, quantity_g: float = 100.0
    ) -> Optional[NutrientProfile]:
        """
        Get nutrient profile for a food name.

        Implements INutritionProvider.get_nutrients() port.

        Args:
            food_name: Food name (e.g., "ready salted crisps")
            quantity_g: Quantity to scale to (OpenFoodFacts reports per 100g)

        Returns:
            NutrientProfile if found, None if not found

        Raises:
            NutritionLookupError: On network or API errors (not cached)
        """
        key = self._cache_key(food_name)
        if not key:
            return None

        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("OpenFoodFacts cache hit", extra={"food_name": key})
            profile = None if cached == NOT_FOUND else cached
        else:
            profile = await self.search_product(key)
            self._cache.set(key, profile if profile is not None else NOT_FOUND)

        if profile is None:
            return None
        if quantity_g != profile.quantity_g:
            profile = profile.scale_to_quantity(quantity_g)
        return profile

    @circuit(  # type: ignore[misc]
        failure_threshold=5,
        recovery_timeout=60,
        expected_exception=httpx.TransportError,
        name="openfoodfacts_search",
    )
    @retry(  # type: ignore[misc]
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def search_product(self, food_name: str) -> Optional[NutrientProfile]:
        """
        Search OpenFoodFacts and map the first product to a profile.

        Returns:
            Per-100g NutrientProfile, or None when no product has nutrients

        Raises:
            NutritionRateLimitError: On HTTP 429
            NutritionLookupError: On other non-200 responses or invalid JSON
        """
        if not self._session:
            raise RuntimeError("Client not initialized. Use async context manager.")

        params = {
            "search_terms": food_name,
            "page_size": "1",
            "fields": "product_name,nutriments",
        }

        logger.debug("Searching OpenFoodFacts", extra={"food_name": food_name})

        response = await self._session.get(self.BASE_URL, params=params)

        if response.status_code == 429:
            raise NutritionRateLimitError("OpenFoodFacts rate limit exceeded")
        if response.status_code != 200:
            logger.warning(
                "OpenFoodFacts API error",
                extra={"food_name": food_name, "status": response.status_code},
            )
            raise NutritionLookupError(f"OpenFoodFacts API error: {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise NutritionLookupError(f"OpenFoodFacts returned invalid JSON: {e}") from e

        products = data.get("products") or []
        if not products:
            logger.info("OpenFoodFacts: no product found", extra={"food_name": food_name})
            return None

        product = products[0]
        profile = self._extract_nutrients(product)
        if profile is None:
            logger.info(
                "OpenFoodFacts product has no nutrients",
                extra={"food_name": food_name, "product_name": product.get("product_name")},
            )
            return None

        logger.info(
            "OpenFoodFacts search successful",
            extra={
                "food_name": food_name,
                "product_name": product.get("product_name"),
                "calories": profile.calories,
            },
        )
        return profile

    def _extract_nutrients(self, product_data: Dict[str, Any]) -> Optional[NutrientProfile]:
        """
        Extract per-100g nutrients from OpenFoodFacts product data.

        - Calories: prefer energy-kcal_100g, fallback to energy_100g / 4.184
        - Sodium (mg): prefer sodium_100g (g), fallback to salt_100g * 400

        Returns:
            NutrientProfile, or None if every macro is missing or zero
        """
        nutriments = product_data.get("nutriments") or {}

        def get_float(key: str) -> Optional[float]:
            """Extract float value from nutriments."""
            value = nutriments.get(key)
            try:
                return max(0.0, float(value)) if value is not None else None
            except (TypeError, ValueError):
                return None

        calories = get_float("energy-kcal_100g")
        if calories is None:
            energy_kj = get_float("energy_100g")
            if energy_kj is not None:
                calories = energy_kj / 4.184

        protein = get_float("proteins_100g")
        carbs = get_float("carbohydrates_100g")
        fat = get_float("fat_100g")

        if not any((calories, protein, carbs, fat)):
            return None

        sodium_g = get_float("sodium_100g")
        if sodium_g is None:
            salt_g = get_float("salt_100g")
            if salt_g is not None:
                sodium_g = salt_g * 0.4

        return NutrientProfile(
            calories=round(calories or 0.0, 1),
            protein=round(protein or 0.0, 1),
            carbs=round(carbs or 0.0, 1),
            fat=round(fat or 0.0, 1),
            fiber=get_float("fiber_100g"),
            sugar=get_float("sugars_100g"),
            sodium=round(sodium_g * 1000, 0) if sodium_g is not None else None,
            source="OPENFOODFACTS",
            quantity_g=100.0,
            description=product_data.get("product_name"),
        )

    def get_cache_stats(self) -> Dict[str, Any]:
        """Summarize cached lookups (hits and memoized misses)."""
        now = self._cache.now()
        entries = []
        for key, entry in self._cache.items():
            entries.append(
                {
                    "food": key,
                    "has_data": entry.value != NOT_FOUND,
                    "cached_at": datetime.fromtimestamp(entry.stored_at, tz=timezone.utc).isoformat(),
                    "expired": entry.is_expired(now),
                }
            )
        return {"total_entries": len(entries), "entries": entries}

    def clear_expired_cache(self) -> int:
        cleared = self._cache.remove_expired()
        logger.info("OpenFoodFacts cache cleanup", extra={"cleared": cleared})
        return cleared
