"""Unit tests for portion normalization.

Tests the rule order: explicit units, food-specific rules, volume units,
size words, named foods, fallback.
"""

import pytest

from nutrition_engine.domain.nutrition.services.portion_normalizer import (
    MAX_COUNT,
    MAX_PORTION_G,
    estimate_portion,
    extract_count,
    normalize,
)


class TestExtractCount:
    """Test leading count parsing."""

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("2 eggs", 2.0),
            ("1.5 cups", 1.5),
            ("1/2 cup", 0.5),
            ("1 1/2 cups", 1.5),
            ("two slices", 2.0),
            ("a dozen eggs", 12.0),
            ("half a cup", 0.5),
        ],
    )
    def test_counts(self, text: str, expected: float) -> None:
        assert extract_count(text) == expected

    def test_no_count(self) -> None:
        assert extract_count("packet of crisps") is None


class TestExplicitUnits:
    """Test explicit mass and volume quantities."""

    def test_grams(self) -> None:
        assert normalize("150g", "chicken breast") == 150.0

    def test_ounces(self) -> None:
        assert normalize("1 oz", "cheddar") == 28.35

    def test_kilograms(self) -> None:
        assert normalize("0.5 kg", "potatoes") == 500.0

    def test_millilitres(self) -> None:
        assert normalize("250ml", "milk") == 250.0

    def test_multiplier_form(self) -> None:
        """'2 x 25g' is two 25g units."""
        assert normalize("2 x 25g", "crisps") == 50.0

    def test_stated_total_not_multiplied(self) -> None:
        """'2 slices (60g)' already states the total."""
        assert normalize("2 slices (60g)", "bread") == 60.0

    def test_explicit_unit_beats_food_rule(self) -> None:
        estimate = estimate_portion("100g", "scrambled eggs")
        assert estimate.rule == "explicit_unit"
        assert estimate.grams == 100.0


class TestFoodSpecificRules:
    """Test egg, snack, bacon, sausage and hash brown rules."""

    def test_two_large_eggs(self) -> None:
        assert normalize("2 large eggs", "egg") == 100.0

    def test_egg_sizes(self) -> None:
        assert normalize("1 small egg", "egg") == 38.0
        assert normalize("1 medium egg", "egg") == 44.0
        assert normalize("3 eggs", "fried egg") == 150.0

    def test_packet_of_crisps(self) -> None:
        assert normalize("packet of crisps", "crisps") == 25.0

    def test_sharing_bag_of_crisps(self) -> None:
        assert normalize("1 sharing bag", "crisps") == 150.0

    def test_back_bacon_rashers(self) -> None:
        assert normalize("3 rashers back bacon", "back bacon") == 84.0

    def test_streaky_bacon_rashers(self) -> None:
        assert normalize("4 rashers", "streaky bacon") == 60.0

    def test_sausages(self) -> None:
        assert normalize("2 sausages", "pork sausage") == 90.0

    def test_hash_browns(self) -> None:
        assert normalize("2 hash browns", "hash brown") == 130.0
        assert normalize("3 hash brown rounds", "hash brown") == 135.0

    def test_egg_rule_skips_egg_dishes(self) -> None:
        estimate = estimate_portion("1 sandwich", "egg salad sandwich")
        assert estimate.rule != "egg"


class TestVolumeAndSizeWords:
    """Test cups, spoons, slices and size adjectives."""

    def test_cup(self) -> None:
        assert normalize("1 cup", "cooked rice") == 240.0

    def test_half_a_cup(self) -> None:
        assert normalize("half a cup", "oats") == 120.0

    def test_tablespoons(self) -> None:
        assert normalize("2 tbsp", "olive oil") == 30.0

    def test_slices(self) -> None:
        assert normalize("2 slices", "white toast") == 60.0

    def test_serving(self) -> None:
        assert normalize("1 serving", "lasagne") == 150.0

    def test_size_word_flat(self) -> None:
        assert normalize("medium bowl", "pasta") == 150.0

    def test_size_word_with_count(self) -> None:
        assert normalize("2 medium", "mystery fruit") == 300.0


class TestNamedFoodsAndFallback:
    """Test standard unit weights and the fallback."""

    def test_named_food(self) -> None:
        assert normalize("1 banana", "banana") == 118.0

    def test_named_food_with_count(self) -> None:
        assert normalize("4 Weetabix", "weetabix") == 76.0

    def test_fallback_minimum(self) -> None:
        estimate = estimate_portion("some", "mystery stew")
        assert estimate.rule == "fallback"
        assert estimate.grams == 50.0

    def test_fallback_scales_with_count(self) -> None:
        assert normalize("3 things", "mystery stew") == 75.0

    def test_missing_portion_text(self) -> None:
        assert normalize(None, None) == 50.0

    def test_always_positive(self) -> None:
        for text in ("", "0g", "0", "lots", "???"):
            assert normalize(text, "food") > 0


class TestBounds:
    """Test absurd quantities stay finite."""

    def test_huge_count_is_clamped(self) -> None:
        assert extract_count("9" * 400 + " pieces") == MAX_COUNT

    def test_huge_portion_is_clamped(self) -> None:
        grams = normalize("9" * 400 + " pieces", "rice")
        assert grams == MAX_PORTION_G

    def test_huge_explicit_unit_is_clamped(self) -> None:
        assert normalize("9" * 400 + "g", "rice") == MAX_PORTION_G

    def test_zero_denominator(self) -> None:
        assert normalize("1/0 cup", "milk") > 0
