"""Portion normalization: free-text portion description → grams.

Analysis backends describe portions the way people do ("2 large eggs",
"25g", "1 packet", "half a cup"). Nutrition databases report values per
100g, so every portion has to become a mass before scaling.

Resolution order (first matching rule wins):

1. explicit units      → kg / g / oz / lb / ml / l
2. food-specific rules → eggs, bacon rashers, sausages, snack packets,
                         hash browns
3. volume units        → cup / tablespoon / teaspoon
4. size words          → slice / piece / serving, small / medium / large
5. named foods         → standard single-unit weights of common items
6. fallback            → max(50, count * 25)

Every rule multiplies by the leading count of the text except the flat
small / medium / large size words. The module is pure: no I/O, never raises,
always returns a positive number of grams.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple


# ---- Data Structures ----


@dataclass(slots=True, frozen=True)
class PortionEstimate:
    """Grams estimated for a portion, with the rule that produced them."""

    grams: float
    rule: str
    count: float = 1.0


# ---- Constants ----

OUNCE_G = 28.35
POUND_G = 453.592

WORD_NUMBERS: Dict[str, float] = {
    "a": 1,
    "an": 1,
    "one": 1,
    "two": 2,
    "three": 3,
    "four": 4,
    "five": 5,
    "six": 6,
    "seven": 7,
    "eight": 8,
    "nine": 9,
    "ten": 10,
    "eleven": 11,
    "twelve": 12,
    "half": 0.5,
    "couple": 2,
    "dozen": 12,
}

_NUMBER = r"\d+\s+\d+\s*/\s*\d+|\d+\s*/\s*\d+|\d+(?:\.\d+)?"

_LEADING_COUNT_RE = re.compile(rf"^\s*(?P<num>{_NUMBER})")
_LEADING_WORD_RE = re.compile(
    r"^\s*(?:a\s+)?(?P<word>" + "|".join(sorted(WORD_NUMBERS, key=len, reverse=True)) + r")\b"
)
_MULTIPLIER_RE = re.compile(rf"^\s*(?P<num>{_NUMBER})\s*x\s*(?=\d)")

# (pattern, grams per unit); explicit mass/volume quantities
_EXPLICIT_UNITS: List[Tuple[re.Pattern[str], float]] = [
    (re.compile(rf"(?P<num>{_NUMBER})\s*(?:kg|kgs|kilograms?|kilos?)\b"), 1000.0),
    (re.compile(rf"(?P<num>{_NUMBER})\s*(?:g|gr|grams?|grammes?)\b"), 1.0),
    (re.compile(rf"(?P<num>{_NUMBER})\s*(?:oz|ounces?)\b"), OUNCE_G),
    (re.compile(rf"(?P<num>{_NUMBER})\s*(?:lbs?|pounds?)\b"), POUND_G),
    (re.compile(rf"(?P<num>{_NUMBER})\s*(?:ml|millilit(?:re|er)s?)\b"), 1.0),
    (re.compile(rf"(?P<num>{_NUMBER})\s*(?:l|lit(?:re|er)s?)\b"), 1000.0),
]

_VOLUME_UNITS: List[Tuple[re.Pattern[str], float]] = [
    (re.compile(r"\bcups?\b"), 240.0),
    (re.compile(r"\b(?:tbsps?|tbs|tablespoons?)\b"), 15.0),
    (re.compile(r"\b(?:tsps?|teaspoons?)\b"), 5.0),
]

_UNIT_WORDS: List[Tuple[re.Pattern[str], float]] = [
    (re.compile(r"\bslices?\b"), 30.0),
    (re.compile(r"\b(?:pieces?|items?)\b"), 50.0),
    (re.compile(r"\b(?:servings?|portions?|helpings?)\b"), 150.0),
]

SIZE_WORDS: Dict[str, float] = {
    "small": 75.0,
    "medium": 150.0,
    "large": 300.0,
}

_GENERIC_UNIT_RE = re.compile(
    r"\b(?:cups?|tbsps?|tbs|tablespoons?|tsps?|teaspoons?|slices?|pieces?|items?|"
    r"servings?|portions?|helpings?|bowls?|plates?)\b"
)

EGG_SIZES_G = {"small": 38.0, "medium": 44.0, "large": 50.0}
EGG_DEFAULT_G = 50.0
_EGG_RE = re.compile(r"\beggs?\b")
_EGG_EXCLUDE_RE = re.compile(r"noodle|fried rice|plant|custard|mayo|salad|sandwich|roll|tart")

BACON_BACK_G = 28.0
BACON_STREAKY_G = 15.0
_BACON_RE = re.compile(r"\bbacon\b|\brashers?\b")
_STREAKY_RE = re.compile(r"\bstreaky\b|\bamerican\b|\bstrips?\b")

SAUSAGE_LINK_G = 45.0
_SAUSAGE_RE = re.compile(r"\bsausages?\b|\bbangers?\b|\blinks?\b")
_SAUSAGE_EXCLUDE_RE = re.compile(r"\broll\b|\bcasserole\b|\bpasta\b|\bpizza\b")

SNACK_PACKET_G = 25.0
SNACK_SHARING_BAG_G = 150.0
_SNACK_RE = re.compile(r"\bcrisps\b|\bpotato chips\b|\btortilla chips\b|\bpopcorn\b|\bpretzels\b")
_PACKET_RE = re.compile(r"\b(?:packets?|packs?|bags?)\b")
_SHARING_RE = re.compile(r"\bsharing\b|\bfamily\b|\blarge bag\b|\bbig bag\b|\bgrab bag\b")

HASH_BROWN_ROUND_G = 45.0
HASH_BROWN_PATTY_G = 65.0
_HASH_BROWN_RE = re.compile(r"\bhash ?browns?\b")
_HASH_BROWN_ROUND_RE = re.compile(r"\brounds?\b")

# Standard single-unit weights; longer names are tried first.
NAMED_FOOD_PORTIONS_G: Dict[str, float] = {
    # Burgers and fast food
    "big mac": 219.0,
    "quarter pounder": 195.0,
    "whopper": 290.0,
    "cheeseburger": 120.0,
    "hamburger": 105.0,
    "burger": 195.0,
    "chicken nugget": 17.0,
    # Meat and fish
    "chicken breast": 150.0,
    "chicken thigh": 110.0,
    "chicken drumstick": 75.0,
    "salmon fillet": 140.0,
    "fish fillet": 140.0,
    "steak": 225.0,
    "pork chop": 150.0,
    # Bakery and cereal
    "weetabix": 19.0,
    "shredded wheat": 22.5,
    "bread": 28.0,
    "toast": 28.0,
    "bagel": 100.0,
    "croissant": 60.0,
    "crumpet": 55.0,
    "english muffin": 60.0,
    "muffin": 110.0,
    "pitta": 60.0,
    "tortilla wrap": 62.0,
    "wrap": 62.0,
    "naan": 90.0,
    "digestive": 15.0,
    "biscuit": 12.0,
    "cookie": 15.0,
    "pancake": 75.0,
    "waffle": 75.0,
    # Dairy
    "yogurt pot": 125.0,
    "yoghurt pot": 125.0,
    "cheese slice": 20.0,
    # Fruit (medium)
    "apple": 182.0,
    "banana": 118.0,
    "orange": 131.0,
    "pear": 178.0,
    "peach": 150.0,
    "nectarine": 142.0,
    "plum": 66.0,
    "kiwi": 75.0,
    "clementine": 74.0,
    "satsuma": 74.0,
    "mango": 200.0,
    "avocado": 150.0,
    "grapefruit": 246.0,
    # Vegetables (medium)
    "tomato": 123.0,
    "potato": 213.0,
    "sweet potato": 130.0,
    "carrot": 61.0,
    "onion": 110.0,
    "bell pepper": 119.0,
    "pepper": 119.0,
    "courgette": 196.0,
    "zucchini": 196.0,
    "cucumber": 300.0,
    # Confectionery
    "chocolate bar": 45.0,
    "kitkat": 42.0,
    "mars bar": 51.0,
    "snickers": 50.0,
}

_NAMED_FOOD_PATTERNS: List[Tuple[re.Pattern[str], str, float]] = [
    (re.compile(rf"\b{re.escape(name)}(?:e?s)?\b"), name, grams)
    for name, grams in sorted(NAMED_FOOD_PORTIONS_G.items(), key=lambda kv: len(kv[0]), reverse=True)
]

FALLBACK_MIN_G = 50.0
FALLBACK_PER_UNIT_G = 25.0

# Upper bounds keeping absurd portions ("99999... pieces") finite
MAX_NUMBER = 1_000_000.0
MAX_COUNT = 1000.0
MAX_PORTION_G = 10_000.0


# ---- Parsing helpers ----


def _bounded(value: float) -> float:
    if math.isnan(value):
        return 0.0
    return min(value, MAX_NUMBER)


def _parse_number(raw: str) -> float:
    """Parse "2", "1.5", "1/2" or "1 1/2" into a float."""
    raw = raw.strip()
    mixed = re.fullmatch(r"(\d+)\s+(\d+)\s*/\s*(\d+)", raw)
    if mixed:
        whole, num, den = (float(g) for g in mixed.groups())
        return _bounded(whole + (num / den if den else 0.0))
    fraction = re.fullmatch(r"(\d+)\s*/\s*(\d+)", raw)
    if fraction:
        num, den = (float(g) for g in fraction.groups())
        return _bounded(num / den if den else 0.0)
    return _bounded(float(raw))


def extract_count(text: str) -> Optional[float]:
    """
    Extract the leading count of a portion description.

    Examples:
        >>> extract_count("4 Weetabix")
        4.0
        >>> extract_count("two slices")
        2.0
        >>> extract_count("1 1/2 cups")
        1.5
        >>> extract_count("packet of crisps") is None
        True
    """
    match = _LEADING_COUNT_RE.match(text)
    if match:
        value = min(_parse_number(match.group("num")), MAX_COUNT)
        return value if value > 0 else None
    word = _LEADING_WORD_RE.match(text)
    if word:
        return WORD_NUMBERS[word.group("word")]
    return None


def _clean(text: Optional[str]) -> str:
    s = (text or "").strip().lower()
    s = s.replace("½", " 1/2").replace("¼", " 1/4").replace("¾", " 3/4")
    s = re.sub(r"\s+", " ", s)
    return s.strip()


# ---- Rules ----


def _explicit_units(portion: str) -> Optional[PortionEstimate]:
    for pattern, grams_per_unit in _EXPLICIT_UNITS:
        match = pattern.search(portion)
        if not match:
            continue
        amount = _parse_number(match.group("num"))
        if amount <= 0:
            continue
        # "2 x 25g" multiplies; "2 slices (60g)" already states the total
        multiplier = 1.0
        mult_match = _MULTIPLIER_RE.match(portion)
        if mult_match and mult_match.end() <= match.start():
            multiplier = _parse_number(mult_match.group("num"))
        return PortionEstimate(amount * grams_per_unit * multiplier, "explicit_unit", multiplier)
    return None


def _food_specific(portion: str, food: str, count: float) -> Optional[PortionEstimate]:
    context = f"{portion} {food}"
    has_generic_unit = bool(_GENERIC_UNIT_RE.search(portion))

    # Eggs sized by descriptor
    if (
        _EGG_RE.search(context)
        and not _EGG_EXCLUDE_RE.search(food)
        and (_EGG_RE.search(portion) or not has_generic_unit)
    ):
        per_egg = EGG_DEFAULT_G
        for size, grams in EGG_SIZES_G.items():
            if re.search(rf"\b{size}\b", portion):
                per_egg = grams
                break
        return PortionEstimate(count * per_egg, "egg", count)

    # Snack packets: single-serve vs sharing bags
    if _SNACK_RE.search(context) and (_PACKET_RE.search(portion) or not has_generic_unit):
        per_pack = SNACK_SHARING_BAG_G if _SHARING_RE.search(context) else SNACK_PACKET_G
        return PortionEstimate(count * per_pack, "snack_packet", count)

    # Bacon rashers by cut
    if _BACON_RE.search(context) and (
        re.search(r"\b(?:rashers?|slices?|strips?)\b", portion) or not has_generic_unit
    ):
        per_rasher = BACON_STREAKY_G if _STREAKY_RE.search(context) else BACON_BACK_G
        return PortionEstimate(count * per_rasher, "bacon", count)

    # Sausage links
    if (
        _SAUSAGE_RE.search(context)
        and not _SAUSAGE_EXCLUDE_RE.search(context)
        and not has_generic_unit
    ):
        return PortionEstimate(count * SAUSAGE_LINK_G, "sausage", count)

    # Hash browns: rounds vs patties
    if _HASH_BROWN_RE.search(context) and not has_generic_unit:
        per_piece = HASH_BROWN_ROUND_G if _HASH_BROWN_ROUND_RE.search(context) else HASH_BROWN_PATTY_G
        return PortionEstimate(count * per_piece, "hash_brown", count)

    return None


def _volume_units(portion: str, count: float) -> Optional[PortionEstimate]:
    for pattern, grams in _VOLUME_UNITS:
        if pattern.search(portion):
            return PortionEstimate(count * grams, "volume_unit", count)
    return None


def _size_words(portion: str, count: float, explicit_count: bool) -> Optional[PortionEstimate]:
    for pattern, grams in _UNIT_WORDS:
        if pattern.search(portion):
            return PortionEstimate(count * grams, "unit_word", count)

    for word, grams in SIZE_WORDS.items():
        match = re.search(rf"\b{word}\b", portion)
        if not match:
            continue
        # Multiplied only when the count sits right before the size word ("2 medium")
        prefix = portion[: match.start()].strip()
        if explicit_count and re.fullmatch(rf"(?:{_NUMBER})|[a-z]+", prefix) and extract_count(prefix):
            return PortionEstimate(count * grams, "size_word", count)
        return PortionEstimate(grams, "size_word", 1.0)
    return None


def _named_food(portion: str, food: str, count: float) -> Optional[PortionEstimate]:
    for source in (food, portion):
        for pattern, _name, grams in _NAMED_FOOD_PATTERNS:
            if pattern.search(source):
                return PortionEstimate(count * grams, "named_food", count)
    return None


# ---- Public API ----


def estimate_portion(portion_text: Optional[str], food_name: Optional[str] = None) -> PortionEstimate:
    """
    Estimate the mass of a portion, reporting which rule matched.

    Args:
        portion_text: Free-text portion ("2 large eggs", "25g", "1 packet")
        food_name: Detected food name, used for food-specific rules

    Returns:
        PortionEstimate with 0 < grams <= MAX_PORTION_G
    """
    portion = _clean(portion_text)
    food = _clean(food_name)

    leading = extract_count(portion)
    explicit_count = leading is not None
    count = leading if leading is not None else 1.0

    estimate = (
        _explicit_units(portion)
        or _food_specific(portion, food, count)
        or _volume_units(portion, count)
        or _size_words(portion, count, explicit_count)
        or _named_food(portion, food, count)
    )
    if estimate is None or not estimate.grams > 0:
        estimate = PortionEstimate(max(FALLBACK_MIN_G, count * FALLBACK_PER_UNIT_G), "fallback", count)
    if estimate.grams > MAX_PORTION_G:
        return PortionEstimate(MAX_PORTION_G, estimate.rule, estimate.count)
    return estimate


def normalize(portion_text: Optional[str], food_name: Optional[str] = None) -> float:
    """
    Convert a portion description into grams.

    Examples:
        >>> normalize("2 large eggs", "egg")
        100.0
        >>> normalize("packet of crisps", "crisps")
        25.0
        >>> normalize("1 oz", "cheddar")
        28.35
    """
    return round(estimate_portion(portion_text, food_name).grams, 2)
