"""Food name preprocessing and nutrient-database candidate scoring.

AI backends return names like "2 slices of back bacon (grilled)" while USDA
FoodData Central is searched best with short generic terms ("pork bacon
cured"). This module holds the two halves of that reconciliation:

- preprocess_food_name(): turn a detected name into a search term
- select_best_candidate(): pick the most plausible search result

Both are pure functions; the USDA client wires them around its HTTP calls.
"""

import re
from functools import lru_cache
from typing import Any, Dict, Iterable, List, Optional, Tuple


# UK / regional terms → USDA vocabulary. Only unambiguous terms: generic
# words like "chips" or "biscuit" mean different things in US English.
UK_TO_US_FOOD_MAP: Dict[str, str] = {
    # Vegetables
    "aubergine": "eggplant",
    "courgette": "zucchini",
    "rocket": "arugula",
    "spring onions": "scallions",
    "spring onion": "scallion",
    "mangetout": "snow peas",
    "swede": "rutabaga",
    "beetroot": "beets",
    # Meat
    "beef mince": "ground beef",
    "minced beef": "ground beef",
    "pork mince": "ground pork",
    "minced pork": "ground pork",
    "lamb mince": "ground lamb",
    "minced lamb": "ground lamb",
    "turkey mince": "ground turkey",
    "minced turkey": "ground turkey",
    "gammon": "ham",
    "back bacon": "pork bacon cured",
    "streaky bacon": "streaky pork bacon",
    "black pudding": "blood sausage",
    # Cereals
    "weetabix": "weetabix cereal biscuit",
    "porridge": "oatmeal",
    # Dairy
    "single cream": "light cream",
    "double cream": "heavy cream",
    # Herbs and other
    "coriander": "cilantro",
    "crisps": "potato chips",
}

def _uk_pattern(uk: str, us: str) -> re.Pattern:
    # A term that already reads as its replacement ("weetabix cereal biscuit")
    # is left alone, so mapping twice gives the same text
    if us.startswith(uk + " "):
        return re.compile(rf"\b{re.escape(uk)}\b(?!{re.escape(us[len(uk):])}\b)")
    return re.compile(rf"\b{re.escape(uk)}\b")


_UK_PATTERNS: List[Tuple[re.Pattern, str]] = [
    (_uk_pattern(uk, us), us)
    for uk, us in sorted(UK_TO_US_FOOD_MAP.items(), key=lambda kv: len(kv[0]), reverse=True)
]

_UNIT_FRAGMENT_RE = re.compile(
    r"\b\d+(?:[.,/]\d+)?\s*(?:kg|g|gr|grams?|oz|ounces?|lbs?|pounds?|ml|l|litres?|liters?|"
    r"cups?|tbsps?|tablespoons?|tsps?|teaspoons?)\b"
)
_LEADING_COUNT_RE = re.compile(
    r"^(?:\d+(?:[.,/]\d+)?|one|two|three|four|five|six|seven|eight|nine|ten|a|an|half)\s+"
)
_PORTION_DESCRIPTOR_RE = re.compile(
    r"\b(?:slices?|pieces?|portions?|servings?|helpings?|bowls?|plates?|packets?|bags?|"
    r"handfuls?|rashers?|cups?|glasses?|cans?|pots?)\s+of\b"
    r"|\b(?:extra large|small|medium|large|regular|half|whole portion)\b"
)
_PARENTHESES_RE = re.compile(r"\([^)]*\)")

MEAT_FREE_TERMS = (
    "vegetarian",
    "vegan",
    "meatless",
    "meat-free",
    "meat free",
    "plant-based",
    "plant based",
    "veggie",
    "quorn",
    "tofu",
    "soy",
    "imitation",
    "meat substitute",
)
POULTRY_TERMS = ("chicken", "turkey", "duck")
OTHER_MEAT_TERMS = ("beef", "lamb", "pork", "venison")

# Simple foods whose generic search returns processed variants first
SIMPLE_FOODS_PREFER_RAW = {
    "potato",
    "potatoes",
    "tomato",
    "tomatoes",
    "onion",
    "onions",
    "carrot",
    "carrots",
    "spinach",
    "broccoli",
    "zucchini",
    "eggplant",
    "bell pepper",
    "cucumber",
    "apple",
    "banana",
    "avocado",
}

PREPARATION_WORDS = (
    "raw",
    "fried",
    "boiled",
    "baked",
    "grilled",
    "roasted",
    "steamed",
    "cooked",
    "scrambled",
    "poached",
    "dried",
    "canned",
    "whole",
    "white",
    "yolk",
)


def _contains_any(text: str, terms: Iterable[str]) -> bool:
    return any(re.search(rf"\b{re.escape(term)}\b", text) for term in terms)


def map_uk_food_terms(text: str) -> str:
    """
    Replace UK-specific food terms with their USDA equivalents.

    Example:
        >>> map_uk_food_terms("courgette and beef mince")
        'zucchini and ground beef'
    """
    mapped = text.lower()
    for pattern, us_term in _UK_PATTERNS:
        mapped = pattern.sub(us_term, mapped)
    return mapped


@lru_cache(maxsize=512)
def preprocess_food_name(food_name: str) -> str:
    """
    Turn a detected food name into a nutrient-database search term.

    Strips portion descriptors and digit+unit fragments, rewrites UK and
    generic synonyms, and steers unqualified bacon/sausage toward pork.

    Args:
        food_name: Name as produced by an analysis backend

    Returns:
        Lower-case search term (may be empty for empty input)

    Example:
        >>> preprocess_food_name("2 rashers of back bacon")
        'pork bacon cured'
        >>> preprocess_food_name("Eggs")
        'egg whole raw'
    """
    term = food_name.lower().strip()
    term = _PARENTHESES_RE.sub(" ", term)
    term = _UNIT_FRAGMENT_RE.sub(" ", term)
    term = re.sub(r"[^\w\s,'-]", " ", term)
    term = re.sub(r"\s+", " ", term).strip()
    term = _LEADING_COUNT_RE.sub("", term)
    term = _PORTION_DESCRIPTOR_RE.sub(" ", term)
    term = re.sub(r"\s+", " ", term).strip(" ,-")

    term = map_uk_food_terms(term)

    # Unqualified bacon / sausage default to pork
    if re.search(r"\b(?:bacon|sausages?)\b", term) and not (
        _contains_any(term, MEAT_FREE_TERMS)
        or _contains_any(term, POULTRY_TERMS)
        or _contains_any(term, OTHER_MEAT_TERMS)
        or "blood sausage" in term
    ):
        term = f"pork {term}"

    term = re.sub(r"\bsausages\b", "sausage", term)

    has_preparation = _contains_any(term, PREPARATION_WORDS)
    if not has_preparation:
        if term in ("egg", "eggs"):
            term = "egg whole raw"
        elif term in SIMPLE_FOODS_PREFER_RAW:
            term = f"{term} raw"

    return re.sub(r"\s+", " ", term).strip()


# ---- Candidate scoring ----

# Energy, protein, fat, carbohydrate: legacy numbers and current ids
CORE_NUTRIENTS = {
    "energy": ("208", "1008"),
    "protein": ("203", "1003"),
    "fat": ("204", "1004"),
    "carbs": ("205", "1005"),
}

KNOWN_BRANDS = (
    "walkers",
    "heinz",
    "kellogg",
    "kelloggs",
    "mcdonald",
    "mcdonalds",
    "burger king",
    "tesco",
    "sainsbury",
    "asda",
    "kraft",
    "nestle",
    "quaker",
    "cadbury",
    "doritos",
    "pringles",
    "oscar mayer",
    "hormel",
    "tyson",
    "subway",
)

# (descriptor, penalty); applied unless the query itself asks for it
DESCRIPTOR_PENALTIES: Tuple[Tuple[str, int], ...] = (
    (r"jumbo|giant|king size|super size", -80),
    (r"premium|deluxe|gourmet|luxury", -80),
    (r"loaded|smothered|double|triple", -100),
    (r"family size|multi-?pack|party size|sharing", -120),
    (r"breaded|battered|coated", -150),
    (r"fried", -120),
    (r"with sauce|in sauce|sauce|gravy", -120),
    (r"glazed|candied|honey roasted|sweetened", -100),
    (r"stuffed|filled", -100),
)

_GENERIC_RAW_RE = re.compile(r"^[\w\s-]+,\s*(?:[\w\s-]+,\s*)?raw\b")
_GENERIC_COOKED_RE = re.compile(r"^[\w\s-]+,\s*(?:[\w\s-]+,\s*)?(?:cooked|boiled|baked|roasted)\b")
_TYPICAL_RE = re.compile(r"\b(?:average|typical|standard|plain|generic)\b")
_ALL_CAPS_RUN_RE = re.compile(r"\b[A-Z][A-Z'&]+(?:\s+[A-Z][A-Z'&]+)+\b")


def _nutrient_number(entry: Dict[str, Any]) -> Optional[str]:
    # Search API: nutrientNumber/nutrientId + value; detail API: nutrient{number,id} + amount
    number = entry.get("nutrientNumber")
    if number is None:
        nested = entry.get("nutrient") or {}
        number = nested.get("number")
        if number is None and nested.get("id") is not None:
            number = str(nested.get("id"))
    if number is None and entry.get("nutrientId") is not None:
        number = str(entry.get("nutrientId"))
    return str(number) if number is not None else None


def _nutrient_amount(entry: Dict[str, Any]) -> Optional[float]:
    amount = entry.get("value", entry.get("amount"))
    if amount is None:
        return None
    try:
        return float(amount)
    except (TypeError, ValueError):
        return None


def nutrient_values(food: Dict[str, Any]) -> Dict[str, float]:
    """Map nutrient number → amount for every populated nutrient of a food."""
    values: Dict[str, float] = {}
    for entry in food.get("foodNutrients") or []:
        number = _nutrient_number(entry)
        amount = _nutrient_amount(entry)
        if number is not None and amount is not None:
            values[number] = amount
    return values


def _normalize_description(text: str) -> str:
    text = re.sub(r"[^\w\s]", " ", text.lower())
    return re.sub(r"\s+", " ", text).strip()


def _is_branded(food: Dict[str, Any], description: str, query: str) -> bool:
    if food.get("brandOwner") or food.get("brandName") or food.get("dataType") == "Branded":
        return True
    if _ALL_CAPS_RUN_RE.search(description):
        return True
    desc_lower = description.lower()
    return any(brand in desc_lower and brand not in query for brand in KNOWN_BRANDS)


def _generic_bonus(desc_lower: str) -> int:
    bonus = 0
    if _GENERIC_RAW_RE.search(desc_lower):
        bonus = max(bonus, 150)
    if _GENERIC_COOKED_RE.search(desc_lower):
        bonus = max(bonus, 120)
    if _TYPICAL_RE.search(desc_lower):
        bonus = max(bonus, 90)
    words = _normalize_description(desc_lower).split()
    if 0 < len(words) <= 2:
        bonus = max(bonus, 100)
    return bonus


def _food_specific_nudges(desc: str, query: str) -> int:
    score = 0

    wants_meat_free = _contains_any(query, MEAT_FREE_TERMS)
    if re.search(r"\b(?:bacon|sausage)\b", query) and not wants_meat_free:
        if "pork" in desc:
            score += 80
        for meat in POULTRY_TERMS + ("beef",):
            if meat in desc and meat not in query:
                score -= 120

    if "blood sausage" in query and "blood" in desc:
        score += 150

    if re.search(r"\beggs?\b", query) and not re.search(r"custard|salad|scrambled|noodle", query):
        if re.search(r"custard|salad|scrambled|substitute|noodle|nog", desc):
            score -= 300
        if "whole" in desc:
            score += 120
        if re.search(r"\b(?:raw|fresh)\b", desc):
            score += 60
        if re.search(r"\b(?:white|yolk)\b", desc) and not re.search(r"\b(?:white|yolk)\b", query):
            score -= 150

    return score


def score_candidate(food: Dict[str, Any], query: str) -> int:
    """
    Score a nutrient-database search result against the search term.

    Args:
        food: Search result (fdcId, description, foodNutrients, brand fields)
        query: Preprocessed search term

    Returns:
        Integer score; higher is a better match
    """
    description = food.get("description") or ""
    desc_lower = description.lower()
    query = query.lower()

    values = nutrient_values(food)
    score = len(values)
    has_core = all(
        any(values.get(number, 0) > 0 for number in numbers)
        for numbers in CORE_NUTRIENTS.values()
    )
    if has_core:
        score += 100

    if _contains_any(desc_lower, MEAT_FREE_TERMS) and not _contains_any(query, MEAT_FREE_TERMS):
        score -= 1000

    if _is_branded(food, description, query):
        score -= 200

    score += _generic_bonus(desc_lower)

    for pattern, penalty in DESCRIPTOR_PENALTIES:
        if re.search(rf"\b(?:{pattern})\b", desc_lower) and not re.search(
            rf"\b(?:{pattern})\b", query
        ):
            score += penalty

    score += _food_specific_nudges(desc_lower, query)

    normalized_desc = _normalize_description(description)
    if normalized_desc and _normalize_description(query).startswith(normalized_desc):
        score += 200

    return score


def select_best_candidate(
    foods: List[Dict[str, Any]], query: str
) -> Optional[Tuple[Dict[str, Any], int]]:
    """
    Pick the highest-scoring candidate.

    Ties keep the candidate the search returned first.

    Returns:
        (food, score) or None when there are no candidates
    """
    best: Optional[Tuple[Dict[str, Any], int]] = None
    for food in foods:
        score = score_candidate(food, query)
        if best is None or score > best[1]:
            best = (food, score)
    return best
