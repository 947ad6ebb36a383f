"""Prompts for food detection, shared by every AI backend.

Backends only name foods and estimate portions: nutrition values come from
USDA FoodData Central afterwards, so the prompts ask for database-friendly
names and portions the portion normalizer understands.
"""

from typing import Optional

from nutrition_engine.domain.analysis.entities.analysis_input import TimeContext
from nutrition_engine.domain.nutrition.services.food_matching import map_uk_food_terms

ICON_CHOICES = "egg, bacon, bread-slice, apple-alt, fish, drumstick-bite, carrot, cheese, coffee, utensils"

IMAGE_ANALYSIS_PROMPT = f"""You are an expert nutritionist analyzing a food photo.

Identify every distinct food item and estimate its portion.

PORTION RULES:
- Use reference objects (plates, cutlery, hands, packaging) to judge scale.
- Prefer explicit weights or volumes: "150g", "250ml".
- Countable items keep their count and size: "2 large eggs", "3 rashers back bacon",
  "2 sausages", "1 slice".
- A single-serve crisp packet is "1 packet" (about 25g); say "sharing bag" only
  when it is clearly a sharing size.

NAMING RULES:
- Use plain, generic names a nutrition database would list: "fried egg",
  "back bacon", "baked beans", "white toast".
- Do NOT include nutrition values; they are looked up separately.

Return JSON with:
- confidence: integer 0-100 for the whole analysis
- items: list of {{"name", "portion", "icon"}} where icon is one of: {ICON_CHOICES}
"""

TEXT_ANALYSIS_PROMPT = f"""You are an expert nutritionist parsing a meal description.

Extract every food item with its portion exactly as described.

INTERPRETATION RULES:
- "rice" means cooked rice; "pasta" means cooked pasta; "bread" means sliced bread.
- "chicken" means grilled chicken breast unless stated otherwise.
- "X and Y" becomes two separate items.
- Preserve the user's quantity: "2 eggs" stays "2 eggs", "a packet of crisps"
  stays "1 packet".
- Without a quantity, use a realistic single portion ("1 serving", "150g").

EXAMPLES:
- "chicken and rice" → [{{"name": "grilled chicken breast", "portion": "150g"}},
  {{"name": "cooked white rice", "portion": "200g"}}]
- "eggs and toast" → [{{"name": "scrambled eggs", "portion": "2 large eggs"}},
  {{"name": "whole wheat bread", "portion": "2 slices"}}]

Do NOT include nutrition values.

Return JSON with:
- confidence: integer 0-100
- items: list of {{"name", "portion", "icon"}} where icon is one of: {ICON_CHOICES}
"""

NAME_DETECTION_PROMPT = """Look at this food photo and list the foods you can see.

Return only food names, no portions or nutrition.

Return JSON with:
- confidence: integer 0-100
- names: list of short generic food names (e.g. "fried egg", "baked beans")
"""


def build_text_prompt(description: str, time_context: Optional[TimeContext] = None) -> str:
    """
    User message for text analysis.

    UK terms are rewritten before the model sees them, and the caller's
    local time is included when known.

    Example:
        >>> build_text_prompt("courgette", TimeContext(hour=8))
        'Current time: 08:00, likely breakfast\\n\\nMeal description: "zucchini"'
    """
    mapped = map_uk_food_terms(description.strip())
    if time_context is None:
        return f'Meal description: "{mapped}"'
    return f'Current time: {time_context.describe()}\n\nMeal description: "{mapped}"'
