"""
Trigger category taxonomy.

One table maps each category id to its display name, icon, examples,
synonyms and safe alternatives. The upstream tagger, the insight services and
the presentation layer all resolve categories through this module.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TriggerCategory:
    id: str
    display_name: str
    icon: str
    examples: str
    synonyms: Tuple[str, ...] = field(default_factory=tuple)
    safe_alternatives: Tuple[str, ...] = field(default_factory=tuple)


TRIGGER_CATEGORIES: List[TriggerCategory] = [
    TriggerCategory(
        id="fodmaps-fructans",
        display_name="FODMAPs - Fructans",
        icon="🧅",
        examples="Wheat, bread, onions, garlic",
        synonyms=("fructans", "grains", "wheat", "onion", "garlic"),
        safe_alternatives=("garlic-infused oil", "green part of scallions", "chives", "asafoetida"),
    ),
    TriggerCategory(
        id="fodmaps-gos",
        display_name="FODMAPs - GOS",
        icon="🫘",
        examples="Beans, lentils, chickpeas",
        synonyms=("gos", "beans", "legumes", "lentils"),
        safe_alternatives=("canned lentils (rinsed)", "firm tofu", "tempeh"),
    ),
    TriggerCategory(
        id="fodmaps-lactose",
        display_name="FODMAPs - Lactose",
        icon="🥛",
        examples="Milk, soft cheese, yogurt",
        synonyms=("lactose",),
        safe_alternatives=("lactose-free milk", "hard cheeses", "almond milk", "oat milk"),
    ),
    TriggerCategory(
        id="fodmaps-fructose",
        display_name="FODMAPs - Fructose",
        icon="🍎",
        examples="Apples, honey, mango",
        synonyms=("fructose", "fruit"),
        safe_alternatives=("blueberries", "strawberries", "oranges", "grapes"),
    ),
    TriggerCategory(
        id="fodmaps-polyols",
        display_name="FODMAPs - Polyols",
        icon="🍬",
        examples="Sugar-free gum, stone fruits",
        synonyms=("polyols", "sweeteners", "sugar-alcohols"),
        safe_alternatives=("maple syrup", "rice malt syrup", "glucose"),
    ),
    TriggerCategory(
        id="gluten",
        display_name="Gluten",
        icon="🌾",
        examples="Wheat, barley, rye, beer",
        synonyms=("barley", "rye"),
        safe_alternatives=("rice", "quinoa", "gluten-free bread", "sourdough (long ferment)"),
    ),
    TriggerCategory(
        id="dairy",
        display_name="Dairy",
        icon="🥛",
        examples="All milk products",
        synonyms=("milk", "cheese"),
        safe_alternatives=("lactose-free milk", "almond milk", "oat milk", "coconut yogurt"),
    ),
    TriggerCategory(
        id="cruciferous",
        display_name="Cruciferous",
        icon="🥦",
        examples="Broccoli, cabbage, Brussels sprouts",
        synonyms=("veggies", "brassica", "broccoli", "cabbage"),
        safe_alternatives=("carrots", "zucchini", "bell peppers", "spinach", "cucumber"),
    ),
    TriggerCategory(
        id="high-fat",
        display_name="High-Fat/Fried",
        icon="🍟",
        examples="Fried foods, fatty meats",
        synonyms=("fatty-food", "fried", "fatty"),
        safe_alternatives=("grilled proteins", "baked alternatives", "air-fried options"),
    ),
    TriggerCategory(
        id="carbonated",
        display_name="Carbonated",
        icon="🫧",
        examples="Soda, sparkling water",
        synonyms=("soda", "fizzy"),
        safe_alternatives=("still water", "herbal tea", "infused water"),
    ),
    TriggerCategory(
        id="refined-sugar",
        display_name="Refined Sugar",
        icon="🍭",
        examples="Candy, pastries, white bread",
        synonyms=("sugar", "candy"),
        safe_alternatives=("maple syrup", "stevia", "fresh fruit"),
    ),
    TriggerCategory(
        id="alcohol",
        display_name="Alcohol",
        icon="🍷",
        examples="Beer, wine, spirits",
        synonyms=("wine", "beer", "spirits"),
        safe_alternatives=("mocktails", "sparkling water with lime", "kombucha"),
    ),
]

_BY_ID: Dict[str, TriggerCategory] = {c.id: c for c in TRIGGER_CATEGORIES}
_BY_SYNONYM: Dict[str, TriggerCategory] = {
    synonym: c for c in TRIGGER_CATEGORIES for synonym in c.synonyms
}


def normalize_category(name: str) -> str:
    """Normalize a raw category label for lookup."""
    return name.lower().strip().replace("_", "-").replace(" ", "-")


def resolve_category(name: Optional[str]) -> Optional[str]:
    """
    Resolve a raw tagger label to a canonical category id.

    Returns None for empty or unknown labels; the caller treats those as
    zero-weight contributions.
    """
    if not name:
        return None
    key = normalize_category(name)
    category = _BY_ID.get(key) or _BY_SYNONYM.get(key)
    if category is None:
        logger.debug("Ignoring unknown trigger category %r", name)
        return None
    return category.id


def get_category(category_id: str) -> Optional[TriggerCategory]:
    return _BY_ID.get(category_id)


def display_name(category_id: str) -> str:
    """Display name for a category id, falling back to the id itself."""
    category = _BY_ID.get(category_id)
    return category.display_name if category else category_id


def safe_alternatives(category_id: str) -> List[str]:
    category = _BY_ID.get(category_id)
    return list(category.safe_alternatives) if category else []
