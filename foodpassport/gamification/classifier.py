"""
Meal Classifier

Derives a normalized signal bundle (cuisine, protein category, diet, setting,
day of week, city) from a meal event.

The enrichment pipeline that fills MealMetadata is best-effort, so an event
may carry full metadata, only a dish name, or nothing at all. Each signal is
resolved through a fixed fallback chain: structured metadata fields first,
then the free-text dish name. Missing data resolves to "no match", never to
an error.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

import pytz

from foodpassport.models.achievement import ContentSignal, Weekday
from foodpassport.models.meal import MealEvent, MealMetadata

logger = logging.getLogger(__name__)


class ProteinCategory(str, Enum):
    SEAFOOD = "seafood"
    PLANT_BASED = "plant_based"
    OTHER = "other"


class SettingCategory(str, Enum):
    TAKEOUT = "takeout"
    DINE_IN = "dine_in"
    UNKNOWN = "unknown"


# ============================================
# Keyword Tables
# ============================================

SENTINEL_VALUES = frozenset({"", "unknown", "n/a", "na", "none", "null"})

SEAFOOD_KEYWORDS = (
    "seafood", "fish", "shrimp", "crab", "lobster", "salmon", "tuna", "sushi",
    "shellfish", "prawn", "clam", "mussel", "oyster", "scallop", "sashimi",
    "calamari", "squid", "octopus",
)
SEAFOOD_CUISINE_KEYWORDS = ("seafood", "sushi", "fish")

VEGETARIAN_DIET_KEYWORDS = ("vegetarian", "vegan", "plant-based", "plant based")
PLANT_PROTEIN_KEYWORDS = (
    "tofu", "tempeh", "seitan", "legume", "bean", "lentil", "chickpea",
    "plant-based", "vegetable", "soy", "nuts", "no meat",
)
NO_PROTEIN_VALUES = frozenset({"none", "n/a"})
VEGETARIAN_FOOD_KEYWORDS = ("salad", "vegetable", "vegetarian", "vegan", "plant-based")
VEGETARIAN_NAME_KEYWORDS = ("vegetarian", "vegan", "plant-based", "veggie", "meatless")

TACO_KEYWORDS = ("taco",)
BEER_KEYWORDS = ("beer", "ale", "lager", "ipa", "stout", "porter", "pilsner")

SUSHI_KEYWORDS = ("sushi", "sashimi", "nigiri", "maki")
# "roll" alone only means sushi when the cuisine already says so
SUSHI_CUISINE_KEYWORDS = ("sushi", "japanese")
SUSHI_ROLL_KEYWORDS = ("roll",)

TAKEOUT_KEYWORDS = ("takeout", "take-out", "to-go", "togo", "delivery", "pickup", "takeaway")
# Spaced phrases are only trusted in the structured setting field
TAKEOUT_SETTING_KEYWORDS = TAKEOUT_KEYWORDS + ("take out", "to go")
DINE_IN_KEYWORDS = ("dine-in", "dine in", "dining", "restaurant", "sit-down", "sit down", "bar", "cafe", "bistro")

# Dish-name fallback for cuisine. First match wins, so longer phrases go first.
CUISINE_NAME_KEYWORDS: tuple[tuple[str, str], ...] = (
    ("pad thai", "thai"), ("pad see ew", "thai"), ("tom yum", "thai"),
    ("green curry", "thai"), ("massaman", "thai"),
    ("banh mi", "vietnamese"), ("pho", "vietnamese"),
    ("dim sum", "chinese"), ("kung pao", "chinese"), ("chow mein", "chinese"),
    ("mapo", "chinese"), ("dumpling", "chinese"),
    ("bibimbap", "korean"), ("bulgogi", "korean"), ("kimchi", "korean"),
    ("sushi", "japanese"), ("sashimi", "japanese"), ("nigiri", "japanese"),
    ("ramen", "japanese"), ("udon", "japanese"), ("tempura", "japanese"),
    ("teriyaki", "japanese"),
    ("taco", "mexican"), ("burrito", "mexican"), ("enchilada", "mexican"),
    ("quesadilla", "mexican"), ("tamale", "mexican"), ("carnitas", "mexican"),
    ("tikka", "indian"), ("masala", "indian"), ("biryani", "indian"),
    ("naan", "indian"), ("samosa", "indian"), ("vindaloo", "indian"),
    ("paneer", "indian"), ("dal", "indian"),
    ("pizza", "italian"), ("pasta", "italian"), ("risotto", "italian"),
    ("lasagna", "italian"), ("gnocchi", "italian"), ("carbonara", "italian"),
    ("gyro", "greek"), ("souvlaki", "greek"), ("moussaka", "greek"),
    ("falafel", "middle eastern"), ("shawarma", "middle eastern"),
    ("hummus", "middle eastern"),
    ("croissant", "french"), ("crepe", "french"), ("ratatouille", "french"),
    ("paella", "spanish"), ("tapas", "spanish"),
    ("burger", "american"), ("hot dog", "american"), ("bbq", "american"),
)


# ============================================
# Signal Bundle
# ============================================

@dataclass(frozen=True)
class SignalBundle:
    """Normalized, classifier-derived view of a meal event"""
    day_of_week: Weekday
    cuisine: Optional[str] = None
    protein_category: Optional[ProteinCategory] = None
    is_vegan: bool = False
    is_vegetarian: bool = False
    food_keywords: frozenset = frozenset()
    setting_category: SettingCategory = SettingCategory.UNKNOWN
    is_seafood: bool = False
    is_sushi: bool = False
    is_taco: bool = False
    is_beer: bool = False
    city: Optional[str] = None

    @property
    def is_takeout(self) -> bool:
        return self.setting_category == SettingCategory.TAKEOUT

    def has(self, signal: ContentSignal) -> bool:
        """Evaluate a content predicate against this bundle"""
        if signal == ContentSignal.SEAFOOD:
            return self.protein_category == ProteinCategory.SEAFOOD
        if signal == ContentSignal.VEGETARIAN:
            return self.is_vegetarian
        if signal == ContentSignal.VEGAN:
            return self.is_vegan
        if signal == ContentSignal.TACO:
            return self.is_taco
        if signal == ContentSignal.BEER:
            return self.is_beer
        if signal == ContentSignal.SUSHI:
            return self.is_sushi
        if signal == ContentSignal.TAKEOUT:
            return self.is_takeout
        raise ValueError(f"Unknown content signal: {signal}")


# ============================================
# Helpers
# ============================================

def normalize_value(value: Optional[str]) -> Optional[str]:
    """Lowercase, trim and collapse whitespace; sentinel values become None"""
    if value is None:
        return None
    cleaned = " ".join(value.lower().split())
    if cleaned in SENTINEL_VALUES:
        return None
    return cleaned


def _contains_any(text: Optional[str], keywords: Iterable[str]) -> bool:
    if not text:
        return False
    lowered = text.lower()
    return any(keyword in lowered for keyword in keywords)


def _word_start_pattern(keywords: Iterable[str]) -> re.Pattern:
    return re.compile(r"\b(?:" + "|".join(re.escape(k) for k in keywords) + r")", re.IGNORECASE)


def _whole_word_pattern(keywords: Iterable[str]) -> re.Pattern:
    return re.compile(r"\b(?:" + "|".join(re.escape(k) for k in keywords) + r")\b", re.IGNORECASE)


_BEER_PATTERN = _word_start_pattern(BEER_KEYWORDS)
_SUSHI_PATTERN = _word_start_pattern(SUSHI_KEYWORDS)
_SUSHI_ROLL_PATTERN = _word_start_pattern(SUSHI_ROLL_KEYWORDS)
_DINE_IN_PATTERN = _word_start_pattern(DINE_IN_KEYWORDS)
_TAKEOUT_PATTERN = _whole_word_pattern(TAKEOUT_KEYWORDS)
_TAKEOUT_SETTING_PATTERN = _whole_word_pattern(TAKEOUT_SETTING_KEYWORDS)
_CUISINE_PATTERNS = tuple(
    (re.compile(r"\b" + re.escape(keyword) + r"(?:s|es)?\b", re.IGNORECASE), cuisine)
    for keyword, cuisine in CUISINE_NAME_KEYWORDS
)


def _matches(pattern: re.Pattern, text: Optional[str]) -> bool:
    return bool(text) and pattern.search(text) is not None


def _any_food_type(metadata: Optional[MealMetadata], keywords: Iterable[str]) -> bool:
    if metadata is None:
        return False
    keywords = tuple(keywords)
    return any(_contains_any(food_type, keywords) for food_type in metadata.food_type)


# ============================================
# Individual Signals
# ============================================

def detect_seafood(event: MealEvent) -> bool:
    metadata = event.metadata
    if metadata is not None:
        if _contains_any(metadata.primary_protein, SEAFOOD_KEYWORDS):
            return True
        if _any_food_type(metadata, SEAFOOD_KEYWORDS):
            return True
        if _contains_any(metadata.cuisine_type, SEAFOOD_CUISINE_KEYWORDS):
            return True
    return _contains_any(event.meal, SEAFOOD_KEYWORDS)


def detect_vegetarian(event: MealEvent) -> bool:
    metadata = event.metadata
    if metadata is not None:
        if _contains_any(metadata.diet_type, VEGETARIAN_DIET_KEYWORDS):
            return True
        protein = (metadata.primary_protein or "").strip().lower()
        if protein in NO_PROTEIN_VALUES:
            return True
        if _contains_any(protein, PLANT_PROTEIN_KEYWORDS):
            return True
        if _any_food_type(metadata, VEGETARIAN_FOOD_KEYWORDS):
            return True
    return _contains_any(event.meal, VEGETARIAN_NAME_KEYWORDS)


def detect_vegan(event: MealEvent) -> bool:
    metadata = event.metadata
    if metadata is not None and _contains_any(metadata.diet_type, ("vegan",)):
        return True
    return _contains_any(event.meal, ("vegan",))


def detect_taco(event: MealEvent) -> bool:
    if _any_food_type(event.metadata, TACO_KEYWORDS):
        return True
    return _contains_any(event.meal, TACO_KEYWORDS)


def detect_beer(event: MealEvent) -> bool:
    metadata = event.metadata
    if metadata is not None and _contains_any(metadata.beverage_type, ("beer",)):
        return True
    return _matches(_BEER_PATTERN, event.meal)


def detect_sushi(event: MealEvent) -> bool:
    metadata = event.metadata
    if metadata is not None:
        if _contains_any(metadata.cuisine_type, SUSHI_CUISINE_KEYWORDS):
            if any(_matches(_SUSHI_ROLL_PATTERN, food_type) for food_type in metadata.food_type):
                return True
            if _matches(_SUSHI_ROLL_PATTERN, event.meal):
                return True
        if any(_matches(_SUSHI_PATTERN, food_type) for food_type in metadata.food_type):
            return True
    return _matches(_SUSHI_PATTERN, event.meal)


def detect_setting(event: MealEvent) -> SettingCategory:
    setting = event.metadata.setting if event.metadata is not None else None
    if _matches(_TAKEOUT_SETTING_PATTERN, setting):
        return SettingCategory.TAKEOUT
    if _matches(_TAKEOUT_PATTERN, event.meal):
        return SettingCategory.TAKEOUT
    if _matches(_TAKEOUT_PATTERN, event.restaurant):
        return SettingCategory.TAKEOUT
    if _matches(_DINE_IN_PATTERN, setting):
        return SettingCategory.DINE_IN
    return SettingCategory.UNKNOWN


def extract_cuisine(event: MealEvent) -> Optional[str]:
    """Structured cuisine_type first, then a dish-name lookup"""
    if event.metadata is not None:
        cuisine = normalize_value(event.metadata.cuisine_type)
        if cuisine:
            return cuisine
    if event.meal:
        for pattern, cuisine in _CUISINE_PATTERNS:
            if pattern.search(event.meal):
                return cuisine
    return None


def extract_city(event: MealEvent) -> Optional[str]:
    """
    location.city first, then the segment after the restaurant name.

    "Pok Pok, Portland OR" -> "portland or"
    """
    if event.location is not None:
        city = normalize_value(event.location.city)
        if city:
            return city
    if event.restaurant and "," in event.restaurant:
        parts = event.restaurant.split(",")
        return normalize_value(parts[1])
    return None


def derive_day_of_week(event: MealEvent) -> Weekday:
    timestamp = event.timestamp
    if event.timezone and timestamp.tzinfo is not None:
        timestamp = timestamp.astimezone(pytz.timezone(event.timezone))
    return Weekday.from_datetime(timestamp)


def _food_keywords(event: MealEvent) -> frozenset:
    keywords = set()
    if event.metadata is not None:
        for food_type in event.metadata.food_type:
            normalized = normalize_value(food_type)
            if normalized:
                keywords.add(normalized)
    if event.meal:
        keywords.update(re.findall(r"[a-z0-9']+", event.meal.lower()))
    return frozenset(keywords)


# ============================================
# Public API
# ============================================

def classify_meal(event: MealEvent) -> SignalBundle:
    """
    Build the signal bundle for a meal event. Pure function of the event.

    Example:
        >>> classify_meal(MealEvent(id="m1", user_id="u1",
        ...     timestamp=datetime(2024, 5, 7), meal="Spicy Tuna Roll")).protein_category
        <ProteinCategory.SEAFOOD: 'seafood'>
    """
    is_seafood = detect_seafood(event)
    is_vegan = detect_vegan(event)
    is_vegetarian = is_vegan or detect_vegetarian(event)

    if is_seafood:
        protein_category = ProteinCategory.SEAFOOD
    elif is_vegetarian:
        protein_category = ProteinCategory.PLANT_BASED
    elif event.metadata is not None and normalize_value(event.metadata.primary_protein):
        protein_category = ProteinCategory.OTHER
    else:
        protein_category = None

    signals = SignalBundle(
        day_of_week=derive_day_of_week(event),
        cuisine=extract_cuisine(event),
        protein_category=protein_category,
        is_vegan=is_vegan,
        is_vegetarian=is_vegetarian,
        food_keywords=_food_keywords(event),
        setting_category=detect_setting(event),
        is_seafood=is_seafood,
        is_sushi=detect_sushi(event),
        is_taco=detect_taco(event),
        is_beer=detect_beer(event),
        city=extract_city(event),
    )
    logger.debug(f"Classified meal {event.id}: {signals}")
    return signals
