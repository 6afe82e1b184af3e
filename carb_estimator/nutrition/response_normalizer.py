"""Response normalization for model output.

Turns the free-form text returned by the vision model into a NutritionRecord.
Strategies are tried in order and the first one that succeeds wins:

1. parse the whole text as JSON
2. parse the greedy ``{ ... }`` span embedded in the text
3. recover approximate values with regular expressions

The last strategy always succeeds, so ``normalize_response`` never raises.
"""

import json
import logging
import math
import re
from typing import Dict, List, Optional

from pydantic import ValidationError

from carb_estimator.errors import ResponseParseError
from carb_estimator.models import CarbBreakdown, FoodItem, NormalizationResult, NutritionRecord

logger = logging.getLogger(__name__)

UNKNOWN_ITEM_NAME = "Unknown food item"
UNKNOWN_ITEM_WEIGHT = 100.0

DEFAULT_TOTAL_CARBS = 30.0
DEFAULT_BREAKDOWN = {"fiber": 5.0, "sugar": 10.0, "starch": 15.0}

_NUMBER = r"(\d+(?:\.\d+)?)"
_GRAMS = r"\s*g(?:rams?)?\b"

_COMPONENT_WORDS = {
    "fiber": r"fib(?:er|re)s?",
    "sugar": r"sugars?",
    "starch": r"starch(?:es)?",
}
_CARB_WORD = r"carb(?:ohydrate)?s?"

MAX_ITEM_NAME_WORDS = 4


def _amount_first(word: str) -> "re.Pattern[str]":
    # "42g of carbs", "5 grams fiber"
    return re.compile(rf"{_NUMBER}{_GRAMS}\s*(?:of\s+)?(?:total\s+)?{word}\b", re.IGNORECASE)


def _label_first(word: str) -> "re.Pattern[str]":
    # "fiber: 5g", "carbs = 42 grams"
    return re.compile(rf"\b{word}\s*[:=]\s*{_NUMBER}{_GRAMS}", re.IGNORECASE)


TOTAL_CARB_PATTERNS = (_amount_first(_CARB_WORD), _label_first(_CARB_WORD))

COMPONENT_PATTERNS = {
    key: (_label_first(word), _amount_first(word))
    for key, word in _COMPONENT_WORDS.items()
}

# A name starts a line, a bullet or a list entry, never mid-sentence
_ITEM_START = r"(?:^|(?<=[,;:.(]))[ \t]*(?:[-*•]|\d+[.)])?[ \t]*"
_ITEM_NAME = rf"([A-Za-z][\w'\-]*(?:[ \t]+[\w'\-]+){{0,{MAX_ITEM_NAME_WORDS - 1}}})"

FOOD_ITEM_PATTERN = re.compile(
    rf"{_ITEM_START}{_ITEM_NAME}[ \t]*:\s*{_NUMBER}{_GRAMS}\s*,\s*{_NUMBER}{_GRAMS}\s*(?:of\s+)?{_CARB_WORD}\b",
    re.IGNORECASE | re.MULTILINE,
)


def _reject_constant(name: str):
    raise ValueError(f"non-finite number {name} is not allowed")


def parse_record(text: str) -> NutritionRecord:
    """Strictly parse ``text`` as one JSON nutrition record."""
    try:
        data = json.loads(text, parse_constant=_reject_constant)
    except (TypeError, ValueError) as e:
        raise ResponseParseError(f"Response is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ResponseParseError(f"Expected a JSON object, got {type(data).__name__}")

    try:
        return NutritionRecord.model_validate(data)
    except ValidationError as e:
        raise ResponseParseError(f"Response does not match the nutrition schema: {e}") from e


def extract_embedded_object(text: str) -> Optional[str]:
    """Return the span from the first '{' to the last '}', if any."""
    first_brace = text.find("{")
    last_brace = text.rfind("}")
    if first_brace == -1 or last_brace <= first_brace:
        return None
    return text[first_brace:last_brace + 1]


def _first_amount(text: str, patterns) -> Optional[float]:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            amount = float(match.group(1))
            if math.isfinite(amount):
                return amount
    return None


def _extract_food_items(text: str) -> List[FoodItem]:
    items: List[FoodItem] = []
    for match in FOOD_ITEM_PATTERN.finditer(text):
        name = match.group(1).strip()
        weight = float(match.group(2))
        carbs = float(match.group(3))
        if not name or weight <= 0 or not math.isfinite(weight + carbs):
            continue
        items.append(FoodItem(name=name, weight=weight, carbs=carbs, confidence="low"))
    return items


def estimate_from_text(text: str) -> NutritionRecord:
    """Best-effort recovery of carb values from unstructured text.

    Values that cannot be found fall back to a fixed default estimate, so the
    result is always a complete record.
    """
    text = text or ""

    total = _first_amount(text, TOTAL_CARB_PATTERNS)
    found: Dict[str, float] = {}
    for key, patterns in COMPONENT_PATTERNS.items():
        amount = _first_amount(text, patterns)
        if amount is not None:
            found[key] = amount

    if found:
        breakdown = {key: found.get(key, 0.0) for key in DEFAULT_BREAKDOWN}
    else:
        breakdown = dict(DEFAULT_BREAKDOWN)

    if total is None:
        total = sum(found.values()) if found else DEFAULT_TOTAL_CARBS

    food_items = _extract_food_items(text)
    if not food_items:
        food_items = [
            FoodItem(name=UNKNOWN_ITEM_NAME, weight=UNKNOWN_ITEM_WEIGHT, carbs=total, confidence="low")
        ]

    return NutritionRecord(
        total_carbs=total,
        breakdown=CarbBreakdown(**breakdown),
        food_items=food_items,
    )


def normalize_response(text: Optional[str]) -> NormalizationResult:
    """Convert raw model text into a NormalizationResult. Never raises."""
    text = (text or "").strip()

    try:
        record = parse_record(text)
        return NormalizationResult(record=record, strategy="direct")
    except ResponseParseError as e:
        logger.warning(f"Direct parse failed: {e}")

    embedded = extract_embedded_object(text)
    if embedded is not None:
        try:
            record = parse_record(embedded)
            return NormalizationResult(record=record, strategy="embedded")
        except ResponseParseError as e:
            logger.warning(f"Embedded object parse failed: {e}")

    logger.warning("Falling back to heuristic carb extraction")
    return NormalizationResult(record=estimate_from_text(text), strategy="heuristic")

