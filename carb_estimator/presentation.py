"""Display helpers shared by the Streamlit views."""

from typing import Optional

from carb_estimator.models import FoodItem

CONFIDENCE_PERCENTAGES = {"high": 90, "medium": 60, "low": 30}
CONFIDENCE_COLORS = {"high": "green", "medium": "orange", "low": "red"}
UNKNOWN_CONFIDENCE_PERCENTAGE = 50
UNKNOWN_CONFIDENCE_COLOR = "gray"


def format_grams(value: float) -> str:
    """30.0 -> '30g', 12.5 -> '12.5g'."""
    if float(value).is_integer():
        return f"{int(value)}g"
    return f"{value:.1f}g"


def confidence_label(confidence: Optional[str]) -> str:
    return confidence or "unknown"


def confidence_percentage(confidence: Optional[str]) -> int:
    return CONFIDENCE_PERCENTAGES.get(confidence or "", UNKNOWN_CONFIDENCE_PERCENTAGE)


def confidence_color(confidence: Optional[str]) -> str:
    return CONFIDENCE_COLORS.get(confidence or "", UNKNOWN_CONFIDENCE_COLOR)


def carbs_per_100g(item: FoodItem) -> Optional[float]:
    """Carb density of an item, rounded to one decimal."""
    if item.weight <= 0:
        return None
    return round(item.carbs / item.weight * 100, 1)
