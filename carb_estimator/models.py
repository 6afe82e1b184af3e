"""
Nutrition data models for Carb Estimator.

Field names follow the JSON the model is asked to return (camelCase), while the
Python attributes are snake_case. Both spellings are accepted on input.
"""

from __future__ import annotations

import logging
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

Confidence = Literal["high", "medium", "low"]
Strategy = Literal["direct", "embedded", "heuristic"]

CONFIDENCE_LEVELS = ("high", "medium", "low")

ESTIMATE_WARNING = "Could not get precise values. Showing estimates."


class FoodItem(BaseModel):
    """A single food identified on the plate."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", allow_inf_nan=False)

    name: str = Field(min_length=1, description="Identified food label")
    weight: float = Field(gt=0, description="Estimated weight in grams")
    carbs: float = Field(ge=0, description="Estimated carbohydrates in grams")
    confidence: Optional[Confidence] = Field(
        default=None,
        description="Model certainty in the identification and estimate",
    )

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("confidence", mode="before")
    @classmethod
    def normalize_confidence(cls, v):
        # Models occasionally answer "High" or "LOW"; anything else is unknown
        if isinstance(v, str):
            v = v.strip().lower()
        return v if v in CONFIDENCE_LEVELS else None


class CarbBreakdown(BaseModel):
    """Fiber / sugar / starch split. Not guaranteed to sum to the total."""

    model_config = ConfigDict(allow_inf_nan=False)

    fiber: float = Field(ge=0)
    sugar: float = Field(ge=0)
    starch: float = Field(ge=0)


class NutritionRecord(BaseModel):
    """Structured carbohydrate estimate for one meal image."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", allow_inf_nan=False)

    total_carbs: float = Field(alias="totalCarbs", ge=0)
    breakdown: CarbBreakdown
    food_items: List[FoodItem] = Field(default_factory=list, alias="foodItems")

    @field_validator("food_items", mode="before")
    @classmethod
    def default_food_items(cls, v):
        if v is None:
            return []
        if not isinstance(v, list):
            return v

        # One malformed item should not cost the whole record
        items = []
        for entry in v:
            try:
                items.append(FoodItem.model_validate(entry))
            except ValidationError as e:
                logger.warning(f"Dropping invalid food item {entry!r}: {e.error_count()} error(s)")
        return items

    def to_dict(self) -> dict:
        """Serialize back to the wire format."""
        return self.model_dump(by_alias=True, exclude_none=True)

    @classmethod
    def from_dict(cls, data: dict) -> NutritionRecord:
        return cls.model_validate(data)


class NormalizationResult(BaseModel):
    """A nutrition record plus how it was obtained from the model text."""

    record: NutritionRecord
    strategy: Strategy

    @property
    def estimated(self) -> bool:
        return self.strategy == "heuristic"

    @property
    def warning(self) -> Optional[str]:
        return ESTIMATE_WARNING if self.estimated else None
