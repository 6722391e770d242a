"""Recipe record models.

Stored documents and API payloads use camelCase keys (``dishName``,
``totalTimeMinutes``); Python code uses the snake_case attribute names.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StepType(str, Enum):
    PREP = "prep"
    COOKING = "cooking"
    PRE_START = "pre-start"


class RecipeCategory(str, Enum):
    BREAKFAST = "breakfast"
    LUNCH_DINNER = "lunch/dinner"
    EVENING_SNACK = "evening snack"


class Quantity(CamelModel):
    value: float = 0.0
    unit: str = ""

    @field_validator("value", mode="before")
    @classmethod
    def _coerce_value(cls, v):
        # missing or malformed amounts count as zero
        try:
            f = float(v)
        except (TypeError, ValueError):
            return 0.0
        if math.isnan(f) or math.isinf(f) or f < 0:
            return 0.0
        return f

    @field_validator("unit", mode="before")
    @classmethod
    def _coerce_unit(cls, v):
        if v is None:
            return ""
        return str(v)


class Ingredient(CamelModel):
    name: str = ""
    kitchen: Quantity = Field(default_factory=Quantity)
    shopping: Quantity = Field(default_factory=Quantity)

    @field_validator("name", mode="before")
    @classmethod
    def _coerce_name(cls, v):
        if v is None:
            return ""
        return str(v)

    @field_validator("kitchen", "shopping", mode="before")
    @classmethod
    def _coerce_quantity(cls, v):
        if isinstance(v, (Quantity, dict)):
            return v
        return {}


class RecipeStep(CamelModel):
    instruction: str = ""
    duration_minutes: int = 0
    type: StepType = StepType.PREP

    @field_validator("duration_minutes", mode="before")
    @classmethod
    def _coerce_duration(cls, v):
        try:
            f = float(v)
        except (TypeError, ValueError):
            return 0
        if math.isnan(f) or math.isinf(f) or f < 0:
            return 0
        return int(round(f))

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, v):
        if isinstance(v, StepType):
            return v
        s = str(v or "").strip().lower().replace("_", "-").replace(" ", "-")
        if s in ("prestart", "pre-start"):
            return StepType.PRE_START
        if s in ("cooking", "cook"):
            return StepType.COOKING
        return StepType.PREP


class Source(CamelModel):
    uri: str
    title: Optional[str] = ""


class RecipeDraft(CamelModel):
    """Recipe-shaped partial record as returned by the extraction model."""

    dish_name: Optional[str] = None
    category: Optional[RecipeCategory] = None
    variations: List[str] = Field(default_factory=list)
    servings: Optional[int] = None
    ingredients: List[Ingredient] = Field(default_factory=list)
    steps: List[RecipeStep] = Field(default_factory=list)
    total_time_minutes: Optional[int] = None
    sources: List[Source] = Field(default_factory=list)

    @field_validator("category", mode="before")
    @classmethod
    def _coerce_category(cls, v):
        if v is None or isinstance(v, RecipeCategory):
            return v
        s = str(v).strip().lower()
        for cat in RecipeCategory:
            if s == cat.value:
                return cat
        return None


class Recipe(CamelModel):
    id: Optional[str] = None
    dish_name: str = "Unknown Dish"
    category: Optional[RecipeCategory] = None
    variations: List[str] = Field(default_factory=list)
    servings: int = 4
    ingredients: List[Ingredient] = Field(default_factory=list)
    steps: List[RecipeStep] = Field(default_factory=list)
    total_time_minutes: int = 0
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    owner_id: Optional[str] = None
    paired_with: List[str] = Field(default_factory=list)
    sources: List[Source] = Field(default_factory=list)

    @field_validator("paired_with", mode="after")
    @classmethod
    def _distinct_ids(cls, v: List[str]) -> List[str]:
        return list(dict.fromkeys(v))

    def to_document(self) -> dict:
        """Return the stored JSON document (camelCase keys, no id)."""
        return self.model_dump(mode="json", by_alias=True, exclude={"id"})
