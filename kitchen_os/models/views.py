"""Derived views computed from a recipe snapshot. Never persisted."""

from __future__ import annotations

from typing import List

from pydantic import Field

from kitchen_os.models.recipe_schema import CamelModel, StepType


class StandardizedIngredient(CamelModel):
    name: str
    recipes_using: List[str] = Field(default_factory=list)


class ShoppingLine(CamelModel):
    display_name: str
    value: float
    unit: str


class Prerequisite(CamelModel):
    recipe_name: str
    instruction: str
    duration_minutes: int


class TimelineEntry(CamelModel):
    time_offset_minutes: int
    duration_minutes: int
    action: str
    type: StepType
    involved_recipe_names: List[str]
    assignees: List[str] = Field(default_factory=list)
    is_parallel: bool = False


class ProductionSchedule(CamelModel):
    cooks: int
    burners: int
    total_minutes: int
    prerequisites: List[Prerequisite] = Field(default_factory=list)
    timeline: List[TimelineEntry] = Field(default_factory=list)
