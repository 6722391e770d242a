"""Master pantry index: canonical ingredient -> dishes that use it."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List

from kitchen_os.models.recipe_schema import Recipe
from kitchen_os.models.views import StandardizedIngredient
from kitchen_os.pantry.canonicalize import PANTRY_IDENTITY, canonical_name, identity_key

logger = logging.getLogger(__name__)


def build_pantry_index(recipes: Iterable[Recipe]) -> List[StandardizedIngredient]:
    """Fold recipes into standardized ingredients, ordered by first occurrence.

    A dish name is listed once per ingredient no matter how many recipes share
    that dish name or how often the ingredient repeats inside a recipe.
    """
    entries: Dict[tuple, StandardizedIngredient] = {}
    for recipe in recipes:
        for ing in recipe.ingredients:
            key = identity_key(PANTRY_IDENTITY, ing.name)
            entry = entries.get(key)
            if entry is None:
                entry = StandardizedIngredient(name=canonical_name(ing.name))
                entries[key] = entry
            if recipe.dish_name not in entry.recipes_using:
                entry.recipes_using.append(recipe.dish_name)
    logger.debug("build_pantry_index: %d canonical ingredients", len(entries))
    return list(entries.values())


def existing_canonical_names(recipes: Iterable[Recipe]) -> List[str]:
    """Canonical names already in the pantry, used to bias extraction toward reuse."""
    return [entry.name for entry in build_pantry_index(recipes)]
