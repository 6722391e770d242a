"""Combined shopping list for a selection of recipes."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List

from kitchen_os.models.recipe_schema import Recipe
from kitchen_os.models.views import ShoppingLine
from kitchen_os.pantry.canonicalize import SHOPPING_IDENTITY, canonical_name, identity_key

logger = logging.getLogger(__name__)


def aggregate_shopping_list(selected_ids: Iterable[str], recipes: Iterable[Recipe]) -> List[ShoppingLine]:
    """Sum shopping quantities of the selected recipes.

    Lines are grouped by lower-cased name and lower-cased unit. The first
    occurrence in ``recipes`` order supplies the unit and the display name,
    which is that occurrence's name with surrounding whitespace trimmed; for a
    store snapshot that is the newest recipe. Units are never converted, so
    "g" and "kg" of one ingredient stay on separate lines.
    """
    wanted = set(selected_ids)
    lines: Dict[tuple, ShoppingLine] = {}
    seen = set()
    for recipe in recipes:
        if recipe.id not in wanted or recipe.id in seen:
            continue
        seen.add(recipe.id)
        for ing in recipe.ingredients:
            key = identity_key(SHOPPING_IDENTITY, ing.name, ing.shopping.unit)
            line = lines.get(key)
            if line is None:
                line = ShoppingLine(display_name=canonical_name(ing.name), value=0.0, unit=ing.shopping.unit)
                lines[key] = line
            line.value += ing.shopping.value

    missing = wanted - seen
    if missing:
        logger.warning("aggregate_shopping_list: ignoring unknown recipe ids %s", sorted(missing))
    logger.debug("aggregate_shopping_list: %d recipes -> %d lines", len(seen), len(lines))
    return list(lines.values())
