"""Lookup helpers over a recipe snapshot."""

from __future__ import annotations

from typing import Iterable, List

from kitchen_os.models.recipe_schema import Recipe


def find_recipes(recipes: Iterable[Recipe], query: str, exclude_ids: Iterable[str] = ()) -> List[Recipe]:
    """Case-insensitive substring match on dish name or any variation.

    A blank query matches nothing.
    """
    q = (query or "").strip().lower()
    if not q:
        return []
    excluded = set(exclude_ids)
    hits = []
    for r in recipes:
        if r.id in excluded:
            continue
        if q in r.dish_name.lower() or any(q in v.lower() for v in r.variations):
            hits.append(r)
    return hits


def paired_recipes(recipe: Recipe, recipes: Iterable[Recipe]) -> List[Recipe]:
    """Resolve ``recipe.paired_with`` ids against the snapshot, in pairing order."""
    by_id = {r.id: r for r in recipes if r.id}
    return [by_id[rid] for rid in recipe.paired_with if rid in by_id and rid != recipe.id]
