"""Canonical ingredient identity.

Two policies coexist:

* ``PANTRY_IDENTITY`` keys the pantry index. Only surrounding whitespace is
  trimmed, so "Garlic" and "garlic" are distinct entries.
* ``SHOPPING_IDENTITY`` keys the shopping list. Name and unit are lower-cased,
  so "Garlic"/"g" and "garlic"/"G" sum into one line.
"""

from __future__ import annotations

from enum import Enum
from typing import Tuple


class IdentityPolicy(str, Enum):
    PANTRY_IDENTITY = "pantry"
    SHOPPING_IDENTITY = "shopping"


PANTRY_IDENTITY = IdentityPolicy.PANTRY_IDENTITY
SHOPPING_IDENTITY = IdentityPolicy.SHOPPING_IDENTITY


def canonical_name(name: str) -> str:
    """Trim leading/trailing whitespace. No case-folding, stemming or synonyms."""
    if not name:
        return ""
    return name.strip()


def identity_key(policy: IdentityPolicy, name: str, unit: str = "") -> Tuple[str, ...]:
    """Return the grouping key for an ingredient occurrence under ``policy``."""
    can = canonical_name(name)
    if policy is IdentityPolicy.PANTRY_IDENTITY:
        return (can,)
    if policy is IdentityPolicy.SHOPPING_IDENTITY:
        return (can.lower(), (unit or "").lower())
    raise ValueError(f"unknown identity policy: {policy!r}")
