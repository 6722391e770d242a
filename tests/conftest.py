import pytest

from kitchen_os.models.recipe_schema import Ingredient, Quantity, Recipe, RecipeDraft, RecipeStep


def _recipe(dish_name, ingredients=(), steps=(), recipe_id=None, owner_id="user-123", **extra):
    """Build a Recipe from compact tuples.

    ingredients: (name, shopping_value, shopping_unit) tuples
    steps: (type, minutes) or (type, minutes, instruction) tuples
    """
    ings = [
        Ingredient(name=name, kitchen=Quantity(value=1, unit="unit"), shopping=Quantity(value=value, unit=unit))
        for name, value, unit in ingredients
    ]
    stps = []
    for i, s in enumerate(steps):
        kind, minutes = s[0], s[1]
        instruction = s[2] if len(s) > 2 else f"{dish_name} step {i + 1}"
        stps.append(RecipeStep(instruction=instruction, duration_minutes=minutes, type=kind))
    return Recipe(
        id=recipe_id,
        dish_name=dish_name,
        ingredients=ings,
        steps=stps,
        owner_id=owner_id,
        **extra,
    )


@pytest.fixture
def make_recipe():
    return _recipe


GARLIC_RICE = {
    "dishName": "Garlic Rice",
    "variations": ["Lehsun Chawal"],
    "ingredients": [
        {"name": "Garlic", "kitchen": {"value": 4, "unit": "cloves"}, "shopping": {"value": 12, "unit": "g"}},
        {"name": "Rice", "kitchen": {"value": 1, "unit": "cup"}, "shopping": {"value": 190, "unit": "g"}},
    ],
    "steps": [{"instruction": "Fry 4 cloves garlic", "durationMinutes": 3, "type": "cooking"}],
    "totalTimeMinutes": 25,
}


class DummyExtractor:
    """Returns a fixed draft and records what it was asked."""

    def __init__(self, draft=None, error=None):
        self.draft = draft or RecipeDraft.model_validate(GARLIC_RICE)
        self.error = error
        self.calls = []

    def extract(self, content, existing_canonical_names=()):
        self.calls.append((content, list(existing_canonical_names)))
        if self.error:
            raise self.error
        return self.draft


@pytest.fixture
def dummy_extractor():
    return DummyExtractor
