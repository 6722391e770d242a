from concurrent.futures import CancelledError
from typing import Optional, List, Dict, Any

from fastapi import FastAPI, Header, HTTPException, Depends, Query

from kitchen_os.errors import ExtractionError, ExtractionInProgressError, InputValidationError, PersistenceError
from kitchen_os.ingest.parse_llm_gemini import GeminiExtractor
from kitchen_os.models.recipe_schema import CamelModel, Recipe
from kitchen_os.models.views import ProductionSchedule, ShoppingLine, StandardizedIngredient
from kitchen_os.orchestrate.run import ExtractionRunner
from kitchen_os.pantry.index import build_pantry_index
from kitchen_os.pantry.search import find_recipes, paired_recipes
from kitchen_os.production.scheduler import build_schedule
from kitchen_os.production.shopping import aggregate_shopping_list
from kitchen_os.settings import settings
from kitchen_os.store.sqlite_store import RecipeStore, SQLiteRecipeStore


class IngestRecipeRequest(CamelModel):
    content: Optional[str] = None
    url: Optional[str] = None


class ShoppingListRequest(CamelModel):
    recipe_ids: List[str]


class ScheduleRequest(CamelModel):
    recipe_ids: List[str]
    cooks: int = settings.DEFAULT_COOKS
    burners: int = settings.DEFAULT_BURNERS


app = FastAPI(title="Kitchen OS Server")

_store: Optional[RecipeStore] = None
_runner: Optional[ExtractionRunner] = None


def get_store() -> RecipeStore:
    global _store
    if _store is None:
        _store = SQLiteRecipeStore(settings.DB_PATH)
    return _store


def get_runner(store: RecipeStore = Depends(get_store)) -> ExtractionRunner:
    global _runner
    if _runner is None:
        _runner = ExtractionRunner(store, GeminiExtractor())
    return _runner


def get_current_user(authorization: Optional[str] = Header(None), x_user: Optional[str] = Header(None)) -> Dict[str, str]:
    """
    Minimal dev-friendly auth: if Authorization header present we treat its value as a token and
    derive a uid; otherwise an X-User header may be used locally. In production replace with
    real ID token verification.
    """
    if x_user:
        return {"uid": x_user}
    if authorization:
        # Authorization: Bearer <token>
        parts = authorization.split()
        if len(parts) == 2:
            token = parts[1]
        else:
            token = parts[0]
        # lightweight uid extraction for dev
        return {"uid": token[-16:]}
    raise HTTPException(status_code=401, detail="Missing auth; set X-User header for local dev")


def _owned_recipe(store: RecipeStore, recipe_id: str, uid: str) -> Recipe:
    try:
        recipe = store.get(recipe_id)
    except PersistenceError:
        raise HTTPException(status_code=404, detail=f"Recipe {recipe_id} not found")
    if recipe.owner_id != uid:
        raise HTTPException(status_code=404, detail=f"Recipe {recipe_id} not found")
    return recipe


def _selected(snapshot: List[Recipe], recipe_ids: List[str]) -> List[Recipe]:
    by_id = {r.id: r for r in snapshot}
    unknown = [rid for rid in recipe_ids if rid not in by_id]
    if unknown:
        raise HTTPException(status_code=400, detail=f"Unknown recipe ids: {', '.join(unknown)}")
    return [by_id[rid] for rid in dict.fromkeys(recipe_ids)]


@app.post("/recipes/ingest", response_model=Recipe)
def ingest_recipe(
    req: IngestRecipeRequest,
    user: Dict[str, str] = Depends(get_current_user),
    runner: ExtractionRunner = Depends(get_runner),
):
    content = req.content or req.url
    if not content or not content.strip():
        raise HTTPException(status_code=400, detail="content or url required")
    try:
        fut = runner.start(content, user["uid"])
    except ExtractionInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    try:
        return fut.result()
    except CancelledError:
        raise HTTPException(status_code=409, detail="Extraction cancelled")
    except ExtractionError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/recipes", response_model=List[Recipe])
def list_recipes(user: Dict[str, str] = Depends(get_current_user), store: RecipeStore = Depends(get_store)):
    return store.snapshot(user["uid"])


@app.get("/recipes/search", response_model=List[Recipe])
def search_recipes(
    q: str,
    exclude: Optional[List[str]] = Query(None),
    user: Dict[str, str] = Depends(get_current_user),
    store: RecipeStore = Depends(get_store),
):
    return find_recipes(store.snapshot(user["uid"]), q, exclude or [])


@app.get("/recipes/{recipe_id}/pairings", response_model=List[Recipe])
def recipe_pairings(recipe_id: str, user: Dict[str, str] = Depends(get_current_user), store: RecipeStore = Depends(get_store)):
    recipe = _owned_recipe(store, recipe_id, user["uid"])
    return paired_recipes(recipe, store.snapshot(user["uid"]))


@app.put("/recipes/{recipe_id}", response_model=Recipe)
def update_recipe(
    recipe_id: str,
    fields: Dict[str, Any],
    user: Dict[str, str] = Depends(get_current_user),
    store: RecipeStore = Depends(get_store),
):
    _owned_recipe(store, recipe_id, user["uid"])
    try:
        return store.update(recipe_id, fields)
    except PersistenceError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.delete("/recipes/{recipe_id}")
def delete_recipe(recipe_id: str, user: Dict[str, str] = Depends(get_current_user), store: RecipeStore = Depends(get_store)):
    _owned_recipe(store, recipe_id, user["uid"])
    try:
        store.delete(recipe_id)
    except PersistenceError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"deleted": recipe_id}


@app.get("/pantry", response_model=List[StandardizedIngredient])
def pantry(user: Dict[str, str] = Depends(get_current_user), store: RecipeStore = Depends(get_store)):
    return build_pantry_index(store.snapshot(user["uid"]))


@app.post("/production/shopping-list", response_model=List[ShoppingLine])
def shopping_list(
    req: ShoppingListRequest,
    user: Dict[str, str] = Depends(get_current_user),
    store: RecipeStore = Depends(get_store),
):
    snapshot = store.snapshot(user["uid"])
    _selected(snapshot, req.recipe_ids)
    return aggregate_shopping_list(req.recipe_ids, snapshot)


@app.post("/production/schedule", response_model=ProductionSchedule)
def production_schedule(
    req: ScheduleRequest,
    user: Dict[str, str] = Depends(get_current_user),
    store: RecipeStore = Depends(get_store),
):
    recipes = _selected(store.snapshot(user["uid"]), req.recipe_ids)
    try:
        return build_schedule(recipes, req.cooks, req.burners)
    except InputValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
