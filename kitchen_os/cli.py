"""Typer CLI for kitchen-os (ingest, browse, shop, schedule)."""

from __future__ import annotations

from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from dotenv import load_dotenv
# load .env immediately so subsequent imports (which read settings at import time)
# pick up values from the .env file
load_dotenv()

# Configure top-level logging early so other modules pick it up.
import logging
from kitchen_os.settings import settings

log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
handlers = [logging.StreamHandler()]
if settings.LOG_FILE:
    handlers.append(logging.FileHandler(settings.LOG_FILE))
logging.basicConfig(
    level=log_level,
    format="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
    handlers=handlers,
)

# Quiet noisy third-party loggers while keeping our app logs
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("urllib3").setLevel(logging.WARNING)
logging.getLogger("trafilatura").setLevel(logging.WARNING)
logging.getLogger("google_genai").setLevel(logging.WARNING)

from kitchen_os.errors import KitchenOSError
from kitchen_os.ingest.parse_llm_gemini import GeminiExtractor
from kitchen_os.models.recipe_schema import Recipe
from kitchen_os.orchestrate.run import submit_recipe
from kitchen_os.pantry.index import build_pantry_index
from kitchen_os.pantry.search import find_recipes
from kitchen_os.production.scheduler import build_schedule
from kitchen_os.production.shopping import aggregate_shopping_list
from kitchen_os.settings import validate_required
from kitchen_os.store.sqlite_store import SQLiteRecipeStore

app = typer.Typer()
console = Console()

OwnerOption = typer.Option(None, "--owner", help="Recipe owner id (defaults to KITCHEN_OWNER).")


def _store() -> SQLiteRecipeStore:
    return SQLiteRecipeStore(settings.DB_PATH)


def _owner(owner: Optional[str]) -> str:
    return owner or settings.DEFAULT_OWNER


def _fail(e: Exception) -> None:
    console.print(f"[red]Error:[/red] {e}")
    raise typer.Exit(code=1)


def _selected(recipe_ids: List[str], owner: Optional[str]) -> List[Recipe]:
    """Return the owner's snapshot after checking every id is in it."""
    snapshot = _store().snapshot(_owner(owner))
    known = {r.id for r in snapshot}
    unknown = [rid for rid in recipe_ids if rid not in known]
    if unknown:
        raise KitchenOSError(f"Unknown recipe ids: {', '.join(unknown)}")
    return snapshot


def _fmt(value: float) -> str:
    return f"{value:g}"


@app.command()
def ingest(content: str, owner: Optional[str] = OwnerOption):
    """Extract a recipe from text or a URL and store it."""
    try:
        validate_required()
        recipe = submit_recipe(content, _owner(owner), _store(), GeminiExtractor())
        console.print(f'"{recipe.dish_name}" added ([bold]{recipe.id}[/bold]).')
    except (KitchenOSError, RuntimeError) as e:
        _fail(e)


@app.command("list")
def list_recipes(owner: Optional[str] = OwnerOption):
    """List stored recipes, newest first."""
    try:
        recipes = _store().snapshot(_owner(owner))
    except KitchenOSError as e:
        _fail(e)
    table = Table("id", "dish", "servings", "minutes", "ingredients")
    for r in recipes:
        table.add_row(r.id, r.dish_name, str(r.servings), str(r.total_time_minutes), str(len(r.ingredients)))
    console.print(table)


@app.command()
def search(query: str, owner: Optional[str] = OwnerOption):
    """Find recipes by dish name or variation."""
    try:
        hits = find_recipes(_store().snapshot(_owner(owner)), query)
    except KitchenOSError as e:
        _fail(e)
    if not hits:
        console.print("No matching recipes.")
        return
    for r in hits:
        console.print(f"{r.id}  {r.dish_name}  [dim]{', '.join(r.variations)}[/dim]")


@app.command()
def pantry(owner: Optional[str] = OwnerOption):
    """Show the master ingredient index."""
    try:
        index = build_pantry_index(_store().snapshot(_owner(owner)))
    except KitchenOSError as e:
        _fail(e)
    table = Table("ingredient", "used in")
    for entry in index:
        table.add_row(entry.name, ", ".join(entry.recipes_using))
    console.print(table)


@app.command()
def shopping(recipe_ids: List[str], owner: Optional[str] = OwnerOption):
    """Sum shopping quantities for the given recipes."""
    try:
        lines = aggregate_shopping_list(recipe_ids, _selected(recipe_ids, owner))
    except KitchenOSError as e:
        _fail(e)
    if not lines:
        console.print("No recipes selected for aggregation.")
        return
    table = Table("item", "amount")
    for line in lines:
        table.add_row(line.display_name, f"{_fmt(line.value)} {line.unit}".strip())
    console.print(table)


@app.command()
def schedule(
    recipe_ids: List[str],
    cooks: int = typer.Option(settings.DEFAULT_COOKS, help="Number of cooks."),
    burners: int = typer.Option(settings.DEFAULT_BURNERS, help="Number of burners."),
    owner: Optional[str] = OwnerOption,
):
    """Interleave the given recipes into one timed production schedule."""
    try:
        by_id = {r.id: r for r in _selected(recipe_ids, owner)}
        plan = build_schedule([by_id[rid] for rid in dict.fromkeys(recipe_ids)], cooks, burners)
    except KitchenOSError as e:
        _fail(e)

    if plan.prerequisites:
        console.print("[bold]Before you start:[/bold]")
        for p in plan.prerequisites:
            console.print(f"  - {p.recipe_name}: {p.instruction} ({p.duration_minutes}m)")
    table = Table("T+", "min", "type", "action", "recipe", "who")
    for entry in plan.timeline:
        style = "bold" if entry.is_parallel else None
        table.add_row(
            f"{entry.time_offset_minutes}m",
            str(entry.duration_minutes),
            entry.type.value,
            entry.action,
            ", ".join(entry.involved_recipe_names),
            ", ".join(entry.assignees),
            style=style,
        )
    console.print(table)
    console.print(f"Total: {plan.total_minutes} min with {plan.cooks} cook(s) and {plan.burners} burner(s).")


@app.command()
def delete(recipe_id: str):
    """Delete a stored recipe."""
    try:
        _store().delete(recipe_id)
        console.print("Recipe deleted.")
    except KitchenOSError as e:
        _fail(e)


if __name__ == "__main__":
    app()
