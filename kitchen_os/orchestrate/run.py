"""Application shell: wires extraction, the recipe store and the derived views.

The core views are pure functions of a snapshot; this module owns the
subscription loop and the in-flight extraction bookkeeping.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Iterator, List, Optional, Protocol, Sequence

from kitchen_os.errors import ExtractionError, ExtractionInProgressError
from kitchen_os.models.recipe_schema import Recipe, RecipeDraft
from kitchen_os.models.views import StandardizedIngredient
from kitchen_os.pantry.index import build_pantry_index, existing_canonical_names
from kitchen_os.settings import settings
from kitchen_os.store.sqlite_store import RecipeStore

logger = logging.getLogger(__name__)

UNKNOWN_DISH = "Unknown Dish"


class Extractor(Protocol):
    def extract(self, content: str, existing_canonical_names: Sequence[str] = ()) -> RecipeDraft: ...


def draft_to_recipe(draft: RecipeDraft, owner_id: str, servings: Optional[int] = None) -> Recipe:
    """Fill in defaults for whatever the model left out."""
    return Recipe(
        dish_name=(draft.dish_name or "").strip() or UNKNOWN_DISH,
        category=draft.category,
        variations=draft.variations,
        servings=servings or settings.DEFAULT_SERVINGS,
        ingredients=draft.ingredients,
        steps=draft.steps,
        total_time_minutes=draft.total_time_minutes or 0,
        timestamp=datetime.now(timezone.utc),
        owner_id=owner_id,
        sources=draft.sources,
    )


def submit_recipe(
    content: str,
    owner_id: str,
    store: RecipeStore,
    extractor: Extractor,
    before_store: Optional[Callable[[], None]] = None,
) -> Recipe:
    """Extract ``content`` into a recipe and store it for ``owner_id``.

    Returns the stored recipe with its assigned id. Extraction and persistence
    errors propagate unchanged; nothing is retried here. ``before_store`` runs
    between extraction and the store write; raising from it drops the result.
    """
    logger.info("Submit start | owner=%s chars=%d", owner_id, len(content or ""))
    names = existing_canonical_names(store.snapshot(owner_id))
    draft = extractor.extract(content, names)
    if before_store is not None:
        before_store()
    recipe = draft_to_recipe(draft, owner_id)
    recipe_id = store.create(recipe)
    stored = recipe.model_copy(update={"id": recipe_id})
    logger.info(
        "Submit success | owner=%s id=%s dish=%s ingredients=%d steps=%d",
        owner_id,
        recipe_id,
        stored.dish_name,
        len(stored.ingredients),
        len(stored.steps),
    )
    return stored


def watch_pantry(store: RecipeStore, owner_id: str, timeout: Optional[float] = None) -> Iterator[List[StandardizedIngredient]]:
    """Yield a freshly built pantry index for every snapshot the store pushes."""
    for snapshot in store.subscribe(owner_id, timeout=timeout):
        yield build_pantry_index(snapshot)


@dataclass
class _Run:
    future: Optional[Future] = None
    cancelled: bool = False
    storing: bool = False


class ExtractionRunner:
    """Runs extractions in the background, at most one in flight per owner.

    ``start`` returns a Future that resolves exactly once to the stored Recipe
    or to the extraction/persistence error.
    """

    def __init__(self, store: RecipeStore, extractor: Extractor, max_workers: int = 4):
        self.store = store
        self.extractor = extractor
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="extract")
        self._lock = threading.Lock()
        self._in_flight: Dict[str, _Run] = {}

    def start(self, content: str, owner_id: str) -> Future:
        with self._lock:
            current = self._in_flight.get(owner_id)
            if current is not None and not current.future.done():
                raise ExtractionInProgressError(f"An extraction is already running for {owner_id}")
            run = _Run()
            run.future = self._pool.submit(self._submit, run, content, owner_id)
            self._in_flight[owner_id] = run
        run.future.add_done_callback(lambda f: self._finished(owner_id, f))
        return run.future

    def _submit(self, run: _Run, content: str, owner_id: str) -> Recipe:
        def claim_store():
            with self._lock:
                if run.cancelled:
                    raise ExtractionError("Extraction cancelled")
                run.storing = True

        return submit_recipe(content, owner_id, self.store, self.extractor, before_store=claim_store)

    def _finished(self, owner_id: str, fut: Future) -> None:
        with self._lock:
            current = self._in_flight.get(owner_id)
            if current is not None and current.future is fut:
                del self._in_flight[owner_id]
        try:
            exc = fut.exception()
        except CancelledError:
            logger.info("Extraction cancelled | owner=%s", owner_id)
            return
        if exc is not None:
            level = logging.WARNING if isinstance(exc, ExtractionError) else logging.ERROR
            logger.log(level, "Extraction failed | owner=%s error=%s", owner_id, exc)

    def in_flight(self, owner_id: str) -> bool:
        with self._lock:
            current = self._in_flight.get(owner_id)
            return current is not None and not current.future.done()

    def cancel(self, owner_id: str) -> bool:
        """Cancel the owner's extraction.

        A queued extraction never runs. A running one finishes its model call,
        but its result is discarded and the future fails with ExtractionError.
        Returns False when nothing is in flight or the recipe is already being
        stored; that extraction then completes normally.
        """
        with self._lock:
            run = self._in_flight.get(owner_id)
            if run is None or run.future.done() or run.storing:
                return False
            run.cancelled = True
        run.future.cancel()
        return True

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait, cancel_futures=True)
