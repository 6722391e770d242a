"""Recipe store backed by a local sqlite file.

Each recipe is one JSON document row. Writes bump a per-document version and
wake every open subscription in this process, which then yields a fresh
full-collection snapshot for its owner.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
import uuid
from contextlib import closing
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Protocol

from pydantic import ValidationError

from kitchen_os.errors import PersistenceError
from kitchen_os.models.recipe_schema import Recipe

logger = logging.getLogger(__name__)

IMMUTABLE_FIELDS = {"id", "owner_id"}


class RecipeStore(Protocol):
    def subscribe(self, owner_id: str, timeout: Optional[float] = None) -> Iterator[List[Recipe]]: ...

    def snapshot(self, owner_id: str) -> List[Recipe]: ...

    def get(self, recipe_id: str) -> Recipe: ...

    def create(self, recipe: Recipe) -> str: ...

    def update(self, recipe_id: str, fields: Dict[str, Any]) -> Recipe: ...

    def delete(self, recipe_id: str) -> None: ...


def _field_name(key: str) -> str:
    """Map a camelCase document key (or a field name) to the Recipe field name."""
    for name, info in Recipe.model_fields.items():
        if key == name or key == info.alias:
            return name
    raise PersistenceError(f"unknown recipe field: {key!r}")


class SQLiteRecipeStore:
    def __init__(self, path: str):
        self.path = path
        self._changed = threading.Condition()
        self._revision = 0
        self.ensure_db()

    def _connect(self, **kwargs) -> sqlite3.Connection:
        return sqlite3.connect(self.path, timeout=30, **kwargs)

    def ensure_db(self) -> None:
        if os.path.dirname(self.path):
            os.makedirs(os.path.dirname(self.path), exist_ok=True)
        with closing(self._connect()) as conn, conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS recipes (
                    id TEXT PRIMARY KEY,
                    owner_id TEXT,
                    timestamp TEXT NOT NULL,
                    doc TEXT NOT NULL,
                    version INTEGER DEFAULT 1,
                    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS recipes_owner ON recipes(owner_id, timestamp)")

    def _notify(self) -> None:
        with self._changed:
            self._revision += 1
            self._changed.notify_all()

    @staticmethod
    def _row_to_recipe(row) -> Recipe:
        recipe_id, doc = row
        return Recipe.model_validate({**json.loads(doc), "id": recipe_id})

    def snapshot(self, owner_id: str) -> List[Recipe]:
        """Every recipe of ``owner_id``, newest first."""
        try:
            with closing(self._connect()) as conn:
                rows = conn.execute(
                    "SELECT id, doc FROM recipes WHERE owner_id = ? ORDER BY timestamp DESC, rowid DESC",
                    (owner_id,),
                ).fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not read recipes: {e}") from e
        return [self._row_to_recipe(r) for r in rows]

    def subscribe(self, owner_id: str, timeout: Optional[float] = None) -> Iterator[List[Recipe]]:
        """Yield the current snapshot, then a new one after every write.

        The iterator never ends on its own; close it to unsubscribe. With a
        ``timeout`` a snapshot is also re-read and yielded when no write
        arrives within that many seconds. Each call starts a fresh stream.
        """
        seen = None
        while True:
            with self._changed:
                if seen is not None:
                    self._changed.wait_for(lambda: self._revision != seen, timeout=timeout)
                seen = self._revision
            yield self.snapshot(owner_id)

    def get(self, recipe_id: str) -> Recipe:
        try:
            with closing(self._connect()) as conn:
                row = conn.execute("SELECT id, doc FROM recipes WHERE id = ?", (recipe_id,)).fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not read recipe {recipe_id}: {e}") from e
        if row is None:
            raise PersistenceError(f"Recipe {recipe_id} not found")
        return self._row_to_recipe(row)

    def create(self, recipe: Recipe) -> str:
        """Insert ``recipe`` and return its newly assigned id."""
        recipe_id = uuid.uuid4().hex
        timestamp = recipe.timestamp.astimezone(timezone.utc)
        stored = recipe.model_copy(update={"timestamp": timestamp})
        try:
            with closing(self._connect()) as conn, conn:
                conn.execute(
                    "INSERT INTO recipes (id, owner_id, timestamp, doc) VALUES (?,?,?,?)",
                    (recipe_id, recipe.owner_id, timestamp.isoformat(timespec="microseconds"), json.dumps(stored.to_document())),
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not save recipe: {e}") from e
        logger.info("Created recipe %s (%s) for owner %s", recipe_id, recipe.dish_name, recipe.owner_id)
        self._notify()
        return recipe_id

    def update(self, recipe_id: str, fields: Dict[str, Any]) -> Recipe:
        """Replace the given fields of a recipe; the last write wins.

        The read, the merge and the write happen in one immediate transaction,
        so concurrent partial updates of different fields all survive.
        """
        changes = {_field_name(k): v for k, v in fields.items()}
        frozen = IMMUTABLE_FIELDS & set(changes)
        if frozen:
            raise PersistenceError(f"Cannot update {', '.join(sorted(frozen))} of recipe {recipe_id}")
        try:
            with closing(self._connect(isolation_level=None)) as conn:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    updated = self._update_locked(conn, recipe_id, changes)
                except Exception:
                    conn.execute("ROLLBACK")
                    raise
                conn.execute("COMMIT")
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to update recipe {recipe_id}: {e}") from e
        logger.info("Updated recipe %s (%s)", recipe_id, ", ".join(sorted(changes)))
        self._notify()
        return updated

    def _update_locked(self, conn: sqlite3.Connection, recipe_id: str, changes: Dict[str, Any]) -> Recipe:
        row = conn.execute("SELECT id, doc, version FROM recipes WHERE id = ?", (recipe_id,)).fetchone()
        if row is None:
            raise PersistenceError(f"Recipe {recipe_id} not found")
        version = row[2]
        merged = self._row_to_recipe(row[:2]).model_dump()
        merged.update(changes)
        if "timestamp" not in changes:
            merged["timestamp"] = datetime.now(timezone.utc)
        try:
            updated = Recipe.model_validate(merged)
        except ValidationError as e:
            raise PersistenceError(f"Invalid update for recipe {recipe_id}: {e}") from e
        timestamp = updated.timestamp.astimezone(timezone.utc)
        updated = updated.model_copy(update={"timestamp": timestamp})
        cur = conn.execute(
            "UPDATE recipes SET doc = ?, timestamp = ?, version = version + 1, updated_at = CURRENT_TIMESTAMP "
            "WHERE id = ? AND version = ?",
            (json.dumps(updated.to_document()), timestamp.isoformat(timespec="microseconds"), recipe_id, version),
        )
        if cur.rowcount == 0:
            raise PersistenceError(f"Recipe {recipe_id} changed during update")
        return updated

    def delete(self, recipe_id: str) -> None:
        try:
            with closing(self._connect()) as conn, conn:
                cur = conn.execute("DELETE FROM recipes WHERE id = ?", (recipe_id,))
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not delete recipe {recipe_id}: {e}") from e
        if cur.rowcount == 0:
            raise PersistenceError(f"Recipe {recipe_id} not found")
        logger.info("Deleted recipe %s", recipe_id)
        self._notify()
