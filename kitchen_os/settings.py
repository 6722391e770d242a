"""Application settings loaded from environment (and .env).

This module provides a small Settings holder backed by environment variables.
Keep this file simple and import `settings` from other modules.
"""
from __future__ import annotations

from dataclasses import dataclass
import os
import json
from pathlib import Path

# Load the JSON schema from file so it can be edited without touching code.
_schema_path = Path(__file__).parent / "schemas" / "recipe_response_schema.json"
if _schema_path.exists():
    with open(_schema_path, "r", encoding="utf8") as _fh:
        RECIPE_RESPONSE_SCHEMA = json.load(_fh)
else:
    RECIPE_RESPONSE_SCHEMA = {}


def _get(name: str, default: str | None = None) -> str | None:
    v = os.getenv(name)
    if v is None:
        return default
    return v


def _get_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None or not v.strip():
        return default
    try:
        return int(v)
    except ValueError:
        return default


@dataclass
class Settings:
    # API keys
    GEMINI_API_KEY: str | None = _get("GEMINI_API_KEY")
    GEMINI_MODEL: str = _get("GEMINI_MODEL", "gemini-2.5-flash")

    # Recipe store (sqlite file)
    DB_PATH: str = _get("DB_PATH", os.path.join("data", "recipes.db"))

    # Owner used by the CLI when --owner is not given
    DEFAULT_OWNER: str = _get("KITCHEN_OWNER", "local")

    # Every extracted recipe is scaled to this many servings
    DEFAULT_SERVINGS: int = _get_int("DEFAULT_SERVINGS", 4)

    # Production planning defaults
    DEFAULT_COOKS: int = _get_int("DEFAULT_COOKS", 1)
    DEFAULT_BURNERS: int = _get_int("DEFAULT_BURNERS", 2)

    # Logging configuration
    # LOG_LEVEL can be DEBUG, INFO, WARNING, ERROR, or CRITICAL
    LOG_LEVEL: str = _get("LOG_LEVEL", "INFO")
    # Optional path to write logs to a file; if unset, logs go to stderr
    LOG_FILE: str | None = _get("LOG_FILE", None)


settings = Settings()


def validate_required() -> None:
    """Validate required secrets and raise a helpful RuntimeError if missing.

    This function checks environment variables at runtime so callers can load a .env first.
    """
    missing = []
    if not os.getenv("GEMINI_API_KEY"):
        missing.append("GEMINI_API_KEY (Gemini / Google Generative AI key)")
    if missing:
        msg = (
            "Missing required environment variables: "
            + ", ".join(missing)
            + "\nPlease set them in your .env or environment and try again."
        )
        raise RuntimeError(msg)
