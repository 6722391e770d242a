"""
Gemini recipe extractor: raw text or a URL in, RecipeDraft out.
"""

from __future__ import annotations
import json
import logging
from typing import Optional, Sequence

import jsonschema
import requests
from pydantic import ValidationError

from kitchen_os.errors import ExtractionError
from kitchen_os.ingest.extract_text import extract_main_text
from kitchen_os.ingest.fetch import fetch_url, is_url
from kitchen_os.models.recipe_schema import RecipeDraft, Source
from kitchen_os.settings import settings, RECIPE_RESPONSE_SCHEMA

logger = logging.getLogger(__name__)

# page text beyond this is cut before it goes into the prompt
MAX_PAGE_TEXT = 60000


def _strip_markdown_fence(raw: str) -> str:
    if not raw:
        return raw
    stripped = raw.strip()
    if stripped.startswith("```"):
        content = stripped[3:]
    else:
        fence_start = stripped.find("```")
        if fence_start == -1:
            return raw
        content = stripped[fence_start + 3 :]
    content = content.lstrip()
    if content.lower().startswith("json"):
        content = content[4:]
    content = content.lstrip()
    closing = content.rfind("```")
    if closing != -1:
        content = content[:closing]
    return content.strip() or raw


def _extract_json_fragment(raw: str) -> str | None:
    start = None
    depth = 0
    in_string = False
    escape = False
    best: tuple[int, int] | None = None
    for idx, ch in enumerate(raw):
        if escape:
            escape = False
            continue
        if ch == "\\":
            escape = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch == "{":
            if depth == 0:
                start = idx
            depth += 1
        elif ch == "}":
            if depth:
                depth -= 1
                if depth == 0 and start is not None:
                    if best is None or (idx - start) > (best[1] - best[0]):
                        best = (start, idx + 1)
    if best is None:
        return None
    return raw[best[0] : best[1]]


def _parse_candidate_json(raw: str) -> dict | None:
    candidates: list[str] = []

    def _add(value: str | None) -> None:
        if not value:
            return
        if value not in candidates:
            candidates.append(value)

    _add(_strip_markdown_fence(raw))
    _add(raw.strip())
    _add(_extract_json_fragment(raw))

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data
    return None


def _extract_response_text(resp) -> str | None:
    for attr in ("text", "output_text"):
        raw = getattr(resp, attr, None)
        if raw:
            return raw
    candidates = getattr(resp, "candidates", None) or []
    for cand in candidates:
        content = getattr(cand, "content", None)
        if content is None:
            continue
        parts = getattr(content, "parts", None) or []
        for part in parts:
            text_value = getattr(part, "text", None)
            if text_value:
                return text_value
            if isinstance(part, str):
                return part
    return None


def _build_prompt(
    content: str,
    existing_names: Sequence[str],
    servings: int,
    page_text: Optional[str] = None,
) -> str:
    url_input = is_url(content)
    if url_input and page_text:
        source = f"INPUT: {content.strip()}\n\nPAGE_TEXT:\n{page_text[:MAX_PAGE_TEXT]}"
        how = "Parse the page text fetched from the URL."
    elif url_input:
        source = f"INPUT: {content.strip()}"
        how = "Visit the URL provided and extract the recipe details."
    else:
        source = f"INPUT: {content}"
        how = "Parse the text provided."
    return "\n\n".join([
        "TASK: Systematize the following recipe into structured JSON for a recipe database.",
        f"INPUT TYPE: {'URL' if url_input else 'Text'}",
        source,
        "INSTRUCTIONS:",
        f"1. {how}",
        f"2. Scale all quantities to exactly {servings} servings. If the source gives no serving count, assume 2.",
        "3. Every ingredient has TWO quantities: 'kitchen' in culinary units (cloves for garlic, "
        "inches for ginger, tbsp/tsp for spices, cups for grains) and 'shopping' in market units "
        "(grams, ml or pieces).",
        "4. Each step is self-contained and names the ingredient and quantity it uses.",
        "5. Each step has a 'type': 'prep' for hands-on work off the heat, 'cooking' for anything "
        "on a burner, 'pre-start' for things that must happen before cooking day starts "
        "(overnight soaking, marinating).",
        "6. Use base canonical ingredient names (e.g. \"Garlic\", \"Ginger\", \"Coconut\"). "
        f"Reuse these existing names where they apply: {', '.join(existing_names)}",
        "7. List 3-5 common alternative names for the dish in 'variations'.",
        "8. Do NOT invent data not present in the source.",
        "OUTPUT JSON SCHEMA:",
        json.dumps(RECIPE_RESPONSE_SCHEMA, ensure_ascii=False, indent=2),
    ])


class GeminiExtractor:
    """Extraction adapter backed by the Gemini API.

    ``client`` is anything exposing ``models.generate_content``; a
    ``google.genai.Client`` is created from settings when omitted.
    """

    def __init__(self, client=None, model: Optional[str] = None, servings: Optional[int] = None):
        self._client = client
        self.model = model or settings.GEMINI_MODEL
        self.servings = servings or settings.DEFAULT_SERVINGS

    @property
    def client(self):
        if self._client is None:
            if not settings.GEMINI_API_KEY:
                raise ExtractionError("GEMINI_API_KEY not configured.")
            # Lazy import so the core stays importable without the SDK configured
            import google.genai as genai

            self._client = genai.Client(api_key=settings.GEMINI_API_KEY)
        return self._client

    def _config(self, use_url_tool: bool):
        from google.genai import types

        if use_url_tool:
            return types.GenerateContentConfig(
                tools=[types.Tool(url_context=types.UrlContext())],
                temperature=0,
            )
        return types.GenerateContentConfig(temperature=0, response_mime_type="application/json")

    def _fetch_page_text(self, url: str) -> tuple[Optional[str], str]:
        try:
            html, final_url = fetch_url(url.strip())
        except requests.RequestException as e:
            logger.warning("Fetching %s failed (%s); letting the model visit the URL", url, e)
            return None, url.strip()
        text = extract_main_text(html, final_url)
        return (text or None), final_url

    def extract(self, content: str, existing_canonical_names: Sequence[str] = ()) -> RecipeDraft:
        """Turn recipe text or a URL into a RecipeDraft. Raises ExtractionError on any failure."""
        if not content or not content.strip():
            raise ExtractionError("Nothing to extract: submit recipe text or a URL.")

        page_text = None
        source_url = None
        if is_url(content):
            page_text, source_url = self._fetch_page_text(content)

        prompt = _build_prompt(content, existing_canonical_names, self.servings, page_text)
        config = self._config(use_url_tool=bool(source_url) and not page_text)

        for attempt in range(2):
            try:
                resp = self.client.models.generate_content(model=self.model, contents=prompt, config=config)
            except ExtractionError:
                raise
            except Exception as e:
                logger.exception("Gemini call failed")
                raise ExtractionError(f"Failed to systematize: {e}") from e

            raw = _extract_response_text(resp)
            if not raw:
                raise ExtractionError("No content from Gemini response.")
            data = _parse_candidate_json(raw)
            if data is None:
                logger.error("Gemini output missing JSON block. Snippet: %s", raw[:200])
                raise ExtractionError("Could not parse JSON from model response.")

            try:
                jsonschema.validate(instance=data, schema=RECIPE_RESPONSE_SCHEMA)
            except jsonschema.ValidationError as e:
                logger.warning("Gemini response does not align with RECIPE_RESPONSE_SCHEMA: %s", e.message)

            try:
                draft = RecipeDraft.model_validate(data)
            except ValidationError as e:
                logger.warning("Pydantic validation failed for Gemini output: %s", e)
                if attempt == 0:
                    logger.info("Retrying Gemini extraction once more due to validation error.")
                    continue
                raise ExtractionError(f"Gemini output failed validation: {e}") from e

            if source_url and not draft.sources:
                draft.sources = [Source(uri=source_url, title=draft.dish_name or "")]
            logger.info("Extracted recipe: %s (%d ingredients, %d steps)", draft.dish_name, len(draft.ingredients), len(draft.steps))
            return draft

        raise ExtractionError("Gemini extraction failed.")
