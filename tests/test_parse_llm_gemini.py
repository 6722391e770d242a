import json

import pytest
import requests

from kitchen_os.errors import ExtractionError
from kitchen_os.ingest import parse_llm_gemini
from kitchen_os.ingest.parse_llm_gemini import (
    GeminiExtractor,
    _build_prompt,
    _extract_json_fragment,
    _parse_candidate_json,
    _strip_markdown_fence,
)

RECIPE_JSON = {
    "dishName": "Garlic Rice",
    "variations": ["Lehsun Chawal", "Garlic Fried Rice"],
    "ingredients": [
        {"name": "Garlic", "kitchen": {"value": 4, "unit": "cloves"}, "shopping": {"value": 12, "unit": "g"}}
    ],
    "steps": [
        {"instruction": "Soak 1 cup rice", "durationMinutes": 30, "type": "pre-start"},
        {"instruction": "Fry 4 cloves garlic", "durationMinutes": 3, "type": "cooking"},
    ],
    "totalTimeMinutes": 25,
}


class DummyResponse:
    def __init__(self, text):
        self.text = text


class DummyModels:
    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = []

    def generate_content(self, model, contents, config=None):
        self.calls.append({"model": model, "contents": contents, "config": config})
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return DummyResponse(reply)


class DummyClient:
    def __init__(self, *replies):
        self.models = DummyModels(replies)


def test_strip_markdown_fence():
    assert _strip_markdown_fence('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert _strip_markdown_fence('Here you go:\n```\n{"a": 1}\n```') == '{"a": 1}'
    assert _strip_markdown_fence('{"a": 1}') == '{"a": 1}'


def test_extract_json_fragment_prefers_largest_object():
    raw = 'noise {"a": 1} more {"dishName": "X", "steps": [{"instruction": "mix {gently}"}]} tail'
    assert json.loads(_extract_json_fragment(raw))["dishName"] == "X"
    assert _extract_json_fragment("no json here") is None


def test_parse_candidate_json():
    assert _parse_candidate_json('```json\n{"dishName": "Soup"}\n```') == {"dishName": "Soup"}
    assert _parse_candidate_json('The recipe: {"dishName": "Soup"} enjoy') == {"dishName": "Soup"}
    assert _parse_candidate_json("[1, 2]") is None
    assert _parse_candidate_json("sorry, no recipe") is None


def test_prompt_lists_existing_names_and_servings():
    prompt = _build_prompt("Mix garlic and rice.", ["Garlic", "Basmati Rice"], 4)
    assert "INPUT TYPE: Text" in prompt
    assert "Garlic, Basmati Rice" in prompt
    assert "exactly 4 servings" in prompt
    url_prompt = _build_prompt("https://example.com/rice", [], 4, page_text="Garlic rice page")
    assert "INPUT TYPE: URL" in url_prompt
    assert "PAGE_TEXT:\nGarlic rice page" in url_prompt


def test_extract_text_returns_draft():
    client = DummyClient("```json\n" + json.dumps(RECIPE_JSON) + "\n```")
    extractor = GeminiExtractor(client=client, model="test-model")

    draft = extractor.extract("Garlic rice: soak rice, fry garlic", ["Garlic"])

    assert draft.dish_name == "Garlic Rice"
    assert [s.type.value for s in draft.steps] == ["pre-start", "cooking"]
    assert draft.sources == []
    call = client.models.calls[0]
    assert call["model"] == "test-model"
    assert "Garlic rice: soak rice" in call["contents"]


def test_extract_url_uses_fetched_page_text(monkeypatch):
    monkeypatch.setattr(parse_llm_gemini, "fetch_url", lambda url: ("<html></html>", "https://example.com/final"))
    monkeypatch.setattr(parse_llm_gemini, "extract_main_text", lambda html, url: "Garlic rice page text")
    client = DummyClient(json.dumps(RECIPE_JSON))

    draft = GeminiExtractor(client=client).extract("https://example.com/rice")

    assert "Garlic rice page text" in client.models.calls[0]["contents"]
    assert [(s.uri, s.title) for s in draft.sources] == [("https://example.com/final", "Garlic Rice")]


def test_extract_url_falls_back_to_model_visiting_it(monkeypatch):
    def boom(url):
        raise requests.ConnectionError("offline")

    monkeypatch.setattr(parse_llm_gemini, "fetch_url", boom)
    client = DummyClient(json.dumps(RECIPE_JSON))

    draft = GeminiExtractor(client=client).extract("https://example.com/rice")

    call = client.models.calls[0]
    assert "Visit the URL provided" in call["contents"]
    assert call["config"].tools
    assert draft.sources[0].uri == "https://example.com/rice"


def test_model_errors_become_extraction_errors():
    with pytest.raises(ExtractionError, match="Failed to systematize: quota exceeded"):
        GeminiExtractor(client=DummyClient(RuntimeError("quota exceeded"))).extract("text")
    with pytest.raises(ExtractionError, match="Could not parse JSON"):
        GeminiExtractor(client=DummyClient("I cannot help with that")).extract("text")
    with pytest.raises(ExtractionError, match="No content"):
        GeminiExtractor(client=DummyClient("")).extract("text")


def test_blank_content_is_rejected_without_calling_the_model():
    client = DummyClient()
    with pytest.raises(ExtractionError, match="Nothing to extract"):
        GeminiExtractor(client=client).extract("   ")
    assert client.models.calls == []


def test_validation_failure_is_retried_once():
    bad = json.dumps({"dishName": "Soup", "variations": "not-a-list"})
    client = DummyClient(bad, json.dumps(RECIPE_JSON))
    draft = GeminiExtractor(client=client).extract("text")
    assert draft.dish_name == "Garlic Rice"
    assert len(client.models.calls) == 2

    client = DummyClient(bad, bad)
    with pytest.raises(ExtractionError, match="failed validation"):
        GeminiExtractor(client=client).extract("text")


def test_missing_api_key(monkeypatch):
    monkeypatch.setattr(parse_llm_gemini.settings, "GEMINI_API_KEY", None)
    with pytest.raises(ExtractionError, match="GEMINI_API_KEY"):
        GeminiExtractor().extract("text")
