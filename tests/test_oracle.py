"""Tests for the AI mapping oracle, with a stub chat client."""

import json
from types import SimpleNamespace

import pytest

from canvasmap.errors import OracleResponseError
from canvasmap.suggest.oracle import (
    SYSTEM_PROMPT,
    MappingOracle,
    build_prompt,
    estimate_tokens,
    extract_json_array,
)

SUGGESTIONS = [
    {
        "target_field": "fullname",
        "mapping_type": "concat",
        "source_fields": ["Roepnaam", "Achternaam"],
        "separator": " ",
    },
    {"target_field": "land", "mapping_type": "static", "value": "NL"},
]


class StubCompletions:
    def __init__(self, content):
        self.content = content
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class StubClient:
    """Exposes ``chat.completions.create`` like ``openai.AsyncOpenAI``."""

    def __init__(self, content):
        self.completions = StubCompletions(content)
        self.chat = SimpleNamespace(completions=self.completions)


def test_extract_json_array_from_prose():
    """The array is cut from the first ``[`` to the last ``]``."""
    raw = "Sure! Here are the mappings:\n```json\n" + json.dumps(SUGGESTIONS) + "\n```\nGood luck."
    assert extract_json_array(raw) == SUGGESTIONS


def test_extract_json_array_errors():
    with pytest.raises(OracleResponseError):
        extract_json_array("I could not find any mappings.")
    with pytest.raises(OracleResponseError) as exc_info:
        extract_json_array("[{'target_field': 'a'}]")
    assert "malformed" in str(exc_info.value)
    assert exc_info.value.raw == "[{'target_field': 'a'}]"


def test_build_prompt_embeds_samples():
    prompt = build_prompt([{"Roepnaam": "Jan"}], [{"fullname": "Jan Jansen"}])
    assert '"Roepnaam": "Jan"' in prompt
    assert '"fullname": "Jan Jansen"' in prompt
    assert '"mapping_type": "concat"' in prompt


def test_estimate_tokens():
    source = [{"a": "x" * 396}]
    assert estimate_tokens(source, []) == round((len(json.dumps(source)) + 2) / 4)


@pytest.mark.asyncio
async def test_generate_canvas():
    """One request yields the raw mappings and a laid-out canvas."""
    client = StubClient("Here you go:\n" + json.dumps(SUGGESTIONS))
    oracle = MappingOracle(client=client, model="test-model", temperature=0.5)

    result = await oracle.generate_canvas([{"Roepnaam": "Jan", "Achternaam": "Jansen"}], [{"fullname": "Jan Jansen"}])

    assert result.mappings == SUGGESTIONS
    node_ids = [n["id"] for n in result.canvas["nodes"]]
    assert node_ids == [
        "target_fullname", "source_Roepnaam", "source_Achternaam", "concat_fullname",
        "target_land", "static_land",
    ]
    assert len(result.graph().edges) == 4
    assert result.warnings == []

    call = client.completions.calls[0]
    assert call["model"] == "test-model"
    assert call["temperature"] == 0.5
    assert call["messages"][0] == {"role": "system", "content": SYSTEM_PROMPT}


@pytest.mark.asyncio
async def test_samples_capped_and_redacted():
    """At most ``max_samples`` records are sent, each through the redactor."""
    seen = []

    def redact(record):
        seen.append(record["id"])
        return {"id": record["id"], "email": "***"}

    client = StubClient("[]")
    oracle = MappingOracle(client=client, max_samples=3, redactor=redact)
    records = [{"id": i, "email": f"user{i}@example.com"} for i in range(10)]

    assert await oracle.suggest(records, records[:1]) == []
    assert seen == [0, 1, 2, 0]
    prompt = client.completions.calls[0]["messages"][1]["content"]
    assert "example.com" not in prompt


@pytest.mark.asyncio
async def test_unparseable_response_fails_request():
    oracle = MappingOracle(client=StubClient("no json here"))
    with pytest.raises(OracleResponseError):
        await oracle.generate_canvas([{"a": 1}], [{"b": 2}])


@pytest.mark.asyncio
async def test_empty_choices():
    client = StubClient("")
    client.completions.create = _no_choices
    oracle = MappingOracle(client=client)
    assert await oracle.complete("prompt") == ""


async def _no_choices(**kwargs):
    return SimpleNamespace(choices=[])


def test_from_settings(monkeypatch):
    from canvasmap.config import get_settings

    monkeypatch.setenv("CANVASMAP_OPENAI_MODEL", "gpt-test")
    monkeypatch.setenv("CANVASMAP_AI_MAX_SAMPLES", "5")
    get_settings.cache_clear()

    oracle = MappingOracle.from_settings(get_settings(), client=StubClient("[]"))
    assert oracle.model == "gpt-test"
    assert oracle.max_samples == 5
