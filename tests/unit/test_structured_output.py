# pylint: disable=missing-module-docstring,missing-function-docstring

from typing import Any

import pytest
from pydantic import BaseModel

from adapters.llm.base import GenerationAdapter, GenerationParams
from adapters.llm.structured import extract_json, generate_structured, parse_structured
from context.message import Message
from context.model_config import ModelConfig
from orchestrator.errors import StructuredOutputError


class Verdict(BaseModel):
    label: str
    score: float


class CannedAdapter(GenerationAdapter):
    def __init__(self, text: str) -> None:
        self.text = text
        self.params: list[GenerationParams] = []

    async def generate(self, **kwargs: Any):  # type: ignore[override]
        raise AssertionError("streaming not expected")

    async def complete(self, *, messages, model_config, params, token=None, system_prompt=None) -> str:
        self.params.append(params)
        return self.text


def test_plain_json():
    assert extract_json('{"a": 1}') == {"a": 1}


def test_fenced_json():
    assert extract_json('Sure!\n```json\n{"a": [1, 2]}\n```\nDone.') == {"a": [1, 2]}


def test_salvages_outermost_object():
    assert extract_json('Result: {"a": {"b": 2}} hope that helps') == {"a": {"b": 2}}


def test_unparseable_raises():
    with pytest.raises(StructuredOutputError, match="Failed to parse JSON"):
        extract_json("no json here")


def test_schema_mismatch_raises():
    with pytest.raises(StructuredOutputError, match="Verdict"):
        parse_structured('{"label": "x"}', Verdict)


@pytest.mark.asyncio
async def test_generate_structured_validates_completion():
    adapter = CannedAdapter('```json\n{"label": "ok", "score": 0.5}\n```')
    model = ModelConfig(id="m", name="m", model_id="gpt", created_at_ms=0, api_key="k")
    messages: list[Message] = []

    verdict = await generate_structured(adapter, messages=messages, model_config=model, schema=Verdict)

    assert verdict == Verdict(label="ok", score=0.5)
    assert adapter.params == [GenerationParams()]
