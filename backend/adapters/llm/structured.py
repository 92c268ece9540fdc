"""
Structured-output generation.

For any generation that expects a specific response shape:
1. strip a ```json fence if present
2. attempt a direct parse
3. salvage the outermost {...} span
4. otherwise raise StructuredOutputError (never return partial data)

The parsed object is validated against a pydantic model.
"""

from __future__ import annotations

import json
import re
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from adapters.llm.base import GenerationAdapter, GenerationParams
from context.message import Message
from context.model_config import ModelConfig
from orchestrator.cancellation import CancellationToken
from orchestrator.errors import StructuredOutputError

from constants import STRUCTURED_PARSE_PREVIEW_CHARS


ModelT = TypeVar("ModelT", bound=BaseModel)

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


def extract_json(text: str) -> Any:
    """
    Parse JSON out of a model response.

    Raises:
        StructuredOutputError if neither a direct parse nor the outermost
        {...} salvage yields valid JSON.
    """
    candidate = text.strip()

    fenced = _FENCE_RE.search(candidate)
    if fenced:
        candidate = fenced.group(1).strip()

    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        pass

    start = candidate.find("{")
    end = candidate.rfind("}")
    if start != -1 and end > start:
        try:
            return json.loads(candidate[start:end + 1])
        except json.JSONDecodeError:
            pass

    raise StructuredOutputError(
        "Failed to parse JSON from model response: "
        f"{text[:STRUCTURED_PARSE_PREVIEW_CHARS]!r}"
    )


def parse_structured(text: str, schema: type[ModelT]) -> ModelT:
    """Parse and validate a response against a pydantic schema."""
    data = extract_json(text)
    try:
        return schema.model_validate(data)
    except ValidationError as exc:
        raise StructuredOutputError(
            f"Model response does not match {schema.__name__}: {exc}"
        ) from exc


async def generate_structured(
    adapter: GenerationAdapter,
    *,
    messages: list[Message],
    model_config: ModelConfig,
    schema: type[ModelT],
    params: GenerationParams | None = None,
    token: CancellationToken | None = None,
    system_prompt: str | None = None,
) -> ModelT:
    """Run a single completion and parse it into `schema`."""
    text = await adapter.complete(
        messages=messages,
        model_config=model_config,
        params=params or GenerationParams(),
        token=token,
        system_prompt=system_prompt,
    )
    return parse_structured(text, schema)
