"""
Provider request parameter construction.

Rules:
- Only explicitly set parameters are forwarded.
- Reasoning-specific parameters are forwarded only when the caller opts
  in (include_reasoning); the retry fallback opts out on its second try.
"""

from __future__ import annotations

from typing import Any

from adapters.llm.base import GenerationParams


def build_request_params(
    params: GenerationParams,
    *,
    include_reasoning: bool,
) -> dict[str, Any]:
    """Keyword arguments for chat.completions.create()."""
    request: dict[str, Any] = {}

    if params.temperature is not None:
        request["temperature"] = params.temperature
    if params.top_p is not None:
        request["top_p"] = params.top_p
    if params.frequency_penalty is not None:
        request["frequency_penalty"] = params.frequency_penalty
    if params.presence_penalty is not None:
        request["presence_penalty"] = params.presence_penalty
    if params.max_tokens is not None:
        request["max_tokens"] = params.max_tokens

    if include_reasoning and params.reasoning_effort is not None:
        request["reasoning_effort"] = params.reasoning_effort

    return request
