"""
Reasoning-effort policy.

Pure helpers deciding whether a reasoning-effort parameter applies to a
generation. Whether it is actually forwarded is decided later by the
adapter (include_reasoning) and the retry fallback.
"""

from __future__ import annotations

from context.model_config import ModelConfig
from constants import REASONING_EFFORTS


def normalize_reasoning_effort(value: str | None) -> str | None:
    """Return a canonical effort ("low" | "medium" | "high") or None."""
    if value is None:
        return None
    normalized = value.strip().lower()
    if normalized in REASONING_EFFORTS:
        return normalized
    return None


def resolve_reasoning_effort(
    selection: str | None,
    model_config: ModelConfig,
) -> str | None:
    """
    Effort to request for this model, or None.

    Models that do not advertise reasoning support never get one.
    """
    if not model_config.supports_reasoning:
        return None
    return normalize_reasoning_effort(selection)
