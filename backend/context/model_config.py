"""
Model configuration records.

ModelConfig objects are supplied by an external model registry and are
immutable once resolved for a generation. This module never defines how
they are stored.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping


@dataclass(frozen=True)
class ModelCapabilities:
    """Capability flags extracted from a ModelConfig."""
    reasoning: bool = False
    vision: bool = False
    tool_use: bool = False
    web_search: bool = False


@dataclass(frozen=True)
class ModelConfig:
    """
    Provider endpoint, credentials, default generation parameters and
    capability flags for one configured model.

    Generation parameters left as None are never forwarded to the provider.
    """

    id: str
    name: str
    model_id: str
    created_at_ms: int
    updated_at_ms: int = 0

    api_endpoint: str | None = None
    api_key: str | None = None

    temperature: float | None = None
    top_p: float | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    max_tokens: int | None = None

    supports_reasoning: bool = False
    supports_vision: bool = False
    supports_tool_use: bool = False
    supports_web_search: bool = False

    @property
    def capabilities(self) -> ModelCapabilities:
        return ModelCapabilities(
            reasoning=self.supports_reasoning,
            vision=self.supports_vision,
            tool_use=self.supports_tool_use,
            web_search=self.supports_web_search,
        )

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> ModelConfig:
        """
        Build from a registry record.

        Raises:
            KeyError if id or model_id is missing.
        """
        created_at_ms = int(data.get("created_at_ms", 0))
        return ModelConfig(
            id=str(data["id"]),
            name=str(data.get("name") or data["id"]),
            model_id=str(data["model_id"]),
            created_at_ms=created_at_ms,
            updated_at_ms=int(data.get("updated_at_ms", created_at_ms)),
            api_endpoint=data.get("api_endpoint"),
            api_key=data.get("api_key"),
            temperature=_optional_float(data.get("temperature")),
            top_p=_optional_float(data.get("top_p")),
            frequency_penalty=_optional_float(data.get("frequency_penalty")),
            presence_penalty=_optional_float(data.get("presence_penalty")),
            max_tokens=_optional_int(data.get("max_tokens")),
            supports_reasoning=bool(data.get("supports_reasoning", False)),
            supports_vision=bool(data.get("supports_vision", False)),
            supports_tool_use=bool(data.get("supports_tool_use", False)),
            supports_web_search=bool(data.get("supports_web_search", False)),
        )


def validate_model_config(config: ModelConfig) -> list[str]:
    """
    Return human-readable configuration problems (empty if usable).
    """
    problems: list[str] = []
    if not config.api_key:
        problems.append(
            f"AI model integration is not configured. Missing API key for model {config.id!r}"
        )
    if not config.model_id:
        problems.append(
            f"No model specified for {config.id!r}. Set a provider model identifier"
        )
    return problems


def _optional_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    return float(value)


def _optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)
