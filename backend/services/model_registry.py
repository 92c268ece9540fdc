"""
Configuration boundary: model registry.

ModelConfig records and the user's default model id are owned by an
external settings service. The engine only consumes them through the
ModelRegistry protocol.

load_registry() builds an in-memory registry from either a JSON models
file (MODELS_FILE) or the single model described by OPENAI_* variables.
"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Protocol, runtime_checkable

from context.model_config import ModelConfig
from observability.logger import log_event

if TYPE_CHECKING:
    from config import AppConfig


ENV_MODEL_ID = "env-default"


@runtime_checkable
class ModelRegistry(Protocol):
    def list_models(self) -> list[ModelConfig]: ...
    def get_model(self, model_id: str) -> ModelConfig | None: ...
    def get_default_model_id(self) -> str | None: ...
    def set_default_model_id(self, model_id: str) -> None: ...


class InMemoryModelRegistry:
    """Registry backed by a list; the default model id is mutable."""

    def __init__(
        self,
        models: Iterable[ModelConfig] = (),
        *,
        default_model_id: str | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self._models: dict[str, ModelConfig] = {m.id: m for m in models}
        self._default_model_id = default_model_id

    def list_models(self) -> list[ModelConfig]:
        with self._lock:
            return list(self._models.values())

    def get_model(self, model_id: str) -> ModelConfig | None:
        with self._lock:
            return self._models.get(model_id)

    def add_model(self, model: ModelConfig) -> None:
        with self._lock:
            self._models[model.id] = model

    def get_default_model_id(self) -> str | None:
        with self._lock:
            return self._default_model_id

    def set_default_model_id(self, model_id: str) -> None:
        with self._lock:
            self._default_model_id = model_id
        log_event({
            "event_type": "DEFAULT_MODEL_SET",
            "model_id": model_id,
        })


def load_registry(config: AppConfig) -> InMemoryModelRegistry:
    """
    Build the registry from configuration.

    MODELS_FILE format:
        {"default_model_id": "...", "models": [{"id": ..., "model_id": ...}, ...]}
    or a bare list of model records.

    Raises:
        OSError / json.JSONDecodeError / KeyError on an unreadable file.
    """
    if config.models_file:
        data = json.loads(Path(config.models_file).read_text(encoding="utf-8"))
        if isinstance(data, list):
            records, default_model_id = data, None
        else:
            records, default_model_id = data.get("models", []), data.get("default_model_id")
        models = [ModelConfig.from_dict(r) for r in records]
        log_event({
            "event_type": "MODEL_REGISTRY_LOADED",
            "source": "file",
            "count": len(models),
        })
        return InMemoryModelRegistry(models, default_model_id=default_model_id)

    if not config.openai_api_key:
        log_event({
            "event_type": "MODEL_REGISTRY_LOADED",
            "source": "env",
            "count": 0,
        })
        return InMemoryModelRegistry()

    model = ModelConfig(
        id=ENV_MODEL_ID,
        name=config.openai_model,
        model_id=config.openai_model,
        created_at_ms=0,
        api_endpoint=config.openai_base_url,
        api_key=config.openai_api_key,
        supports_reasoning=config.reasoning_effort is not None,
    )
    log_event({
        "event_type": "MODEL_REGISTRY_LOADED",
        "source": "env",
        "count": 1,
    })
    return InMemoryModelRegistry([model])
