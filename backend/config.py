"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No orchestration logic
- No behavioral constants (see constants.py)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from adapters.llm.base import GenerationParams
from adapters.llm.prompts import SYSTEM_PROMPT_V1
from constants import (
    DEFAULT_OPENAI_MODEL,
    EVENT_BATCH_INTERVAL_MS,
    PROVIDER_MAX_RETRIES,
    PROVIDER_TIMEOUT_S,
)


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup.
    Passed downward to the app factory, runtime and registry loader.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str = "dev"

    # ------------------------------------------------------------------
    # Provider (single env-defined model; see services.model_registry)
    # ------------------------------------------------------------------

    openai_api_key: str | None = None
    openai_base_url: str | None = None
    openai_model: str = DEFAULT_OPENAI_MODEL
    models_file: str | None = None

    provider_timeout_s: float = PROVIDER_TIMEOUT_S
    provider_max_retries: int = PROVIDER_MAX_RETRIES

    # ------------------------------------------------------------------
    # Generation defaults (None = not forwarded)
    # ------------------------------------------------------------------

    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    reasoning_effort: str | None = None
    system_prompt: str | None = SYSTEM_PROMPT_V1

    # ------------------------------------------------------------------
    # Behavior
    # ------------------------------------------------------------------

    event_batch_interval_ms: int = EVENT_BATCH_INTERVAL_MS
    auto_adopt_default_model: bool = True
    auto_generate_titles: bool = True

    def default_params(self) -> GenerationParams:
        """Process-wide parameter defaults; a model's own values win."""
        return GenerationParams(
            temperature=self.temperature,
            top_p=self.top_p,
            frequency_penalty=self.frequency_penalty,
            presence_penalty=self.presence_penalty,
            max_tokens=self.max_tokens,
            reasoning_effort=self.reasoning_effort,
        )

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Raises:
            ValueError if a numeric variable is malformed.
        """
        return AppConfig(
            env=os.environ.get("ENV", "dev"),

            openai_api_key=os.environ.get("OPENAI_API_KEY") or None,
            openai_base_url=os.environ.get("OPENAI_BASE_URL") or None,
            openai_model=os.environ.get("OPENAI_MODEL", DEFAULT_OPENAI_MODEL),
            models_file=os.environ.get("MODELS_FILE") or None,

            provider_timeout_s=float(os.environ.get("PROVIDER_TIMEOUT_S", PROVIDER_TIMEOUT_S)),
            provider_max_retries=int(os.environ.get("PROVIDER_MAX_RETRIES", PROVIDER_MAX_RETRIES)),

            temperature=_env_float("AI_TEMPERATURE"),
            max_tokens=_env_int("AI_MAX_TOKENS"),
            top_p=_env_float("AI_TOP_P"),
            frequency_penalty=_env_float("AI_FREQUENCY_PENALTY"),
            presence_penalty=_env_float("AI_PRESENCE_PENALTY"),
            reasoning_effort=os.environ.get("OPENAI_REASONING_EFFORT") or None,
            system_prompt=os.environ.get("SYSTEM_PROMPT", SYSTEM_PROMPT_V1) or None,

            event_batch_interval_ms=int(
                os.environ.get("EVENT_BATCH_INTERVAL_MS", EVENT_BATCH_INTERVAL_MS)
            ),
            auto_adopt_default_model=os.environ.get("AUTO_ADOPT_DEFAULT_MODEL", "1") == "1",
            auto_generate_titles=os.environ.get("AUTO_GENERATE_TITLES", "1") == "1",
        )


def _env_float(name: str) -> float | None:
    value = os.environ.get(name)
    return float(value) if value else None


def _env_int(name: str) -> int | None:
    value = os.environ.get(name)
    return int(value) if value else None
