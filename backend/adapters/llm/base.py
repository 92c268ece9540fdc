"""
Generation adapter contract (v1).

Purpose:
- Define the interface for streaming chat completions.
- Normalize provider output into text / reasoning deltas.
- Keep lifecycle phases, retries, persistence and event emission
  OUT of the adapter.

Rules:
- No retries (see orchestrator.retry).
- No event emission (callbacks only).
- Cancellation is cooperative: the token is checked on every chunk.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Protocol

from context.message import Message
from context.model_config import ModelConfig
from orchestrator.cancellation import CancellationToken


# =============================================================================
# Parameters / results
# =============================================================================

@dataclass(frozen=True)
class GenerationParams:
    """
    Generation parameters for one request.

    None means "not set": unset parameters are never forwarded.
    reasoning_effort is an optional (capability-dependent) parameter and
    is forwarded only when the caller opts in.
    """

    temperature: float | None = None
    top_p: float | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    max_tokens: int | None = None
    reasoning_effort: str | None = None

    def merged_over(self, fallback: GenerationParams) -> GenerationParams:
        """Fields set here win; unset fields come from fallback."""
        return GenerationParams(
            temperature=_first(self.temperature, fallback.temperature),
            top_p=_first(self.top_p, fallback.top_p),
            frequency_penalty=_first(self.frequency_penalty, fallback.frequency_penalty),
            presence_penalty=_first(self.presence_penalty, fallback.presence_penalty),
            max_tokens=_first(self.max_tokens, fallback.max_tokens),
            reasoning_effort=_first(self.reasoning_effort, fallback.reasoning_effort),
        )

    @staticmethod
    def from_model(model_config: ModelConfig) -> GenerationParams:
        return GenerationParams(
            temperature=model_config.temperature,
            top_p=model_config.top_p,
            frequency_penalty=model_config.frequency_penalty,
            presence_penalty=model_config.presence_penalty,
            max_tokens=model_config.max_tokens,
        )

    @property
    def has_optional_params(self) -> bool:
        return self.reasoning_effort is not None


@dataclass(frozen=True)
class GenerationResult:
    """
    Accumulated output of one generate() call.

    On cancellation, text/reasoning hold everything received before the
    cancellation was observed and `cancelled` is True.
    """

    text: str
    reasoning: str | None = None
    cancelled: bool = False
    finish_reason: str | None = None
    usage: dict[str, Any] | None = None


class StreamCallbacks(Protocol):
    """Receives normalized deltas as they arrive."""

    async def on_reasoning_delta(self, text: str) -> None: ...

    async def on_text_delta(self, text: str) -> None: ...

    async def on_finish(
        self,
        *,
        finish_reason: str | None,
        usage: dict[str, Any] | None,
    ) -> None: ...


# =============================================================================
# Adapter
# =============================================================================

class GenerationAdapter(ABC):
    """
    Abstract base class for provider adapters.

    The adapter is a *dumb pipe*:
    messages -> vendor -> deltas.

    Caller responsibilities (NOT here):
    - Model resolution
    - Retry / fallback policy
    - Lifecycle phases and events
    - Persistence
    """

    @abstractmethod
    async def generate(
        self,
        *,
        messages: list[Message],
        model_config: ModelConfig,
        params: GenerationParams,
        callbacks: StreamCallbacks,
        token: CancellationToken,
        system_prompt: str | None = None,
        include_reasoning: bool = True,
    ) -> GenerationResult:
        """
        Stream a completion.

        Contract:
        - Check token.is_cancelled before issuing the request and on every
          chunk; once cancelled, stop reading and return the partial
          accumulation with cancelled=True.
        - Report each non-empty delta via callbacks, in arrival order.
        - Call callbacks.on_finish once on natural stream end.
        - Raise on provider failure; never retry internally.
        """
        raise NotImplementedError

    @abstractmethod
    async def complete(
        self,
        *,
        messages: list[Message],
        model_config: ModelConfig,
        params: GenerationParams,
        token: CancellationToken | None = None,
        system_prompt: str | None = None,
    ) -> str:
        """
        Single non-streaming completion.

        Contract:
        - Returns the full response text ("" if the provider returned none).
        - Raises GenerationCancelledError if the token is cancelled before
          the response is returned.
        """
        raise NotImplementedError


def _first(value: Any, fallback: Any) -> Any:
    return value if value is not None else fallback
