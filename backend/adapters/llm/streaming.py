"""OpenAI-compatible generation adapter"""
from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

from openai import AsyncOpenAI

from adapters.llm.base import (
    GenerationAdapter,
    GenerationParams,
    GenerationResult,
    StreamCallbacks,
)
from adapters.llm.params import build_request_params
from context.message import Message
from context.model_config import ModelConfig
from context.serialization import to_provider_messages
from observability.logger import log_event
from orchestrator.cancellation import CancellationToken, GenerationCancelledError

from constants import PROVIDER_MAX_RETRIES, PROVIDER_TIMEOUT_S


ClientFactory = Callable[[ModelConfig], Any]


def build_client(
    model_config: ModelConfig,
    *,
    timeout_s: float = PROVIDER_TIMEOUT_S,
    max_retries: int = PROVIDER_MAX_RETRIES,
) -> AsyncOpenAI:
    """
    Build an SDK client for one model configuration.

    The client-level timeout is the provider read timeout that bounds
    cancellation latency when a stream stalls.
    """
    return AsyncOpenAI(
        api_key=model_config.api_key,
        base_url=model_config.api_endpoint or None,
        timeout=timeout_s,
        max_retries=max_retries,
    )


class OpenAIStreamingAdapter(GenerationAdapter):
    """
    Concrete streaming adapter for OpenAI-compatible chat completions.

    Design notes:
    - One adapter instance serves every concurrent generation.
    - SDK clients are cached per (endpoint, api_key).
    - Adapter is responsible ONLY for:
        - Talking to the provider
        - Normalizing deltas (text, reasoning, finish/usage)
        - Observing the cancellation token at chunk boundaries
    - Adapter does NOT:
        - Retry
        - Emit lifecycle events
        - Persist anything
    """

    def __init__(
        self,
        *,
        client_factory: ClientFactory | None = None,
        timeout_s: float = PROVIDER_TIMEOUT_S,
        max_retries: int = PROVIDER_MAX_RETRIES,
    ) -> None:
        """
        Args:
            client_factory:
                Builds a vendor client for a ModelConfig. Defaults to
                build_client(); tests inject fakes here.
            timeout_s:
                Provider read timeout.
            max_retries:
                SDK transport retries.
        """
        self._client_factory = client_factory or (
            lambda cfg: build_client(cfg, timeout_s=timeout_s, max_retries=max_retries)
        )
        self._clients: dict[tuple[str | None, str | None], Any] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

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
        if token.is_cancelled:
            return GenerationResult(text="", cancelled=True)

        request = build_request_params(params, include_reasoning=include_reasoning)
        log_event({
            "ts_ms": self._now_ms(),
            "event_type": "PROVIDER_STREAM_REQUEST",
            "model": model_config.model_id,
            "params": sorted(request),
            "message_count": len(messages),
        })

        client = self._client_for(model_config)
        stream = await client.chat.completions.create(
            model=model_config.model_id,
            messages=to_provider_messages(messages, system_prompt=system_prompt),
            stream=True,
            **request,
        )

        text_parts: list[str] = []
        reasoning_parts: list[str] = []
        finish_reason: str | None = None
        usage: dict[str, Any] | None = None
        cancelled = False

        try:
            async for chunk in stream:
                if token.is_cancelled:
                    cancelled = True
                    break

                reasoning = self._extract_reasoning(chunk)
                if reasoning:
                    reasoning_parts.append(reasoning)
                    await callbacks.on_reasoning_delta(reasoning)

                delta = self._extract_delta(chunk)
                if delta:
                    text_parts.append(delta)
                    await callbacks.on_text_delta(delta)

                finish_reason = self._extract_finish_reason(chunk) or finish_reason
                usage = self._extract_usage(chunk) or usage
        finally:
            await stream.close()

        if cancelled:
            log_event({
                "ts_ms": self._now_ms(),
                "event_type": "PROVIDER_STREAM_CANCELLED",
                "model": model_config.model_id,
                "text_len": sum(len(t) for t in text_parts),
            })
        else:
            await callbacks.on_finish(finish_reason=finish_reason, usage=usage)

        return GenerationResult(
            text="".join(text_parts),
            reasoning="".join(reasoning_parts) or None,
            cancelled=cancelled,
            finish_reason=finish_reason,
            usage=usage,
        )

    async def complete(
        self,
        *,
        messages: list[Message],
        model_config: ModelConfig,
        params: GenerationParams,
        token: CancellationToken | None = None,
        system_prompt: str | None = None,
    ) -> str:
        if token is not None:
            token.raise_if_cancelled()

        client = self._client_for(model_config)
        response = await client.chat.completions.create(
            model=model_config.model_id,
            messages=to_provider_messages(messages, system_prompt=system_prompt),
            **build_request_params(params, include_reasoning=False),
        )

        if token is not None and token.is_cancelled:
            raise GenerationCancelledError("completion cancelled")

        try:
            return response.choices[0].message.content or ""
        except (AttributeError, IndexError):
            return ""

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _client_for(self, model_config: ModelConfig) -> Any:
        key = (model_config.api_endpoint, model_config.api_key)
        client = self._clients.get(key)
        if client is None:
            client = self._client_factory(model_config)
            self._clients[key] = client
        return client

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _extract_delta(chunk: Any) -> str:
        """
        Extract text delta from vendor response (OpenAI format).
        """
        try:
            delta = chunk.choices[0].delta
            return delta.content or ""
        except (AttributeError, IndexError):
            return ""

    @staticmethod
    def _extract_reasoning(chunk: Any) -> str:
        """
        Extract reasoning delta. Providers disagree on the field name
        (reasoning_content vs reasoning); neither is part of the SDK types.
        """
        try:
            delta = chunk.choices[0].delta
        except (AttributeError, IndexError):
            return ""
        value = getattr(delta, "reasoning_content", None) or getattr(delta, "reasoning", None)
        return value if isinstance(value, str) else ""

    @staticmethod
    def _extract_finish_reason(chunk: Any) -> str | None:
        try:
            return chunk.choices[0].finish_reason
        except (AttributeError, IndexError):
            return None

    @staticmethod
    def _extract_usage(chunk: Any) -> dict[str, Any] | None:
        usage = getattr(chunk, "usage", None)
        if usage is None:
            return None
        if hasattr(usage, "model_dump"):
            return usage.model_dump()
        if isinstance(usage, dict):
            return usage
        return None

    @staticmethod
    def _now_ms() -> int:
        """
        Wall-clock timestamp in milliseconds.
        """
        return int(time.time() * 1000)
