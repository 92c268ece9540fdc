"""
Automatic conversation titles.

After the first complete exchange (one user + one assistant message) a
short non-streaming completion names the conversation. Title generation
is cancellable under its own token id (title-<conversation_id>) and never
affects the message stream.
"""

from __future__ import annotations

import re
import time
from collections.abc import Awaitable, Callable, Sequence

from adapters.llm.base import GenerationAdapter, GenerationParams
from context.message import Message, Role, TextPart
from context.model_config import ModelConfig
from context.text import has_meaningful_content, strip_placeholder
from observability.logger import log_event
from orchestrator.cancellation import CancellationManager
from orchestrator.events import Event, EventType, TitleGenerated
from services.message_repository import MessageRepository

from constants import (
    DEFAULT_CONVERSATION_TITLE,
    TITLE_ASSISTANT_MAX_CHARS,
    TITLE_MAX_CHARS,
    TITLE_PROMPT,
    TITLE_TOKEN_PREFIX,
    TITLE_USER_MAX_CHARS,
)


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def title_token_id(conversation_id: str) -> str:
    return f"{TITLE_TOKEN_PREFIX}{conversation_id}"


def should_trigger_auto_generation(messages: Sequence[Message]) -> bool:
    """Exactly one user message and one meaningful assistant message."""
    users = [m for m in messages if m.role is Role.USER]
    assistants = [m for m in messages if m.role is Role.ASSISTANT]
    return (
        len(users) == 1
        and len(assistants) == 1
        and has_meaningful_content(assistants[0])
    )


def clean_title(raw: str) -> str:
    """Strip quotes and whitespace, cap the length, fall back to the default."""
    title = raw.strip().splitlines()[0] if raw.strip() else ""
    title = title.strip().strip("\"'`“”‘’").strip()
    title = re.sub(r"\s+", " ", title)
    if len(title) > TITLE_MAX_CHARS:
        title = title[:TITLE_MAX_CHARS].rstrip()
    return title or DEFAULT_CONVERSATION_TITLE


def build_title_request(messages: Sequence[Message], conversation_id: str) -> list[Message]:
    """Single user-role prompt summarizing the first exchange."""
    user_text = _first_text(messages, Role.USER)[:TITLE_USER_MAX_CHARS]
    assistant_text = _first_text(messages, Role.ASSISTANT)[:TITLE_ASSISTANT_MAX_CHARS]
    prompt = f"{TITLE_PROMPT}\n\nUser: {user_text}\nAssistant: {assistant_text}"
    now = _now_ms()
    return [
        Message(
            id=f"{title_token_id(conversation_id)}-prompt",
            conversation_id=conversation_id,
            role=Role.USER,
            content=[TextPart(prompt)],
            created_at_ms=now,
            updated_at_ms=now,
        )
    ]


class TitleGenerator:
    """Generates, persists and announces conversation titles."""

    def __init__(
        self,
        *,
        adapter: GenerationAdapter,
        repository: MessageRepository,
        cancellation: CancellationManager,
        publish: Callable[[Event], Awaitable[None]],
    ) -> None:
        self._adapter = adapter
        self._repository = repository
        self._cancellation = cancellation
        self._publish = publish

    async def generate(
        self,
        conversation_id: str,
        *,
        model_config: ModelConfig,
        params: GenerationParams | None = None,
    ) -> str:
        """
        Generate and store a title.

        Returns the title. Provider failures fall back to the default title
        and are logged, never raised. The default title is never stored
        or announced. Cancellation raises GenerationCancelledError and
        stores nothing.
        """
        token_id = title_token_id(conversation_id)
        token = self._cancellation.create_token(token_id)
        try:
            messages = self._repository.list_messages(conversation_id)
            try:
                raw = await self._adapter.complete(
                    messages=build_title_request(messages, conversation_id),
                    model_config=model_config,
                    params=params or GenerationParams(),
                    token=token,
                )
            except Exception as exc:  # pylint: disable=broad-exception-caught
                token.raise_if_cancelled()
                log_event({
                    "event_type": "TITLE_GENERATION_FAILED",
                    "conversation_id": conversation_id,
                    "exception": type(exc).__name__,
                    "message": str(exc),
                })
                raw = ""

            token.raise_if_cancelled()
            title = clean_title(raw)
            if title == DEFAULT_CONVERSATION_TITLE:
                log_event({
                    "event_type": "TITLE_GENERATION_SKIPPED",
                    "conversation_id": conversation_id,
                    "reason": "fallback_title",
                })
                return title

            self._repository.update_conversation(conversation_id, title=title)
            await self._publish(TitleGenerated(
                event_type=EventType.TITLE_GENERATED,
                ts_ms=_now_ms(),
                conversation_id=conversation_id,
                title=title,
            ))
            log_event({
                "event_type": "TITLE_GENERATED",
                "conversation_id": conversation_id,
                "title": title,
            })
            return title
        finally:
            self._cancellation.complete(token_id)

    def cancel(self, conversation_id: str) -> bool:
        return self._cancellation.cancel(title_token_id(conversation_id))


def _first_text(messages: Sequence[Message], role: Role) -> str:
    for message in messages:
        if message.role is role:
            return strip_placeholder(message.text()).strip()
    return ""
