"""
Persistence boundary for conversations and messages.

The real store (schema, migrations) is an external collaborator; the
engine only depends on the MessageRepository protocol. The in-memory
implementation backs the default server and the tests.

Rules:
- Repositories hand out copies; callers never share mutable Message
  objects with the store.
- update_message() stamps updated_at_ms.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from typing import Protocol, runtime_checkable
from uuid import uuid4

from context.message import ContentPart, Conversation, Message
from constants import DEFAULT_CONVERSATION_TITLE


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid4().hex[:12]}"


class UnknownMessageError(KeyError):
    """Raised when a message id is not present in the repository."""


class UnknownConversationError(KeyError):
    """Raised when a conversation id is not present in the repository."""


@runtime_checkable
class MessageRepository(Protocol):
    def create_conversation(
        self,
        *,
        conversation_id: str | None = None,
        title: str = DEFAULT_CONVERSATION_TITLE,
        model_id: str | None = None,
    ) -> Conversation: ...

    def get_conversation(self, conversation_id: str) -> Conversation | None: ...

    def update_conversation(
        self,
        conversation_id: str,
        *,
        title: str | None = None,
        model_id: str | None = None,
    ) -> Conversation: ...

    def list_conversations(self) -> list[Conversation]: ...

    def add_message(self, message: Message) -> Message: ...

    def update_message(
        self,
        message_id: str,
        *,
        content: list[ContentPart] | None = None,
        reasoning: str | None = None,
        model_id: str | None = None,
    ) -> Message: ...

    def get_message(self, message_id: str) -> Message | None: ...

    def list_messages(self, conversation_id: str) -> list[Message]: ...

    def delete_message(self, message_id: str) -> Message | None: ...


class InMemoryMessageRepository:
    """
    Thread-safe in-memory repository.

    Messages are listed in created_at_ms order (stable for ties).
    """

    def __init__(self, *, now_ms: Callable[[], int] = _now_ms) -> None:
        self._now_ms = now_ms
        self._lock = threading.Lock()
        self._conversations: dict[str, Conversation] = {}
        self._messages: dict[str, Message] = {}

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    def create_conversation(
        self,
        *,
        conversation_id: str | None = None,
        title: str = DEFAULT_CONVERSATION_TITLE,
        model_id: str | None = None,
    ) -> Conversation:
        now = self._now_ms()
        conversation = Conversation(
            id=conversation_id or new_id("conv"),
            title=title,
            created_at_ms=now,
            updated_at_ms=now,
            model_id=model_id,
        )
        with self._lock:
            self._conversations[conversation.id] = conversation
        return conversation.copy()

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        with self._lock:
            conversation = self._conversations.get(conversation_id)
            return conversation.copy() if conversation else None

    def update_conversation(
        self,
        conversation_id: str,
        *,
        title: str | None = None,
        model_id: str | None = None,
    ) -> Conversation:
        with self._lock:
            conversation = self._conversations.get(conversation_id)
            if conversation is None:
                raise UnknownConversationError(conversation_id)
            if title is not None:
                conversation.title = title
            if model_id is not None:
                conversation.model_id = model_id
            conversation.updated_at_ms = self._now_ms()
            return conversation.copy()

    def list_conversations(self) -> list[Conversation]:
        with self._lock:
            ordered = sorted(
                self._conversations.values(),
                key=lambda c: c.updated_at_ms,
                reverse=True,
            )
            return [c.copy() for c in ordered]

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def add_message(self, message: Message) -> Message:
        with self._lock:
            if message.conversation_id not in self._conversations:
                raise UnknownConversationError(message.conversation_id)
            stored = message.copy()
            self._messages[stored.id] = stored
            self._touch(stored.conversation_id, stored.updated_at_ms)
            return stored.copy()

    def update_message(
        self,
        message_id: str,
        *,
        content: list[ContentPart] | None = None,
        reasoning: str | None = None,
        model_id: str | None = None,
    ) -> Message:
        with self._lock:
            stored = self._messages.get(message_id)
            if stored is None:
                raise UnknownMessageError(message_id)
            if content is not None:
                stored.content = list(content)
            if reasoning is not None:
                stored.reasoning = reasoning
            if model_id is not None:
                stored.model_id = model_id
            stored.updated_at_ms = self._now_ms()
            self._touch(stored.conversation_id, stored.updated_at_ms)
            return stored.copy()

    def get_message(self, message_id: str) -> Message | None:
        with self._lock:
            stored = self._messages.get(message_id)
            return stored.copy() if stored else None

    def list_messages(self, conversation_id: str) -> list[Message]:
        with self._lock:
            messages = [
                m for m in self._messages.values()
                if m.conversation_id == conversation_id
            ]
            messages.sort(key=lambda m: m.created_at_ms)
            return [m.copy() for m in messages]

    def delete_message(self, message_id: str) -> Message | None:
        with self._lock:
            stored = self._messages.pop(message_id, None)
            return stored.copy() if stored else None

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _touch(self, conversation_id: str, ts_ms: int) -> None:
        conversation = self._conversations.get(conversation_id)
        if conversation is not None and ts_ms > conversation.updated_at_ms:
            conversation.updated_at_ms = ts_ms
