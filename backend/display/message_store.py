"""
Display-side message store with an id -> position index.

Responsibilities:
- Hold each conversation's messages sorted by created_at_ms (ascending)
- Keep an index so lookups by message id are O(1)
- Insert out-of-order arrivals at their sorted position

Invariants:
- Every stored message has exactly one index entry, and every entry
  points at the message carrying that id
- Within a conversation, created_at_ms is non-decreasing; ties keep
  arrival order
- The index is rebuilt after every structural change that shifts
  positions

Not responsible for:
- Conversation metadata (display.runtime keeps the derived updated_at)
- Thread safety (single writer: display.runtime)
"""

from __future__ import annotations

import time
from bisect import bisect_right
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from context.message import Message
from context.text import dedupe_by_id


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _created_at(message: Message) -> int:
    return message.created_at_ms


@dataclass(frozen=True)
class IndexEntry:
    conversation_id: str
    position: int


Mutator = Callable[[Message], "Message | None"]


class MessageStore:
    """In-memory conversation -> ordered messages store."""

    def __init__(self, *, now_ms: Callable[[], int] = _now_ms) -> None:
        self._now_ms = now_ms
        self._messages: dict[str, list[Message]] = {}
        self._index: dict[str, IndexEntry] = {}

    # ------------------------------------------------------------------
    # Bulk
    # ------------------------------------------------------------------

    def ingest(
        self,
        conversation_id: str,
        messages: Iterable[Message],
        *,
        replace: bool = False,
    ) -> list[Message]:
        """
        Load a batch of messages into a conversation.

        With replace=False the batch is merged into what is stored; on an
        id collision the batch copy wins. With replace=True the
        conversation's previous messages are dropped first.
        """
        incoming = list(messages)
        for message in incoming:
            if message.conversation_id != conversation_id:
                raise ValueError(
                    f"message {message.id} belongs to {message.conversation_id}, "
                    f"not {conversation_id}"
                )

        existing = self._messages.get(conversation_id, [])
        if replace:
            for message in existing:
                self._index.pop(message.id, None)
            merged = dedupe_by_id(incoming)
        else:
            merged = dedupe_by_id([*existing, *incoming])

        for message in merged:
            self._detach_elsewhere(message.id, conversation_id)

        merged.sort(key=_created_at)
        self._messages[conversation_id] = merged
        self._rebuild_index(conversation_id)
        return list(merged)

    # ------------------------------------------------------------------
    # Single message
    # ------------------------------------------------------------------

    def add_message(self, conversation_id: str, message: Message) -> Message:
        """
        Insert a message at its sorted position; an existing id is replaced.

        Appends without touching other entries when the message is not
        older than the conversation's last message.
        """
        if message.conversation_id != conversation_id:
            raise ValueError(
                f"message {message.id} belongs to {message.conversation_id}, "
                f"not {conversation_id}"
            )

        entry = self._index.get(message.id)
        if entry is not None:
            messages = self._messages[entry.conversation_id]
            current = messages[entry.position]
            if entry.conversation_id == conversation_id and current.created_at_ms == message.created_at_ms:
                messages[entry.position] = message
                return message
            self.remove_message(message.id)

        messages = self._messages.setdefault(conversation_id, [])
        if not messages or message.created_at_ms >= messages[-1].created_at_ms:
            messages.append(message)
            self._index[message.id] = IndexEntry(conversation_id, len(messages) - 1)
            return message

        position = bisect_right(messages, message.created_at_ms, key=_created_at)
        messages.insert(position, message)
        self._rebuild_index(conversation_id)
        return message

    def update_message(self, message_id: str, mutator: Mutator) -> Message | None:
        """
        Apply mutator to a working copy and store the result.

        The mutator may edit the copy in place (returning None) or return
        a replacement. It must not change id, conversation_id or
        created_at_ms. updated_at_ms is always stamped.

        Returns the stored message, or None if the id is unknown.
        """
        entry = self._index.get(message_id)
        if entry is None:
            return None

        messages = self._messages[entry.conversation_id]
        current = messages[entry.position]
        working = current.copy()
        result = mutator(working)
        updated = result if result is not None else working

        if (
            updated.id != current.id
            or updated.conversation_id != current.conversation_id
            or updated.created_at_ms != current.created_at_ms
        ):
            raise ValueError("mutator must not change id, conversation_id or created_at_ms")

        updated.updated_at_ms = self._now_ms()
        messages[entry.position] = updated
        return updated

    def remove_message(self, message_id: str) -> Message | None:
        entry = self._index.pop(message_id, None)
        if entry is None:
            return None
        removed = self._messages[entry.conversation_id].pop(entry.position)
        self._rebuild_index(entry.conversation_id)
        return removed

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_message(self, message_id: str) -> Message | None:
        entry = self._index.get(message_id)
        if entry is None:
            return None
        return self._messages[entry.conversation_id][entry.position]

    def messages(self, conversation_id: str) -> list[Message]:
        return list(self._messages.get(conversation_id, []))

    def last_message(self, conversation_id: str) -> Message | None:
        messages = self._messages.get(conversation_id)
        return messages[-1] if messages else None

    def index_entry(self, message_id: str) -> IndexEntry | None:
        return self._index.get(message_id)

    def conversation_ids(self) -> list[str]:
        return list(self._messages)

    def __len__(self) -> int:
        return len(self._index)

    def validate_index(self) -> list[str]:
        """Return index/list inconsistencies; empty when healthy."""
        problems: list[str] = []
        seen = 0
        for conversation_id, messages in self._messages.items():
            for position, message in enumerate(messages):
                seen += 1
                entry = self._index.get(message.id)
                if entry != IndexEntry(conversation_id, position):
                    problems.append(f"{message.id}: index {entry}, actual ({conversation_id}, {position})")
                if position and messages[position - 1].created_at_ms > message.created_at_ms:
                    problems.append(f"{message.id}: out of order in {conversation_id}")
        if seen != len(self._index):
            problems.append(f"index has {len(self._index)} entries for {seen} messages")
        return problems

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _rebuild_index(self, conversation_id: str) -> None:
        for position, message in enumerate(self._messages.get(conversation_id, [])):
            self._index[message.id] = IndexEntry(conversation_id, position)

    def _detach_elsewhere(self, message_id: str, conversation_id: str) -> None:
        entry = self._index.get(message_id)
        if entry is not None and entry.conversation_id != conversation_id:
            self.remove_message(message_id)
