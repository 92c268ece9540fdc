"""Text and message-content helpers."""

from __future__ import annotations

from collections.abc import Iterable

from context.message import Message
from constants import PLACEHOLDER_TEXT


def ensure_placeholder(text: str | None) -> str:
    """Return text, or the placeholder when text is empty/whitespace."""
    if text is None or not text.strip():
        return PLACEHOLDER_TEXT
    return text


def strip_placeholder(text: str) -> str:
    return text.replace(PLACEHOLDER_TEXT, "")


def is_placeholder(text: str) -> bool:
    return text == PLACEHOLDER_TEXT


def has_meaningful_content(message: Message) -> bool:
    """
    True if at least one part carries a non-empty payload.

    Text consisting only of the placeholder or whitespace does not count.
    """
    for part in message.content:
        text = getattr(part, "text", None)
        if text is not None:
            if strip_placeholder(text).strip():
                return True
            continue
        if part.has_payload():
            return True
    return False


def dedupe_by_id(messages: Iterable[Message]) -> list[Message]:
    """
    Deduplicate by id; a later occurrence replaces the earlier one
    but keeps the earlier one's position.
    """
    by_id: dict[str, Message] = {}
    for message in messages:
        by_id[message.id] = message
    return list(by_id.values())
