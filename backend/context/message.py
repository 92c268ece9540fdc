"""
Conversation data model shared by the generation and display sides.

Rules:
- ContentPart variants are immutable; streaming replaces the trailing part.
- Message is mutable so the display store can apply in-place mutators.
- Timestamps are wall-clock milliseconds.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, ClassVar, Union


class Role(str, Enum):
    """Author of a message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class PartType(str, Enum):
    """Discriminant for ContentPart variants (wire values)."""

    TEXT = "text"
    IMAGE = "image"
    CITATION = "citation"
    TOOL_CALL = "tool-call"
    TEMPORARY_FILE = "temporary-file"


# =============================================================================
# Content parts
# =============================================================================

@dataclass(frozen=True)
class TextPart:
    """Plain text."""
    part_type: ClassVar[PartType] = PartType.TEXT
    text: str

    def has_payload(self) -> bool:
        return bool(self.text)


@dataclass(frozen=True)
class ImagePart:
    """
    Image reference.

    `image` is a URL, a data URL, or raw base64 (paired with media_type).
    """
    part_type: ClassVar[PartType] = PartType.IMAGE
    image: str
    media_type: str | None = None

    def has_payload(self) -> bool:
        return bool(self.image)


@dataclass(frozen=True)
class CitationPart:
    """Excerpt of a source document attached to a message."""
    part_type: ClassVar[PartType] = PartType.CITATION
    filename: str
    content: str
    source_id: str | None = None

    def has_payload(self) -> bool:
        return bool(self.content)


@dataclass(frozen=True)
class ToolCallPart:
    """Tool invocation recorded in the transcript."""
    part_type: ClassVar[PartType] = PartType.TOOL_CALL
    tool_name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    tool_call_id: str | None = None

    def has_payload(self) -> bool:
        return bool(self.tool_name)


@dataclass(frozen=True)
class TemporaryFilePart:
    """Inline file content attached for a single turn."""
    part_type: ClassVar[PartType] = PartType.TEMPORARY_FILE
    name: str
    content: str
    media_type: str | None = None

    def has_payload(self) -> bool:
        return bool(self.content)


ContentPart = Union[TextPart, ImagePart, CitationPart, ToolCallPart, TemporaryFilePart]


# =============================================================================
# Message / Conversation
# =============================================================================

@dataclass
class Message:
    """
    A single conversation message.

    content ordering is semantically meaningful; during streaming it is
    only ever mutated by appending a part or replacing the trailing part.
    """

    id: str
    conversation_id: str
    role: Role
    content: list[ContentPart]
    created_at_ms: int
    updated_at_ms: int
    reasoning: str | None = None
    model_id: str | None = None

    def copy(self) -> Message:
        """Independent copy (parts are immutable, so a list copy suffices)."""
        return replace(self, content=list(self.content))

    def text(self) -> str:
        """Concatenated text of all text parts."""
        return "".join(p.text for p in self.content if isinstance(p, TextPart))


@dataclass
class Conversation:
    """Conversation metadata owned by the persistence collaborator."""

    id: str
    title: str
    created_at_ms: int
    updated_at_ms: int
    model_id: str | None = None

    def copy(self) -> Conversation:
        return replace(self)
