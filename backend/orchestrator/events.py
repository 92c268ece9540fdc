"""
Unified event definitions for the streaming response engine.

Rules:
- Events describe facts that have occurred.
- Events carry data only (no behavior).
- Stream events are scoped to one message_id; per message they follow
  the lifecycle enforced by orchestrator.reducer.
- Exactly one terminal event (END, CANCELLED, ERROR) exists per message.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union

from context.message import Message
from orchestrator.enums.error_code import ErrorCode


# =============================================================================
# Event Type Enumeration
# =============================================================================

class EventType(str, Enum):
    """
    Canonical event types carried over the message channel.

    Values double as wire names.
    """

    # ------------------------------------------------------------------
    # Stream lifecycle
    # ------------------------------------------------------------------
    START = "START"
    REASONING_START = "REASONING_START"
    REASONING_CHUNK = "REASONING_CHUNK"
    REASONING_END = "REASONING_END"
    TEXT_START = "TEXT_START"
    TEXT_CHUNK = "TEXT_CHUNK"
    TEXT_END = "TEXT_END"

    # ------------------------------------------------------------------
    # Terminal
    # ------------------------------------------------------------------
    END = "END"
    CANCELLED = "CANCELLED"
    ERROR = "ERROR"

    # ------------------------------------------------------------------
    # Conversation bookkeeping
    # ------------------------------------------------------------------
    MESSAGE_ADDED = "MESSAGE_ADDED"
    MESSAGE_REMOVED = "MESSAGE_REMOVED"
    TITLE_GENERATED = "TITLE_GENERATED"


TERMINAL_EVENT_TYPES: frozenset[EventType] = frozenset({
    EventType.END,
    EventType.CANCELLED,
    EventType.ERROR,
})

CHUNK_EVENT_TYPES: frozenset[EventType] = frozenset({
    EventType.REASONING_CHUNK,
    EventType.TEXT_CHUNK,
})


# =============================================================================
# Base Events
# =============================================================================

@dataclass(frozen=True)
class Event:
    """
    Base event type.

    All events must specify:
    - event_type: discriminant
    - ts_ms: timestamp provided by the source (or fake in tests)
    """

    event_type: EventType
    ts_ms: int


@dataclass(frozen=True)
class StreamEvent(Event):
    """Base class for events scoped to one message's generation."""

    message_id: str


# =============================================================================
# Stream Lifecycle Events
# =============================================================================

@dataclass(frozen=True)
class Start(StreamEvent):
    """Generation began; `message` is the placeholder to materialize."""
    message: Message


@dataclass(frozen=True)
class ReasoningStart(StreamEvent):
    """Reasoning phase opened."""


@dataclass(frozen=True)
class ReasoningChunk(StreamEvent):
    """Reasoning content increment."""
    text: str


@dataclass(frozen=True)
class ReasoningEnd(StreamEvent):
    """Reasoning phase closed (authoritative)."""


@dataclass(frozen=True)
class TextStart(StreamEvent):
    """Text phase opened."""


@dataclass(frozen=True)
class TextChunk(StreamEvent):
    """Text content increment."""
    text: str


@dataclass(frozen=True)
class TextEnd(StreamEvent):
    """Text phase closed."""


# =============================================================================
# Terminal Events
# =============================================================================

@dataclass(frozen=True)
class End(StreamEvent):
    """Generation completed; `message` is the persisted final message."""
    message: Message


@dataclass(frozen=True)
class Cancelled(StreamEvent):
    """Generation cancelled; `message` is the persisted partial message."""
    message: Message


@dataclass(frozen=True)
class Error(StreamEvent):
    """Generation failed; `message` is the persisted partial message, if any."""
    code: ErrorCode
    reason: str
    message: Message | None = None


# =============================================================================
# Conversation Events
# =============================================================================

@dataclass(frozen=True)
class MessageAdded(Event):
    """A complete message was persisted (e.g. the user's turn)."""
    message: Message


@dataclass(frozen=True)
class MessageRemoved(Event):
    """A message was deleted."""
    conversation_id: str
    message_id: str


@dataclass(frozen=True)
class TitleGenerated(Event):
    """A conversation received a generated title."""
    conversation_id: str
    title: str


AnyStreamEvent = Union[
    Start,
    ReasoningStart,
    ReasoningChunk,
    ReasoningEnd,
    TextStart,
    TextChunk,
    TextEnd,
    End,
    Cancelled,
    Error,
]
