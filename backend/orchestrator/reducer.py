"""
Pure generation lifecycle reducer.

Legal path per message:

    idle -> START -> started
         -> (REASONING_START -> reasoning -> REASONING_CHUNK* -> REASONING_END -> started)?
         -> TEXT_START -> texting -> TEXT_CHUNK* -> TEXT_END
         -> END | CANCELLED | ERROR

Rules:
- No IO, no clocks, no logging. Input state is never mutated.
- Reasoning may only open before the first TEXT_START.
- CANCELLED and ERROR are legal from any non-terminal phase after START;
  ERROR is additionally legal from idle (failures before streaming began).
- After a terminal event every further event is illegal.
- Chunk text is accumulated here so the session always reflects exactly
  what was emitted.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace

from orchestrator.enums.phase import Phase
from orchestrator.events import (
    EventType,
    ReasoningChunk,
    StreamEvent,
    TextChunk,
)
from orchestrator.state_dataclass import GenerationSession


class IllegalTransitionError(Exception):
    """
    Raised when an event is not legal in the session's current phase.

    Indicates a bug in the emitting code; the event must not be sent.
    """

    def __init__(self, session: GenerationSession, event_type: EventType) -> None:
        super().__init__(
            f"{event_type.value} is illegal in phase {session.phase.value} "
            f"for message {session.message_id}"
        )
        self.phase = session.phase
        self.event_type = event_type


# =============================================================================
# Transition table
# =============================================================================

_Guard = Callable[[GenerationSession], bool]

_GUARDS: dict[EventType, _Guard] = {
    EventType.START: lambda s: s.phase is Phase.IDLE,
    EventType.REASONING_START: lambda s: s.phase is Phase.STARTED and not s.text_started,
    EventType.REASONING_CHUNK: lambda s: s.phase is Phase.REASONING,
    EventType.REASONING_END: lambda s: s.phase is Phase.REASONING,
    EventType.TEXT_START: lambda s: s.phase is Phase.STARTED and not s.text_started,
    EventType.TEXT_CHUNK: lambda s: s.phase is Phase.TEXTING and s.text_open,
    EventType.TEXT_END: lambda s: s.phase is Phase.TEXTING and s.text_open,
    EventType.END: lambda s: (
        s.phase is Phase.STARTED or (s.phase is Phase.TEXTING and not s.text_open)
    ),
    EventType.CANCELLED: lambda s: s.phase is not Phase.IDLE,
    EventType.ERROR: lambda s: True,
}


def is_legal(session: GenerationSession, event_type: EventType) -> bool:
    """True if an event of this type would be accepted."""
    if session.is_terminal:
        return False
    guard = _GUARDS.get(event_type)
    return guard is not None and guard(session)


def reduce(session: GenerationSession, event: StreamEvent) -> GenerationSession:
    """
    Apply one stream event and return the next session.

    Raises:
        IllegalTransitionError if the event is not legal in the current phase.
        ValueError if the event belongs to a different message.
    """
    if event.message_id != session.message_id:
        raise ValueError(
            f"event for {event.message_id} applied to session {session.message_id}"
        )

    if not is_legal(session, event.event_type):
        raise IllegalTransitionError(session, event.event_type)

    event_type = event.event_type

    if event_type is EventType.START:
        return replace(session, phase=Phase.STARTED)

    if event_type is EventType.REASONING_START:
        return replace(session, phase=Phase.REASONING)

    if event_type is EventType.REASONING_CHUNK:
        assert isinstance(event, ReasoningChunk)
        return replace(
            session,
            accumulated_reasoning=session.accumulated_reasoning + event.text,
        )

    if event_type is EventType.REASONING_END:
        return replace(session, phase=Phase.STARTED)

    if event_type is EventType.TEXT_START:
        return replace(session, phase=Phase.TEXTING, text_started=True, text_open=True)

    if event_type is EventType.TEXT_CHUNK:
        assert isinstance(event, TextChunk)
        return replace(session, accumulated_text=session.accumulated_text + event.text)

    if event_type is EventType.TEXT_END:
        return replace(session, text_open=False)

    if event_type is EventType.END:
        return replace(session, phase=Phase.ENDED)

    if event_type is EventType.CANCELLED:
        return replace(session, phase=Phase.CANCELLED, text_open=False)

    return replace(session, phase=Phase.ERRORED, text_open=False)
