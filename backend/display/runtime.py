"""
Display runtime: single writer of display-side state.

Responsibilities:
- Apply decoded channel events to the MessageStore, in arrival order
- Route streamed chunks through the ChunkBuffer
- Track per-message streaming status and per-conversation summaries
- Notify listeners after every state change

Rules:
- All mutation happens on one event-loop context: either through the
  submit()/run() queue or by calling handle_event() directly from it
- Authoritative messages (END / CANCELLED / ERROR) replace whatever the
  buffer produced; pending chunks are finalized (END) or dropped
- A conversation's updated_at_ms follows its last message

Not responsible for:
- Transport (display.client)
- Rendering
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from context.message import Message, TextPart
from context.text import is_placeholder
from display.chunk_buffer import ChunkBuffer, Scheduler
from display.message_store import MessageStore
from observability.logger import log_event
from orchestrator.enums.stream_kind import StreamKind
from orchestrator.events import (
    Cancelled,
    End,
    Error,
    Event,
    EventType,
    MessageAdded,
    MessageRemoved,
    ReasoningChunk,
    Start,
    StreamEvent,
    TextChunk,
    TitleGenerated,
)

from constants import CHUNK_FLUSH_INTERVAL_MS, DEFAULT_CONVERSATION_TITLE


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


# =============================================================================
# State records
# =============================================================================

@dataclass
class StreamingStatus:
    """UI-facing streaming flags for one message."""
    is_streaming: bool = True
    is_reasoning: bool = False
    terminal: EventType | None = None
    error_code: str | None = None
    error: str | None = None


@dataclass
class ConversationSummary:
    id: str
    title: str = DEFAULT_CONVERSATION_TITLE
    updated_at_ms: int = 0


Listener = Callable[[str], None]


# =============================================================================
# Runtime
# =============================================================================

class DisplayRuntime:
    """
    Actor-style owner of the display store.

    Events enter through submit() and are applied by run(), or are
    applied synchronously with handle_event() by code already on the
    owning loop.
    """

    def __init__(
        self,
        *,
        store: MessageStore | None = None,
        flush_interval_ms: int = CHUNK_FLUSH_INTERVAL_MS,
        schedule: Scheduler | None = None,
        now_ms: Callable[[], int] = _now_ms,
    ) -> None:
        self.store = store or MessageStore(now_ms=now_ms)
        self._buffer = ChunkBuffer(
            self._apply_chunk,
            flush_interval_ms=flush_interval_ms,
            schedule=schedule,
        )
        self._queue: asyncio.Queue[Event | None] = asyncio.Queue()
        self._conversations: dict[str, ConversationSummary] = {}
        self._status: dict[str, StreamingStatus] = {}
        self._listeners: list[Listener] = []

        self._handlers: dict[EventType, Callable[[Event], None]] = {
            EventType.MESSAGE_ADDED: self._on_message_added,
            EventType.START: self._on_start,
            EventType.REASONING_START: self._on_reasoning_start,
            EventType.REASONING_CHUNK: self._on_chunk,
            EventType.REASONING_END: self._on_reasoning_end,
            EventType.TEXT_START: self._on_text_start,
            EventType.TEXT_CHUNK: self._on_chunk,
            EventType.TEXT_END: self._on_text_end,
            EventType.END: self._on_end,
            EventType.CANCELLED: self._on_cancelled,
            EventType.ERROR: self._on_error,
            EventType.MESSAGE_REMOVED: self._on_message_removed,
            EventType.TITLE_GENERATED: self._on_title_generated,
        }

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    def submit(self, event: Event) -> None:
        self._queue.put_nowait(event)

    async def run(self) -> None:
        """Apply queued events until stop() is called."""
        while True:
            event = await self._queue.get()
            try:
                if event is None:
                    return
                self.handle_event(event)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log_event({
                    "event_type": "DISPLAY_EVENT_FAILED",
                    "failed_event_type": event.event_type.value if event else None,
                    "exception": type(exc).__name__,
                    "message": str(exc),
                })
            finally:
                self._queue.task_done()

    async def drain(self) -> None:
        """Wait until every submitted event has been applied."""
        await self._queue.join()

    def stop(self) -> None:
        self._queue.put_nowait(None)

    def handle_event(self, event: Event) -> None:
        handler = self._handlers.get(event.event_type)
        if handler is None:
            log_event({
                "event_type": "UNHANDLED_DISPLAY_EVENT",
                "unhandled_event_type": event.event_type.value,
            })
            return
        handler(event)

    def load_conversation(
        self,
        conversation_id: str,
        messages: Iterable[Message],
        *,
        title: str | None = None,
        replace: bool = True,
    ) -> list[Message]:
        stored = self.store.ingest(conversation_id, messages, replace=replace)
        summary = self._summary(conversation_id)
        if title is not None:
            summary.title = title
        self._touch(conversation_id)
        return stored

    def set_conversation(self, conversation_id: str, *, title: str, updated_at_ms: int = 0) -> None:
        summary = self._summary(conversation_id)
        summary.title = title
        summary.updated_at_ms = max(summary.updated_at_ms, updated_at_ms)
        self._notify(conversation_id)

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def flush(self) -> None:
        self._buffer.flush()

    def shutdown(self) -> None:
        self._buffer.close()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def messages(self, conversation_id: str) -> list[Message]:
        return self.store.messages(conversation_id)

    def conversation(self, conversation_id: str) -> ConversationSummary | None:
        return self._conversations.get(conversation_id)

    def status(self, message_id: str) -> StreamingStatus | None:
        return self._status.get(message_id)

    def is_streaming(self, message_id: str) -> bool:
        status = self._status.get(message_id)
        return status is not None and status.is_streaming

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _on_message_added(self, event: Event) -> None:
        assert isinstance(event, MessageAdded)
        message = event.message
        self.store.add_message(message.conversation_id, message)
        self._touch(message.conversation_id)

    def _on_start(self, event: Event) -> None:
        assert isinstance(event, Start)
        message = event.message
        self.store.add_message(message.conversation_id, message)
        self._status[event.message_id] = StreamingStatus()
        self._touch(message.conversation_id)

    def _on_reasoning_start(self, event: Event) -> None:
        assert isinstance(event, StreamEvent)
        self._status_for(event.message_id).is_reasoning = True

    def _on_chunk(self, event: Event) -> None:
        assert isinstance(event, (TextChunk, ReasoningChunk))
        kind = StreamKind.TEXT if isinstance(event, TextChunk) else StreamKind.REASONING
        self._buffer.enqueue(event.message_id, event.text, kind)

    def _on_reasoning_end(self, event: Event) -> None:
        assert isinstance(event, StreamEvent)
        self._buffer.finalize(event.message_id, StreamKind.REASONING)
        self._status_for(event.message_id).is_reasoning = False

    def _on_text_start(self, event: Event) -> None:
        assert isinstance(event, StreamEvent)
        self._status_for(event.message_id).is_reasoning = False

    def _on_text_end(self, event: Event) -> None:
        assert isinstance(event, StreamEvent)
        self._buffer.finalize(event.message_id, StreamKind.TEXT)

    def _on_end(self, event: Event) -> None:
        assert isinstance(event, End)
        self._buffer.finalize(event.message_id)

        final = event.message.copy()
        current = self.store.get_message(event.message_id)
        if final.reasoning is None and current is not None:
            final.reasoning = current.reasoning

        self._replace(final)
        self._finish(event.message_id, EventType.END)

    def _on_cancelled(self, event: Event) -> None:
        assert isinstance(event, Cancelled)
        self._buffer.clear(event.message_id)
        self._replace(event.message)
        self._finish(event.message_id, EventType.CANCELLED)

    def _on_error(self, event: Event) -> None:
        assert isinstance(event, Error)
        self._buffer.clear(event.message_id)

        if event.message is not None:
            self._replace(event.message)
        else:
            updated = self.store.update_message(
                event.message_id,
                lambda m: m.content.append(TextPart(f"Error: {event.reason}")),
            )
            if updated is not None:
                self._touch(updated.conversation_id)

        status = self._finish(event.message_id, EventType.ERROR)
        status.error_code = event.code.value
        status.error = event.reason

    def _on_message_removed(self, event: Event) -> None:
        assert isinstance(event, MessageRemoved)
        self._buffer.clear(event.message_id)
        self._status.pop(event.message_id, None)
        self.store.remove_message(event.message_id)
        self._touch(event.conversation_id)

    def _on_title_generated(self, event: Event) -> None:
        assert isinstance(event, TitleGenerated)
        self._summary(event.conversation_id).title = event.title
        self._notify(event.conversation_id)

    # ------------------------------------------------------------------
    # Chunk application
    # ------------------------------------------------------------------

    def _apply_chunk(self, message_id: str, kind: StreamKind, text: str) -> None:
        def mutate(message: Message) -> None:
            if kind is StreamKind.REASONING:
                message.reasoning = (message.reasoning or "") + text
                return
            content = message.content
            if content and isinstance(content[-1], TextPart):
                previous = content[-1].text
                # The placeholder is replaced by the first real text
                content[-1] = TextPart(text if is_placeholder(previous) else previous + text)
            else:
                content.append(TextPart(text))

        updated = self.store.update_message(message_id, mutate)
        if updated is None:
            log_event({
                "event_type": "CHUNK_FOR_UNKNOWN_MESSAGE",
                "message_id": message_id,
                "kind": kind.value,
                "chars": len(text),
            })
            return
        self._touch(updated.conversation_id)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _replace(self, message: Message) -> None:
        self.store.add_message(message.conversation_id, message)
        self._touch(message.conversation_id)

    def _finish(self, message_id: str, terminal: EventType) -> StreamingStatus:
        status = self._status_for(message_id)
        status.is_streaming = False
        status.is_reasoning = False
        status.terminal = terminal
        return status

    def _status_for(self, message_id: str) -> StreamingStatus:
        return self._status.setdefault(message_id, StreamingStatus())

    def _summary(self, conversation_id: str) -> ConversationSummary:
        summary = self._conversations.get(conversation_id)
        if summary is None:
            summary = ConversationSummary(id=conversation_id)
            self._conversations[conversation_id] = summary
        return summary

    def _touch(self, conversation_id: str) -> None:
        summary = self._summary(conversation_id)
        last = self.store.last_message(conversation_id)
        if last is not None:
            summary.updated_at_ms = last.updated_at_ms
        self._notify(conversation_id)

    def _notify(self, conversation_id: str) -> None:
        for listener in list(self._listeners):
            listener(conversation_id)
