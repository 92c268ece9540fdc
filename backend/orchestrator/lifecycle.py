"""
Streaming lifecycle for a single assistant message.

Responsibilities:
- Materialize and persist the placeholder, then emit START
- Turn adapter deltas into phase-framed events
  (REASONING_START/CHUNK/END, TEXT_START/CHUNK/END)
- Resolve exactly once: END, CANCELLED or ERROR
- Persist final or partial content BEFORE emitting the terminal event

Non-responsibilities:
- NO provider IO (adapter)
- NO retry decisions (orchestrator.retry)
- NO cancellation bookkeeping (runtime calls CancellationManager.complete)

Every event passes through the pure reducer before it is emitted, so an
illegal sequence raises instead of reaching the channel.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from adapters.llm.base import GenerationResult
from context.message import ContentPart, Message, TextPart
from context.text import ensure_placeholder
from observability.logger import log_event
from observability.metrics import discard_timer, start_timer, stop_timer
from orchestrator.enums.phase import Phase
from orchestrator.errors import describe_error
from orchestrator.events import (
    Cancelled,
    End,
    Error,
    EventType,
    ReasoningChunk,
    ReasoningEnd,
    ReasoningStart,
    Start,
    StreamEvent,
    TextChunk,
    TextEnd,
    TextStart,
)
from orchestrator.reducer import reduce
from orchestrator.state_dataclass import GenerationSession

if TYPE_CHECKING:
    from orchestrator.cancellation import CancellationToken
    from orchestrator.emitter import StreamEventEmitter
    from services.message_repository import MessageRepository


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class StreamingLifecycle:
    """
    Per-message lifecycle driver. Implements adapters.llm.base.StreamCallbacks.

    Guarantees:
    - START precedes every other event
    - Reasoning deltas that arrive after text began are kept (folded into
      the final message's reasoning) but never emitted as chunks
    - The terminal message is never content-less
    """

    def __init__(
        self,
        *,
        placeholder: Message,
        repository: MessageRepository,
        emitter: StreamEventEmitter,
        token: CancellationToken | None = None,
        now_ms: Callable[[], int] = _now_ms,
    ) -> None:
        self._message = placeholder
        self._repository = repository
        self._emitter = emitter
        self._now_ms = now_ms
        self._session = GenerationSession(
            message_id=placeholder.id,
            cancellation_token=token,
        )
        self._persisted = False
        self._late_reasoning: list[str] = []
        self._first_token_timer: str | None = None
        self.finish_reason: str | None = None
        self.usage: dict[str, Any] | None = None
        # Stamped onto the persisted message once the model is resolved
        self.model_id: str | None = placeholder.model_id

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def message_id(self) -> str:
        return self._message.id

    @property
    def session(self) -> GenerationSession:
        return self._session

    @property
    def has_streamed_content(self) -> bool:
        return self._session.has_streamed_content or bool(self._late_reasoning)

    # ------------------------------------------------------------------
    # Start
    # ------------------------------------------------------------------

    async def start(self) -> Message:
        """Persist the placeholder and emit START."""
        persisted = self._repository.add_message(self._message.copy())
        self._persisted = True
        self._first_token_timer = start_timer("first_token_latency")
        await self._apply(Start(
            event_type=EventType.START,
            ts_ms=self._now_ms(),
            message_id=self.message_id,
            message=persisted,
        ))
        log_event({
            "event_type": "GENERATION_STARTED",
            "message_id": self.message_id,
            "conversation_id": self._message.conversation_id,
        })
        return persisted

    # ------------------------------------------------------------------
    # Adapter callbacks
    # ------------------------------------------------------------------

    async def on_reasoning_delta(self, text: str) -> None:
        if self._session.text_started:
            self._late_reasoning.append(text)
            log_event({
                "event_type": "LATE_REASONING_CHUNK",
                "message_id": self.message_id,
                "len": len(text),
            })
            return

        self._mark_first_token()
        if self._session.phase is Phase.STARTED:
            await self._apply(ReasoningStart(
                event_type=EventType.REASONING_START,
                ts_ms=self._now_ms(),
                message_id=self.message_id,
            ))

        await self._apply(ReasoningChunk(
            event_type=EventType.REASONING_CHUNK,
            ts_ms=self._now_ms(),
            message_id=self.message_id,
            text=text,
        ))

    async def on_text_delta(self, text: str) -> None:
        self._mark_first_token()
        if self._session.phase is Phase.REASONING:
            await self._end_reasoning()

        if not self._session.text_started:
            await self._apply(TextStart(
                event_type=EventType.TEXT_START,
                ts_ms=self._now_ms(),
                message_id=self.message_id,
            ))

        await self._apply(TextChunk(
            event_type=EventType.TEXT_CHUNK,
            ts_ms=self._now_ms(),
            message_id=self.message_id,
            text=text,
        ))

    async def on_finish(
        self,
        *,
        finish_reason: str | None,
        usage: dict[str, Any] | None,
    ) -> None:
        self.finish_reason = finish_reason
        self.usage = usage

    # ------------------------------------------------------------------
    # Terminal
    # ------------------------------------------------------------------

    async def complete(self, result: GenerationResult) -> Message:
        """Close open phases, persist the final message and emit END."""
        missing = self._unreported_text(result)
        if missing:
            await self.on_text_delta(missing)

        if self._session.phase is Phase.REASONING:
            await self._end_reasoning()
        if self._session.text_open:
            await self._apply(TextEnd(
                event_type=EventType.TEXT_END,
                ts_ms=self._now_ms(),
                message_id=self.message_id,
            ))

        persisted = self._persist([TextPart(ensure_placeholder(self._session.accumulated_text))])
        await self._apply(End(
            event_type=EventType.END,
            ts_ms=self._now_ms(),
            message_id=self.message_id,
            message=persisted,
        ))
        self._log_terminal(EventType.END)
        return persisted

    async def cancelled(self) -> Message:
        """Persist the partial message (never empty) and emit CANCELLED."""
        if self._session.phase is Phase.IDLE:
            await self.start()

        persisted = self._persist([TextPart(ensure_placeholder(self._session.accumulated_text))])
        await self._apply(Cancelled(
            event_type=EventType.CANCELLED,
            ts_ms=self._now_ms(),
            message_id=self.message_id,
            message=persisted,
        ))
        self._log_terminal(EventType.CANCELLED)
        return persisted

    async def error(self, exc: BaseException, *, was_cancelled: bool) -> Message:
        """
        Resolve a failed generation.

        A failure observed after the user cancelled resolves as CANCELLED.
        Otherwise partial text is kept and followed by an error part.
        """
        if was_cancelled:
            return await self.cancelled()

        code, reason = describe_error(exc)

        content: list[ContentPart] = []
        if self._session.accumulated_text.strip():
            content.append(TextPart(self._session.accumulated_text))
        content.append(TextPart(f"Error: {reason}"))

        persisted = self._persist(content)
        await self._apply(Error(
            event_type=EventType.ERROR,
            ts_ms=self._now_ms(),
            message_id=self.message_id,
            code=code,
            reason=reason,
            message=persisted,
        ))
        self._log_terminal(
            EventType.ERROR,
            code=code.value,
            exception=type(exc).__name__,
            error=str(exc),
        )
        return persisted

    def close(self) -> None:
        if self._first_token_timer is not None:
            discard_timer(self._first_token_timer)
            self._first_token_timer = None
        self._emitter.close()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _mark_first_token(self) -> None:
        if self._first_token_timer is None:
            return
        stop_timer(self._first_token_timer, message_id=self.message_id)
        self._first_token_timer = None

    async def _apply(self, event: StreamEvent) -> None:
        self._session = reduce(self._session, event)
        await self._emitter.emit(event)

    async def _end_reasoning(self) -> None:
        await self._apply(ReasoningEnd(
            event_type=EventType.REASONING_END,
            ts_ms=self._now_ms(),
            message_id=self.message_id,
        ))

    def _persist(self, content: list[ContentPart]) -> Message:
        reasoning = self._final_reasoning()
        if not self._persisted:
            message = self._message.copy()
            message.content = content
            message.reasoning = reasoning
            message.model_id = self.model_id
            message.updated_at_ms = self._now_ms()
            self._persisted = True
            return self._repository.add_message(message)

        return self._repository.update_message(
            self.message_id,
            content=content,
            reasoning=reasoning,
            model_id=self.model_id,
        )

    def _final_reasoning(self) -> str | None:
        reasoning = self._session.accumulated_reasoning + "".join(self._late_reasoning)
        return reasoning or None

    def _unreported_text(self, result: GenerationResult) -> str:
        seen = self._session.accumulated_text
        if len(result.text) > len(seen) and result.text.startswith(seen):
            return result.text[len(seen):]
        return ""

    def _log_terminal(self, terminal: EventType, **extra: Any) -> None:
        log_event({
            "event_type": "GENERATION_TERMINAL",
            "message_id": self.message_id,
            "terminal": terminal.value,
            "text_len": len(self._session.accumulated_text),
            "reasoning_len": len(self._session.accumulated_reasoning),
            "finish_reason": self.finish_reason,
            **extra,
        })
