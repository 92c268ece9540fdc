"""
Generation-side stream event emitter.

Responsibilities:
- Serialize one message's events onto the channel in emission order
- Coalesce bursts of adjacent same-kind chunks for a short interval
- Flush pending chunks before any non-chunk event

Rules:
- Only ADJACENT chunks of the same type are merged, so FIFO order within
  and across phases is preserved.
- All sends hold one asyncio.Lock; a timer flush can never interleave
  with a phase or terminal event.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import replace

from observability.logger import log_event
from orchestrator.events import (
    CHUNK_EVENT_TYPES,
    TERMINAL_EVENT_TYPES,
    Event,
    ReasoningChunk,
    StreamEvent,
    TextChunk,
)

from constants import EVENT_BATCH_INTERVAL_MS


Publish = Callable[[Event], Awaitable[None]]


class StreamEventEmitter:
    """
    Ordered, batching event emitter for a single generation.

    One instance per message; close() once the terminal event is sent.
    """

    def __init__(
        self,
        *,
        publish: Publish,
        batch_interval_ms: int = EVENT_BATCH_INTERVAL_MS,
    ) -> None:
        self._publish = publish
        self._batch_interval_ms = batch_interval_ms
        self._pending: list[TextChunk | ReasoningChunk] = []
        self._lock = asyncio.Lock()
        self._flush_task: asyncio.Task[None] | None = None
        self._closed = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def emit(self, event: StreamEvent) -> None:
        if self._closed:
            raise RuntimeError(f"emitter closed; dropped {event.event_type.value}")

        if event.event_type in CHUNK_EVENT_TYPES and self._batch_interval_ms > 0:
            assert isinstance(event, (TextChunk, ReasoningChunk))
            self._enqueue_chunk(event)
            return

        async with self._lock:
            await self._drain_locked()
            await self._publish(event)

        if event.event_type in TERMINAL_EVENT_TYPES:
            self.close()

    async def flush(self) -> None:
        async with self._lock:
            await self._drain_locked()

    def close(self) -> None:
        self._closed = True
        self._cancel_timer()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _enqueue_chunk(self, event: TextChunk | ReasoningChunk) -> None:
        if self._pending and self._pending[-1].event_type is event.event_type:
            last = self._pending[-1]
            self._pending[-1] = replace(last, text=last.text + event.text)
        else:
            self._pending.append(event)

        if self._flush_task is None:
            self._flush_task = asyncio.create_task(self._flush_later())

    async def _drain_locked(self) -> None:
        pending, self._pending = self._pending, []
        self._cancel_timer()
        for event in pending:
            await self._publish(event)

    async def _flush_later(self) -> None:
        try:
            await asyncio.sleep(self._batch_interval_ms / 1000.0)
        except asyncio.CancelledError:
            return

        self._flush_task = None
        try:
            await self.flush()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "EVENT_FLUSH_FAILED",
                "exception": type(exc).__name__,
                "message": str(exc),
            })

    def _cancel_timer(self) -> None:
        task, self._flush_task = self._flush_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
