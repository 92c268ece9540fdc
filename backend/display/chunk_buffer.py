"""
Display-side chunk buffer.

Responsibilities:
- Hold streamed chunks per (message_id, StreamKind)
- Coalesce them and hand one combined string per key to the applier
  on a fixed interval, or immediately on finalize()

Rules:
- Chunks are concatenated in arrival order
- A flush applies every pending key in first-enqueued order
- clear() drops pending content without applying it
- Nothing is ever applied twice

Usage example:

    buffer = ChunkBuffer(applier)
    buffer.enqueue("msg_1", "He")
    buffer.enqueue("msg_1", "llo")
    # ~16 ms later: applier("msg_1", StreamKind.TEXT, "Hello")
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from typing import Any, Protocol

from observability.logger import log_event
from orchestrator.enums.stream_kind import StreamKind

from constants import CHUNK_FLUSH_INTERVAL_MS


Applier = Callable[[str, StreamKind, str], None]
Combiner = Callable[[Sequence[str]], str]


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


Scheduler = Callable[[float, Callable[[], Any]], TimerHandle]


def concat(chunks: Sequence[str]) -> str:
    return "".join(chunks)


class ChunkBuffer:
    """
    Interval-flushed buffer between event handling and store mutation.

    Must be used from a single event-loop context; it holds no lock.
    """

    def __init__(
        self,
        applier: Applier,
        *,
        combiner: Combiner = concat,
        flush_interval_ms: int = CHUNK_FLUSH_INTERVAL_MS,
        schedule: Scheduler | None = None,
    ) -> None:
        """
        Args:
            applier:
                Called with (message_id, kind, combined_text) once per key
                per flush.
            combiner:
                Joins a key's pending chunks.
            flush_interval_ms:
                Flush period. <= 0 applies every chunk immediately.
            schedule:
                call_later-style scheduler. Defaults to the running loop's
                call_later.
        """
        self._applier = applier
        self._combiner = combiner
        self._interval_ms = flush_interval_ms
        self._schedule = schedule
        self._pending: dict[tuple[str, StreamKind], list[str]] = {}
        self._timer: TimerHandle | None = None
        self._closed = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def enqueue(self, message_id: str, chunk: str, kind: StreamKind = StreamKind.TEXT) -> None:
        if self._closed:
            raise RuntimeError("chunk buffer is closed")
        if not chunk:
            return

        self._pending.setdefault((message_id, kind), []).append(chunk)

        if self._interval_ms <= 0:
            self.flush()
        else:
            self._ensure_timer()

    def flush(self) -> int:
        """Apply everything pending. Returns the number of keys applied."""
        self._cancel_timer()
        pending, self._pending = self._pending, {}
        for (message_id, kind), chunks in pending.items():
            self._applier(message_id, kind, self._combiner(chunks))
        return len(pending)

    def finalize(self, message_id: str, kind: StreamKind | None = None) -> None:
        """Apply a message's pending chunks now (one kind, or both)."""
        for key in self._keys_for(message_id, kind):
            chunks = self._pending.pop(key)
            self._applier(key[0], key[1], self._combiner(chunks))
        if not self._pending:
            self._cancel_timer()

    def clear(self, message_id: str, kind: StreamKind | None = None) -> int:
        """Drop a message's pending chunks. Returns the number of chunks dropped."""
        dropped = 0
        for key in self._keys_for(message_id, kind):
            dropped += len(self._pending.pop(key))
        if not self._pending:
            self._cancel_timer()
        return dropped

    def pending(self, message_id: str, kind: StreamKind = StreamKind.TEXT) -> str:
        return self._combiner(self._pending.get((message_id, kind), []))

    @property
    def has_pending(self) -> bool:
        return bool(self._pending)

    def close(self) -> None:
        """Flush what is left and refuse further chunks."""
        if self._closed:
            return
        self.flush()
        self._closed = True

    # ------------------------------------------------------------------
    # Timer
    # ------------------------------------------------------------------

    def _ensure_timer(self) -> None:
        if self._timer is not None:
            return
        schedule = self._schedule or asyncio.get_running_loop().call_later
        self._timer = schedule(self._interval_ms / 1000, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        try:
            self.flush()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "CHUNK_FLUSH_FAILED",
                "exception": type(exc).__name__,
                "message": str(exc),
            })

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _keys_for(self, message_id: str, kind: StreamKind | None) -> list[tuple[str, StreamKind]]:
        kinds = (kind,) if kind is not None else tuple(StreamKind)
        return [(message_id, k) for k in kinds if (message_id, k) in self._pending]
