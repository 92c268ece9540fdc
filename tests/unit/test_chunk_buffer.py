# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
from typing import Any, Callable

import pytest

from display.chunk_buffer import ChunkBuffer
from orchestrator.enums.stream_kind import StreamKind


class FakeTimer:
    def __init__(self, delay_s: float, callback: Callable[[], Any]) -> None:
        self.delay_s = delay_s
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    def __init__(self) -> None:
        self.timers: list[FakeTimer] = []

    def __call__(self, delay_s: float, callback: Callable[[], Any]) -> FakeTimer:
        timer = FakeTimer(delay_s, callback)
        self.timers.append(timer)
        return timer

    def fire(self) -> None:
        live = [t for t in self.timers if not t.cancelled]
        self.timers = []
        for timer in live:
            timer.callback()


def _buffer(interval_ms: int = 16):
    applied: list[tuple[str, StreamKind, str]] = []
    scheduler = FakeScheduler()
    buffer = ChunkBuffer(
        lambda mid, kind, text: applied.append((mid, kind, text)),
        flush_interval_ms=interval_ms,
        schedule=scheduler,
    )
    return buffer, applied, scheduler


def test_chunks_coalesce_into_one_mutation():
    buffer, applied, scheduler = _buffer()

    buffer.enqueue("m1", "He")
    buffer.enqueue("m1", "llo")
    assert applied == []
    assert len(scheduler.timers) == 1
    assert scheduler.timers[0].delay_s == pytest.approx(0.016)

    scheduler.fire()

    assert applied == [("m1", StreamKind.TEXT, "Hello")]
    assert not buffer.has_pending


def test_text_and_reasoning_are_buffered_separately():
    buffer, applied, scheduler = _buffer()

    buffer.enqueue("m1", "think", StreamKind.REASONING)
    buffer.enqueue("m1", "Hi")
    buffer.enqueue("m1", "ing", StreamKind.REASONING)
    scheduler.fire()

    assert applied == [
        ("m1", StreamKind.REASONING, "thinking"),
        ("m1", StreamKind.TEXT, "Hi"),
    ]


def test_finalize_flushes_immediately_for_one_kind():
    buffer, applied, _ = _buffer()

    buffer.enqueue("m1", "r", StreamKind.REASONING)
    buffer.enqueue("m1", "t")
    buffer.finalize("m1", StreamKind.REASONING)

    assert applied == [("m1", StreamKind.REASONING, "r")]
    assert buffer.pending("m1") == "t"


def test_clear_drops_without_applying():
    buffer, applied, scheduler = _buffer()

    buffer.enqueue("m1", "gone")
    buffer.enqueue("m2", "kept")

    assert buffer.clear("m1") == 1
    scheduler.fire()

    assert applied == [("m2", StreamKind.TEXT, "kept")]


def test_timer_is_cancelled_when_nothing_is_left():
    buffer, _, scheduler = _buffer()

    buffer.enqueue("m1", "x")
    timer = scheduler.timers[0]
    buffer.finalize("m1")

    assert timer.cancelled


def test_zero_interval_applies_each_chunk():
    buffer, applied, scheduler = _buffer(interval_ms=0)

    buffer.enqueue("m1", "a")
    buffer.enqueue("m1", "b")

    assert applied == [("m1", StreamKind.TEXT, "a"), ("m1", StreamKind.TEXT, "b")]
    assert scheduler.timers == []


def test_close_flushes_and_rejects():
    buffer, applied, _ = _buffer()
    buffer.enqueue("m1", "tail")

    buffer.close()

    assert applied == [("m1", StreamKind.TEXT, "tail")]
    with pytest.raises(RuntimeError):
        buffer.enqueue("m1", "late")


@pytest.mark.asyncio
async def test_default_scheduler_uses_running_loop():
    applied: list[str] = []
    buffer = ChunkBuffer(lambda mid, kind, text: applied.append(text), flush_interval_ms=1)

    buffer.enqueue("m1", "He")
    buffer.enqueue("m1", "llo")
    await asyncio.sleep(0.05)

    assert applied == ["Hello"]
