"""
Batching behavior of StreamEventEmitter with a non-zero interval.

Covers:
- adjacent same-kind chunks merge into one published chunk
- the timer flushes pending chunks while the stream is still open
- pending chunks always precede the phase or terminal event that follows
- nothing is published once the emitter is closed
"""

import asyncio

import pytest

from context.message import Message, Role, TextPart
from orchestrator.emitter import StreamEventEmitter
from orchestrator.events import (
    Cancelled,
    End,
    Event,
    EventType,
    ReasoningChunk,
    ReasoningEnd,
    ReasoningStart,
    Start,
    TextChunk,
    TextEnd,
    TextStart,
)


MID = "msg_1"


def _message(text: str = "") -> Message:
    return Message(
        id=MID,
        conversation_id="conv_1",
        role=Role.ASSISTANT,
        content=[TextPart(text)],
        created_at_ms=0,
        updated_at_ms=0,
    )


def _emitter(interval_ms: int):
    published: list[Event] = []

    async def publish(event: Event) -> None:
        published.append(event)

    return StreamEventEmitter(publish=publish, batch_interval_ms=interval_ms), published


def _text(text: str) -> TextChunk:
    return TextChunk(event_type=EventType.TEXT_CHUNK, ts_ms=0, message_id=MID, text=text)


def _reasoning(text: str) -> ReasoningChunk:
    return ReasoningChunk(event_type=EventType.REASONING_CHUNK, ts_ms=0, message_id=MID, text=text)


def _summary(events: list[Event]) -> list[tuple[EventType, str | None]]:
    return [(e.event_type, getattr(e, "text", None)) for e in events]


@pytest.mark.asyncio
async def test_adjacent_chunks_merge_until_flushed():
    emitter, published = _emitter(1000)

    await emitter.emit(_text("He"))
    await emitter.emit(_text("llo"))

    assert published == []
    assert emitter.pending_count == 1

    await emitter.flush()

    assert _summary(published) == [(EventType.TEXT_CHUNK, "Hello")]
    assert emitter.pending_count == 0
    emitter.close()


@pytest.mark.asyncio
async def test_chunks_of_different_kinds_stay_separate():
    emitter, published = _emitter(1000)

    await emitter.emit(_reasoning("think"))
    await emitter.emit(_text("say"))
    await emitter.emit(_reasoning("more"))
    await emitter.flush()

    assert _summary(published) == [
        (EventType.REASONING_CHUNK, "think"),
        (EventType.TEXT_CHUNK, "say"),
        (EventType.REASONING_CHUNK, "more"),
    ]
    emitter.close()


@pytest.mark.asyncio
async def test_timer_flushes_mid_stream():
    emitter, published = _emitter(10)

    await emitter.emit(_text("He"))
    await asyncio.sleep(0.05)

    assert _summary(published) == [(EventType.TEXT_CHUNK, "He")]

    await emitter.emit(_text("llo"))
    await asyncio.sleep(0.05)

    assert _summary(published) == [
        (EventType.TEXT_CHUNK, "He"),
        (EventType.TEXT_CHUNK, "llo"),
    ]
    emitter.close()


@pytest.mark.asyncio
async def test_full_stream_keeps_order_across_phases():
    emitter, published = _emitter(10)

    await emitter.emit(Start(event_type=EventType.START, ts_ms=0, message_id=MID, message=_message()))
    await emitter.emit(ReasoningStart(event_type=EventType.REASONING_START, ts_ms=0, message_id=MID))
    await emitter.emit(_reasoning("a"))
    await emitter.emit(_reasoning("b"))
    await emitter.emit(ReasoningEnd(event_type=EventType.REASONING_END, ts_ms=0, message_id=MID))
    await emitter.emit(TextStart(event_type=EventType.TEXT_START, ts_ms=0, message_id=MID))
    await emitter.emit(_text("He"))
    await asyncio.sleep(0.05)
    await emitter.emit(_text("llo"))
    await emitter.emit(TextEnd(event_type=EventType.TEXT_END, ts_ms=0, message_id=MID))
    await emitter.emit(End(event_type=EventType.END, ts_ms=0, message_id=MID, message=_message("Hello")))

    assert _summary(published) == [
        (EventType.START, None),
        (EventType.REASONING_START, None),
        (EventType.REASONING_CHUNK, "ab"),
        (EventType.REASONING_END, None),
        (EventType.TEXT_START, None),
        (EventType.TEXT_CHUNK, "He"),
        (EventType.TEXT_CHUNK, "llo"),
        (EventType.TEXT_END, None),
        (EventType.END, None),
    ]

    # terminal event closes the emitter
    with pytest.raises(RuntimeError):
        await emitter.emit(_text("late"))


@pytest.mark.asyncio
async def test_pending_chunks_drain_before_cancelled():
    emitter, published = _emitter(1000)

    await emitter.emit(_text("Hel"))
    await emitter.emit(_text("lo"))
    await emitter.emit(Cancelled(
        event_type=EventType.CANCELLED,
        ts_ms=0,
        message_id=MID,
        message=_message("Hello"),
    ))

    assert _summary(published) == [
        (EventType.TEXT_CHUNK, "Hello"),
        (EventType.CANCELLED, None),
    ]
    assert emitter.pending_count == 0


@pytest.mark.asyncio
async def test_no_flush_after_close():
    emitter, published = _emitter(10)

    await emitter.emit(_text("orphan"))
    emitter.close()
    await asyncio.sleep(0.05)

    assert published == []
    with pytest.raises(RuntimeError):
        await emitter.emit(_text("late"))
    assert published == []
