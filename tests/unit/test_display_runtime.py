"""
Display-side reconstruction of a stream.

The "Hi" -> "Hello" scenario is driven both event-by-event and end to end
(generation runtime -> wire codec -> display runtime).
"""

import asyncio
from typing import Any, Callable

import pytest

from adapters.llm.base import GenerationAdapter, GenerationResult
from config import AppConfig
from context.message import Message, Role, TextPart
from context.model_config import ModelConfig
import display.runtime as runtime_mod
from display.runtime import DisplayRuntime
from orchestrator.enums.error_code import ErrorCode
from orchestrator.events import (
    Cancelled,
    End,
    Error,
    Event,
    EventType,
    MessageAdded,
    MessageRemoved,
    ReasoningChunk,
    ReasoningEnd,
    ReasoningStart,
    Start,
    TextChunk,
    TextEnd,
    TextStart,
    TitleGenerated,
)
from orchestrator.runtime import GenerationRuntime, SendMessageRequest
from protocol.wire import decode_event, encode_event
from services.message_repository import InMemoryMessageRepository
from services.model_registry import InMemoryModelRegistry

from constants import PLACEHOLDER_TEXT


class ManualScheduler:
    def __init__(self) -> None:
        self.callbacks: list[Callable[[], Any]] = []

    def __call__(self, delay_s: float, callback: Callable[[], Any]) -> "ManualScheduler":
        self.callbacks.append(callback)
        return self

    def cancel(self) -> None:
        self.callbacks.clear()

    def fire(self) -> None:
        callbacks, self.callbacks = self.callbacks, []
        for callback in callbacks:
            callback()


def _message(mid: str, role: Role, text: str, ts: int, reasoning: str | None = None) -> Message:
    return Message(
        id=mid,
        conversation_id="conv_1",
        role=role,
        content=[TextPart(text)],
        created_at_ms=ts,
        updated_at_ms=ts,
        reasoning=reasoning,
    )


def _stream(mid: str = "a1"):
    base = {"ts_ms": 0, "message_id": mid}
    return {
        "start": Start(event_type=EventType.START, message=_message(mid, Role.ASSISTANT, PLACEHOLDER_TEXT, 2), **base),
        "text_start": TextStart(event_type=EventType.TEXT_START, **base),
        "chunk": lambda t: TextChunk(event_type=EventType.TEXT_CHUNK, text=t, **base),
        "text_end": TextEnd(event_type=EventType.TEXT_END, **base),
        "end": lambda t, r=None: End(
            event_type=EventType.END, message=_message(mid, Role.ASSISTANT, t, 2, r), **base
        ),
    }


def test_hi_hello_scenario_event_by_event():
    scheduler = ManualScheduler()
    display = DisplayRuntime(schedule=scheduler)
    s = _stream()

    display.handle_event(MessageAdded(
        event_type=EventType.MESSAGE_ADDED, ts_ms=0, message=_message("u1", Role.USER, "Hi", 1)
    ))
    display.handle_event(s["start"])
    assert display.is_streaming("a1")

    display.handle_event(s["text_start"])
    display.handle_event(s["chunk"]("He"))
    display.handle_event(s["chunk"]("llo"))

    # buffered until the interval fires
    assert display.store.get_message("a1").content == [TextPart(PLACEHOLDER_TEXT)]
    scheduler.fire()
    assert display.store.get_message("a1").content == [TextPart("Hello")]

    display.handle_event(s["text_end"])
    display.handle_event(s["end"]("Hello"))

    messages = display.messages("conv_1")
    assert [(m.role, m.text()) for m in messages] == [(Role.USER, "Hi"), (Role.ASSISTANT, "Hello")]
    assert not display.is_streaming("a1")
    assert display.status("a1").terminal is EventType.END
    assert display.store.validate_index() == []


def test_text_end_flushes_without_waiting_for_timer():
    display = DisplayRuntime(schedule=ManualScheduler())
    s = _stream()

    display.handle_event(s["start"])
    display.handle_event(s["text_start"])
    display.handle_event(s["chunk"]("Hel"))
    display.handle_event(s["chunk"]("lo"))
    display.handle_event(s["text_end"])

    assert display.store.get_message("a1").text() == "Hello"


def test_first_flush_replaces_placeholder_then_later_flushes_append():
    scheduler = ManualScheduler()
    display = DisplayRuntime(schedule=scheduler)
    s = _stream()

    display.handle_event(s["start"])
    display.handle_event(s["text_start"])
    display.handle_event(s["chunk"]("Hel"))
    scheduler.fire()
    assert display.store.get_message("a1").content == [TextPart("Hel")]

    display.handle_event(s["chunk"]("lo" + PLACEHOLDER_TEXT))
    scheduler.fire()

    # only a bare placeholder is replaced; streamed text is kept verbatim
    assert display.store.get_message("a1").content == [TextPart("Hello" + PLACEHOLDER_TEXT)]


def test_end_keeps_streamed_reasoning_when_final_has_none():
    display = DisplayRuntime(schedule=ManualScheduler())
    s = _stream()
    base = {"ts_ms": 0, "message_id": "a1"}

    display.handle_event(s["start"])
    display.handle_event(ReasoningStart(event_type=EventType.REASONING_START, **base))
    assert display.status("a1").is_reasoning
    display.handle_event(ReasoningChunk(event_type=EventType.REASONING_CHUNK, text="because", **base))
    display.handle_event(ReasoningEnd(event_type=EventType.REASONING_END, **base))
    assert not display.status("a1").is_reasoning
    display.handle_event(s["text_start"])
    display.handle_event(s["chunk"]("Hello"))
    display.handle_event(s["end"]("Hello"))

    assert display.store.get_message("a1").reasoning == "because"


def test_cancel_drops_pending_chunks_and_uses_authoritative_message():
    scheduler = ManualScheduler()
    display = DisplayRuntime(schedule=scheduler)
    s = _stream()

    display.handle_event(s["start"])
    display.handle_event(s["text_start"])
    display.handle_event(s["chunk"]("Par"))
    display.handle_event(Cancelled(
        event_type=EventType.CANCELLED,
        ts_ms=0,
        message_id="a1",
        message=_message("a1", Role.ASSISTANT, "Par", 2),
    ))
    scheduler.fire()

    assert display.store.get_message("a1").text() == "Par"
    assert display.status("a1").terminal is EventType.CANCELLED


def test_error_records_code_and_message():
    display = DisplayRuntime(schedule=ManualScheduler())
    s = _stream()

    display.handle_event(s["start"])
    display.handle_event(Error(
        event_type=EventType.ERROR,
        ts_ms=0,
        message_id="a1",
        code=ErrorCode.AUTH,
        reason="Invalid API key.",
        message=_message("a1", Role.ASSISTANT, "Error: Invalid API key.", 2),
    ))

    status = display.status("a1")
    assert status.error_code == "auth"
    assert not status.is_streaming
    assert display.store.get_message("a1").text() == "Error: Invalid API key."


def test_chunk_for_unknown_message_is_logged(monkeypatch: pytest.MonkeyPatch) -> None:
    emitted: list[dict[str, Any]] = []
    monkeypatch.setattr(runtime_mod, "log_event", emitted.append)
    display = DisplayRuntime(flush_interval_ms=0)

    display.handle_event(_stream("ghost")["chunk"]("boo"))

    assert emitted[0]["event_type"] == "CHUNK_FOR_UNKNOWN_MESSAGE"


def test_conversation_summary_tracks_last_message_and_title():
    display = DisplayRuntime(flush_interval_ms=0)
    changes: list[str] = []
    display.subscribe(changes.append)

    display.load_conversation("conv_1", [_message("u1", Role.USER, "Hi", 5)])
    assert display.conversation("conv_1").updated_at_ms == 5

    display.handle_event(TitleGenerated(
        event_type=EventType.TITLE_GENERATED, ts_ms=0, conversation_id="conv_1", title="Greeting"
    ))
    display.handle_event(MessageRemoved(
        event_type=EventType.MESSAGE_REMOVED, ts_ms=0, conversation_id="conv_1", message_id="u1"
    ))

    assert display.conversation("conv_1").title == "Greeting"
    assert display.messages("conv_1") == []
    assert changes == ["conv_1", "conv_1", "conv_1"]


# =============================================================================
# End to end
# =============================================================================

class HelloAdapter(GenerationAdapter):
    async def generate(self, *, messages, model_config, params, callbacks, token,
                       system_prompt=None, include_reasoning=True) -> GenerationResult:
        for delta in ("He", "llo"):
            await callbacks.on_text_delta(delta)
        return GenerationResult(text="Hello")

    async def complete(self, **kwargs: Any) -> str:  # type: ignore[override]
        return "Title"


@pytest.mark.asyncio
async def test_hi_hello_end_to_end_through_the_wire():
    scheduler = ManualScheduler()
    display = DisplayRuntime(schedule=scheduler)
    wire_log: list[dict[str, Any]] = []

    async def publish(event: Event) -> None:
        payload = encode_event(event)
        wire_log.append(payload)
        display.submit(decode_event(payload))

    runtime = GenerationRuntime(
        config=AppConfig(auto_generate_titles=False, system_prompt=None),
        adapter=HelloAdapter(),
        repository=InMemoryMessageRepository(),
        registry=InMemoryModelRegistry([
            ModelConfig(id="m", name="m", model_id="gpt", created_at_ms=0, api_key="k"),
        ]),
        publish=publish,
    )

    consumer = asyncio.create_task(display.run())
    sent = await runtime.send_message(SendMessageRequest(text="Hi", conversation_id="conv_1"))
    await runtime.wait_idle()
    await display.drain()
    display.stop()
    await consumer

    assert wire_log[-1]["event_type"] == "END"
    assert [m.text() for m in display.messages("conv_1")] == ["Hi", "Hello"]
    assert display.store.get_message(sent.assistant_message_id).text() == "Hello"
