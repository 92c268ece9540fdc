# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
import json
from typing import Any

import pytest

import display.client as client_mod
from display.client import DisplayClient, RemoteError
from orchestrator.events import Event, EventType, TitleGenerated
from protocol.wire import encode_event


class RecordingRuntime:
    def __init__(self) -> None:
        self.events: list[Event] = []
        self.conversations: dict[str, dict[str, Any]] = {}

    def submit(self, event: Event) -> None:
        self.events.append(event)

    def set_conversation(self, conversation_id: str, *, title: str, updated_at_ms: int = 0) -> None:
        self.conversations[conversation_id] = {"title": title, "updated_at_ms": updated_at_ms}


class AnsweringSocket:
    """Replies to every request on the next loop iteration."""

    def __init__(self, client: DisplayClient, answer: dict[str, Any]) -> None:
        self.client = client
        self.answer = answer
        self.sent: list[dict[str, Any]] = []

    async def send(self, raw: str) -> None:
        request = json.loads(raw)
        self.sent.append(request)
        frame = json.dumps({"type": "response", "id": request["id"], **self.answer})
        asyncio.get_running_loop().call_soon(self.client.handle_frame, frame)

    async def close(self) -> None:
        pass


def _client() -> tuple[DisplayClient, RecordingRuntime]:
    runtime = RecordingRuntime()
    return DisplayClient("ws://test/ws", runtime, request_timeout_s=1.0), runtime  # type: ignore[arg-type]


def test_event_frames_are_decoded_and_submitted():
    client, runtime = _client()
    event = TitleGenerated(
        event_type=EventType.TITLE_GENERATED, ts_ms=1, conversation_id="conv_1", title="Plans"
    )

    client.handle_frame(json.dumps({"type": "event", "event": encode_event(event)}))

    assert runtime.events == [event]


def test_bad_frames_are_logged(monkeypatch: pytest.MonkeyPatch) -> None:
    emitted: list[dict[str, Any]] = []
    monkeypatch.setattr(client_mod, "log_event", emitted.append)
    client, runtime = _client()

    client.handle_frame("{oops")
    client.handle_frame(json.dumps({"type": "event", "event": {"event_type": "NOPE"}}))
    client.handle_frame(json.dumps({"type": "gossip"}))

    assert [e["event_type"] for e in emitted] == [
        "JSON_DECODE_ERROR",
        "EVENT_DECODE_ERROR",
        "UNKNOWN_MESSAGE_TYPE",
    ]
    assert runtime.events == []


@pytest.mark.asyncio
async def test_request_requires_connection():
    client, _ = _client()

    with pytest.raises(ConnectionError):
        await client.request("conversation.list")


@pytest.mark.asyncio
async def test_request_resolves_on_matching_response():
    client, runtime = _client()
    socket = AnsweringSocket(client, {
        "ok": True,
        "result": {"conversations": [{"id": "c1", "title": "Plans", "updated_at_ms": 7}]},
    })
    client._ws = socket  # type: ignore[assignment]  # pylint: disable=protected-access

    conversations = await client.refresh_conversations()

    assert socket.sent[0]["method"] == "conversation.list"
    assert socket.sent[0]["type"] == "request"
    assert conversations[0]["id"] == "c1"
    assert runtime.conversations["c1"] == {"title": "Plans", "updated_at_ms": 7}


@pytest.mark.asyncio
async def test_error_response_raises_remote_error():
    client, _ = _client()
    client._ws = AnsweringSocket(client, {  # type: ignore[assignment]  # pylint: disable=protected-access
        "ok": False,
        "error": {"code": "conflict", "message": "still streaming"},
    })

    with pytest.raises(RemoteError) as exc_info:
        await client.delete_message("msg_1")

    assert exc_info.value.code == "conflict"


@pytest.mark.asyncio
async def test_send_message_omits_unset_params():
    client, _ = _client()
    socket = AnsweringSocket(client, {"ok": True, "result": {"request_id": "req_1"}})
    client._ws = socket  # type: ignore[assignment]  # pylint: disable=protected-access

    await client.send_message("Hi", conversation_id="conv_1")

    assert socket.sent[0]["params"] == {"text": "Hi", "conversation_id": "conv_1"}


@pytest.mark.asyncio
async def test_regenerate_sends_message_id_and_returns_cleared_message():
    client, _ = _client()
    socket = AnsweringSocket(client, {"ok": True, "result": {"message": {"id": "msg_1", "role": "assistant"}}})
    client._ws = socket  # type: ignore[assignment]  # pylint: disable=protected-access

    cleared = await client.regenerate("msg_1", model_id="m2")

    assert socket.sent[0]["method"] == "message.regenerate"
    assert socket.sent[0]["params"] == {"message_id": "msg_1", "model_id": "m2"}
    assert cleared["id"] == "msg_1"
