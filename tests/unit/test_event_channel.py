# pylint: disable=missing-module-docstring,missing-function-docstring

from typing import Any

import pytest

import session.channel as channel_mod
from orchestrator.events import EventType, TitleGenerated
from session.channel import EventBroadcaster


def _title(title: str) -> TitleGenerated:
    return TitleGenerated(
        event_type=EventType.TITLE_GENERATED, ts_ms=1, conversation_id="conv_1", title=title
    )


@pytest.mark.asyncio
async def test_publish_encodes_once_and_preserves_order():
    broadcaster = EventBroadcaster()
    received: list[dict[str, Any]] = []

    async def subscriber(payload: dict[str, Any]) -> None:
        received.append(payload)

    broadcaster.subscribe(subscriber)
    broadcaster.subscribe(subscriber)  # idempotent

    await broadcaster.publish(_title("A"))
    await broadcaster.publish(_title("B"))

    assert [p["title"] for p in received] == ["A", "B"]
    assert received[0]["event_type"] == "TITLE_GENERATED"


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_block_others(monkeypatch: pytest.MonkeyPatch) -> None:
    emitted: list[dict[str, Any]] = []
    monkeypatch.setattr(channel_mod, "log_event", emitted.append)
    broadcaster = EventBroadcaster()
    received: list[dict[str, Any]] = []

    async def broken(payload: dict[str, Any]) -> None:
        raise ConnectionError("socket gone")

    async def healthy(payload: dict[str, Any]) -> None:
        received.append(payload)

    broadcaster.subscribe(broken)
    broadcaster.subscribe(healthy)
    await broadcaster.publish(_title("A"))

    assert len(received) == 1
    assert emitted[0]["event_type"] == "EVENT_DELIVERY_FAILED"
    assert emitted[0]["delivered_event_type"] == "TITLE_GENERATED"


@pytest.mark.asyncio
async def test_unsubscribe_stops_delivery():
    broadcaster = EventBroadcaster()
    received: list[dict[str, Any]] = []

    async def subscriber(payload: dict[str, Any]) -> None:
        received.append(payload)

    broadcaster.subscribe(subscriber)
    broadcaster.unsubscribe(subscriber)
    await broadcaster.publish(_title("A"))

    assert received == []
    assert broadcaster.subscriber_count == 0
