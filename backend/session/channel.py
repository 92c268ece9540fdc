"""
One-way event delivery from the generation side to display clients.

Responsibilities:
- Encode each event once (protocol.wire)
- Deliver to every subscriber in publish order

Non-responsibilities:
- No request/response handling (session.gateway)
- No transport specifics (server.routes wraps a WebSocket as a subscriber)

A generation task awaits publish() for each of its events in turn, which
gives the per-message ordering guarantee; nothing orders events across
different messages.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from observability.logger import log_event
from orchestrator.events import Event
from protocol.wire import encode_event


Subscriber = Callable[[dict[str, Any]], Awaitable[None]]


class EventBroadcaster:
    """Fan-out of encoded events to subscribers."""

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> None:
        if subscriber not in self._subscribers:
            self._subscribers.append(subscriber)

    def unsubscribe(self, subscriber: Subscriber) -> None:
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def publish(self, event: Event) -> None:
        """
        Deliver one event to all current subscribers.

        A failing subscriber is logged and skipped; it never blocks
        delivery to the others or fails the generation.
        """
        payload = encode_event(event)
        for subscriber in list(self._subscribers):
            try:
                await subscriber(payload)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log_event({
                    "event_type": "EVENT_DELIVERY_FAILED",
                    "delivered_event_type": payload["event_type"],
                    "message_id": payload.get("message_id"),
                    "exception": type(exc).__name__,
                    "message": str(exc),
                })
