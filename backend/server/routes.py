"""
Route registration for the chat streaming API.

Responsibilities:
- Define HTTP and WebSocket endpoints
- Wire gateway and broadcaster to the WebSocket lifecycle
- Pull dependencies from app.state
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from observability.logger import log_event
from session.channel import EventBroadcaster
from session.gateway import ChatGateway, GatewayResult


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""
    @app.get("/health")
    async def health() -> dict[str, Any]:  # pyright: ignore[reportUnusedFunction]
        return {
            "status": "ok",
            "active_generations": len(app.state.runtime.active_generations),
        }

    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket) -> None:  # pyright: ignore[reportUnusedFunction]
        await ws.accept()

        gateway: ChatGateway = app.state.gateway
        broadcaster: EventBroadcaster = app.state.broadcaster

        # Responses and events share one socket; sends must not interleave
        send_lock = asyncio.Lock()

        async def send_event(payload: dict[str, Any]) -> None:
            async with send_lock:
                await ws.send_text(json.dumps({"type": "event", "event": payload}))

        broadcaster.subscribe(send_event)
        log_event({
            "event_type": "WS_CONNECTED",
            "subscribers": broadcaster.subscriber_count,
        })

        try:
            while True:
                text = await ws.receive_text()
                result = await gateway.on_json_message(text)
                async with send_lock:
                    await _flush_gateway_result(ws, result)

        except WebSocketDisconnect:
            log_event({"event_type": "WS_DISCONNECTED", "reason": "client_disconnect"})

        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "WS_FATAL_ERROR",
                "exception": type(exc).__name__,
                "message": str(exc),
            })

        finally:
            broadcaster.unsubscribe(send_event)


async def _flush_gateway_result(
    ws: WebSocket,
    result: GatewayResult,
) -> None:
    for msg in result.outbound_json:
        await ws.send_text(json.dumps(msg))
