"""
Display-side WebSocket client.

Responsibilities:
- Connect to the server's /ws endpoint
- Send request envelopes and await their correlated responses
- Decode event envelopes and submit them to a DisplayRuntime

Not responsible for:
- Applying events (display.runtime)
- Reconnect policy
"""

from __future__ import annotations

import asyncio
import itertools
import json
from typing import Any

from websockets.asyncio.client import ClientConnection, connect as ws_connect

from display.runtime import DisplayRuntime
from observability.logger import log_event
from protocol.wire import WireProtocolError, decode_event, decode_message

from constants import PAYLOAD_PREVIEW_CHARS


class RemoteError(Exception):
    """The server answered a request with ok=false."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message


class DisplayClient:
    """One connection to the chat server, feeding one DisplayRuntime."""

    def __init__(self, url: str, runtime: DisplayRuntime, *, request_timeout_s: float = 30.0) -> None:
        self._url = url
        self._runtime = runtime
        self._request_timeout_s = request_timeout_s
        self._ws: ClientConnection | None = None
        self._recv_task: asyncio.Task[None] | None = None
        self._pending: dict[str, asyncio.Future[dict[str, Any]]] = {}
        self._ids = itertools.count(1)

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        if self._ws is not None:
            return
        self._ws = await ws_connect(self._url, max_size=2**22)
        self._recv_task = asyncio.create_task(self._recv_loop())

    async def close(self) -> None:
        ws, self._ws = self._ws, None
        if self._recv_task is not None and not self._recv_task.done():
            self._recv_task.cancel()
        self._recv_task = None
        if ws is not None:
            await ws.close()
        self._fail_pending(ConnectionError("connection closed"))

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def request(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        Send one request and wait for its response.

        Raises:
            RemoteError if the server answered ok=false
            ConnectionError if not connected or the connection dropped
            TimeoutError if no response arrived in time
        """
        if self._ws is None:
            raise ConnectionError("not connected")

        request_id = f"r{next(self._ids)}"
        future: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self._ws.send(json.dumps({
                "type": "request",
                "id": request_id,
                "method": method,
                "params": params or {},
            }))
            response = await asyncio.wait_for(future, self._request_timeout_s)
        finally:
            self._pending.pop(request_id, None)

        if not response.get("ok"):
            error = response.get("error") or {}
            raise RemoteError(error.get("code", "unknown"), error.get("message", ""))
        return response.get("result") or {}

    async def send_message(
        self,
        text: str,
        *,
        conversation_id: str | None = None,
        model_id: str | None = None,
        reasoning_effort: str | None = None,
        request_id: str | None = None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"text": text}
        for key, value in (
            ("conversation_id", conversation_id),
            ("model_id", model_id),
            ("reasoning_effort", reasoning_effort),
            ("request_id", request_id),
        ):
            if value is not None:
                params[key] = value
        return await self.request("message.send", params)

    async def stop(self, token_id: str) -> bool:
        result = await self.request("message.stop", {"id": token_id})
        return bool(result.get("cancelled"))

    async def delete_message(self, message_id: str) -> bool:
        result = await self.request("message.delete", {"message_id": message_id})
        return bool(result.get("deleted"))

    async def regenerate(self, message_id: str, *, model_id: str | None = None) -> dict[str, Any]:
        params: dict[str, Any] = {"message_id": message_id}
        if model_id is not None:
            params["model_id"] = model_id
        result = await self.request("message.regenerate", params)
        return result.get("message", {})

    async def refresh_conversations(self) -> list[dict[str, Any]]:
        result = await self.request("conversation.list")
        conversations = result.get("conversations", [])
        for conversation in conversations:
            self._runtime.set_conversation(
                conversation["id"],
                title=conversation["title"],
                updated_at_ms=conversation.get("updated_at_ms", 0),
            )
        return conversations

    async def load_conversation(self, conversation_id: str) -> None:
        result = await self.request("conversation.messages", {"conversation_id": conversation_id})
        messages = [decode_message(m) for m in result.get("messages", [])]
        self._runtime.load_conversation(conversation_id, messages)

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def handle_frame(self, raw: str | bytes) -> None:
        """Route one inbound frame to a pending request or the runtime."""
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            log_event({
                "event_type": "JSON_DECODE_ERROR",
                "error": str(e),
                "payload_preview": str(raw)[:PAYLOAD_PREVIEW_CHARS],
            })
            return

        frame_type = data.get("type") if isinstance(data, dict) else None

        if frame_type == "response":
            future = self._pending.get(data.get("id"))
            if future is not None and not future.done():
                future.set_result(data)
            return

        if frame_type == "event":
            try:
                event = decode_event(data.get("event") or {})
            except WireProtocolError as e:
                log_event({
                    "event_type": "EVENT_DECODE_ERROR",
                    "exception": type(e).__name__,
                    "error": str(e),
                })
                return
            self._runtime.submit(event)
            return

        log_event({
            "event_type": "UNKNOWN_MESSAGE_TYPE",
            "msg_type": frame_type,
        })

    async def _recv_loop(self) -> None:
        ws = self._ws
        if ws is None:
            return

        try:
            async for raw in ws:
                self.handle_frame(raw)
        except asyncio.CancelledError:
            return
        except Exception as e:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "DISPLAY_CONNECTION_LOST",
                "exception": type(e).__name__,
                "message": str(e),
            })
        self._fail_pending(ConnectionError("connection lost"))

    def _fail_pending(self, exc: Exception) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(exc)
        self._pending.clear()
