"""
Chat gateway: request/response half of the message channel.

Responsibilities:
- Decode inbound JSON request envelopes
- Dispatch methods onto GenerationRuntime / MessageRepository
- Build response envelopes (success or structured error)

Not responsible for:
- Event delivery (session.channel.EventBroadcaster)
- Generation policy (orchestrator.runtime)
- Transport (server.routes)

Envelopes:

    -> {"type": "request", "id": "r1", "method": "message.send",
        "params": {"text": "Hi", "conversation_id": "conv_1"}}
    <- {"type": "response", "id": "r1", "ok": true, "result": {...}}
    <- {"type": "response", "id": "r1", "ok": false,
        "error": {"code": "bad_request", "message": "..."}}
"""

from __future__ import annotations

import json
import time
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from typing import Any, TYPE_CHECKING

from observability.logger import log_event
from orchestrator.runtime import (
    GenerationInProgressError,
    GenerationRuntime,
    SendMessageRequest,
)
from protocol.wire import (
    WireProtocolError,
    decode_part,
    encode_conversation,
    encode_message,
)
from services.message_repository import UnknownConversationError, UnknownMessageError

from constants import DEFAULT_CONVERSATION_TITLE, PAYLOAD_PREVIEW_CHARS

if TYPE_CHECKING:
    from services.message_repository import MessageRepository


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class RequestError(Exception):
    """A request that cannot be served; becomes an error response."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


# ------------------------------------------------------------------
# Gateway result
# ------------------------------------------------------------------

@dataclass(frozen=True)
class GatewayResult:
    """
    Return value for gateway boundary methods.

    outbound_json:
        JSON messages to send back on the same connection
    """
    outbound_json: tuple[dict[str, Any], ...] = ()


Handler = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]


# ------------------------------------------------------------------
# ChatGateway
# ------------------------------------------------------------------

class ChatGateway:
    """
    Stateless request dispatcher shared by all connections.

    Every well-formed request gets exactly one response, in the order
    the connection awaits on_json_message().
    """

    def __init__(self, *, runtime: GenerationRuntime, repository: MessageRepository) -> None:
        self._runtime = runtime
        self._repository = repository
        self._handlers: dict[str, Handler] = {
            "message.send": self._send_message,
            "message.stop": self._stop_message,
            "message.delete": self._delete_message,
            "message.regenerate": self._regenerate_message,
            "conversation.create": self._create_conversation,
            "conversation.list": self._list_conversations,
            "conversation.messages": self._list_messages,
            "model.resolve": self._resolve_model,
            "title.cancel": self._cancel_title,
        }

    @property
    def methods(self) -> tuple[str, ...]:
        return tuple(self._handlers)

    async def on_json_message(self, payload: str) -> GatewayResult:
        """Route one inbound JSON request to its handler."""
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "JSON_DECODE_ERROR",
                "error": str(e),
                "payload_preview": payload[:PAYLOAD_PREVIEW_CHARS],
            })
            return GatewayResult()

        if not isinstance(data, dict) or data.get("type") != "request":
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "UNKNOWN_MESSAGE_TYPE",
                "msg_type": data.get("type") if isinstance(data, dict) else None,
            })
            return GatewayResult()

        request_id = data.get("id")
        method = data.get("method")
        params = data.get("params") or {}

        handler = self._handlers.get(method) if isinstance(method, str) else None
        if handler is None:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "UNKNOWN_REQUEST_METHOD",
                "request_id": request_id,
                "method": method,
            })
            return _error(request_id, "unknown_method", f"Unknown method: {method}")

        if not isinstance(params, dict):
            return _error(request_id, "bad_request", "params must be an object")

        try:
            result = await handler(params)
        except RequestError as exc:
            return _error(request_id, exc.code, str(exc))
        except (WireProtocolError, ValueError) as exc:
            return _error(request_id, "bad_request", str(exc))
        except UnknownConversationError as exc:
            return _error(request_id, "not_found", f"Unknown conversation: {exc.args[0]}")
        except UnknownMessageError as exc:
            return _error(request_id, "not_found", f"Unknown message: {exc.args[0]}")
        except GenerationInProgressError as exc:
            return _error(request_id, "conflict", str(exc))
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "GATEWAY_REQUEST_FAILED",
                "request_id": request_id,
                "method": method,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            return _error(request_id, "internal", "Internal error")

        return GatewayResult(outbound_json=({
            "type": "response",
            "id": request_id,
            "ok": True,
            "result": result,
        },))

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _send_message(self, params: dict[str, Any]) -> dict[str, Any]:
        attachments = params.get("attachments") or []
        if not isinstance(attachments, list):
            raise RequestError("bad_request", "attachments must be a list")

        result = await self._runtime.send_message(SendMessageRequest(
            text=_optional_str(params, "text") or "",
            conversation_id=_optional_str(params, "conversation_id"),
            attachments=tuple(decode_part(p) for p in attachments),
            model_id=_optional_str(params, "model_id"),
            reasoning_effort=_optional_str(params, "reasoning_effort"),
            request_id=_optional_str(params, "request_id"),
        ))
        return asdict(result)

    async def _stop_message(self, params: dict[str, Any]) -> dict[str, Any]:
        return {"cancelled": self._runtime.stop_generation(_required_str(params, "id"))}

    async def _delete_message(self, params: dict[str, Any]) -> dict[str, Any]:
        deleted = await self._runtime.delete_message(_required_str(params, "message_id"))
        return {"deleted": deleted}

    async def _regenerate_message(self, params: dict[str, Any]) -> dict[str, Any]:
        cleared = await self._runtime.regenerate_message(
            _required_str(params, "message_id"),
            model_id=_optional_str(params, "model_id"),
            reasoning_effort=_optional_str(params, "reasoning_effort"),
        )
        return {"message": encode_message(cleared)}

    async def _create_conversation(self, params: dict[str, Any]) -> dict[str, Any]:
        conversation = self._repository.create_conversation(
            title=_optional_str(params, "title") or DEFAULT_CONVERSATION_TITLE,
            model_id=_optional_str(params, "model_id"),
        )
        return encode_conversation(conversation)

    async def _list_conversations(self, params: dict[str, Any]) -> dict[str, Any]:
        return {
            "conversations": [
                encode_conversation(c) for c in self._repository.list_conversations()
            ]
        }

    async def _list_messages(self, params: dict[str, Any]) -> dict[str, Any]:
        conversation_id = _required_str(params, "conversation_id")
        if self._repository.get_conversation(conversation_id) is None:
            raise UnknownConversationError(conversation_id)
        return {
            "conversation_id": conversation_id,
            "messages": [
                encode_message(m) for m in self._repository.list_messages(conversation_id)
            ],
        }

    async def _resolve_model(self, params: dict[str, Any]) -> dict[str, Any]:
        result = self._runtime.resolve_model(
            explicit_model_id=_optional_str(params, "model_id"),
            conversation_id=_optional_str(params, "conversation_id"),
        )
        return {
            "model_id": result.model_config.id if result.model_config else None,
            "source": result.source.value,
            "trace": list(result.trace),
            "warnings": list(result.warnings),
        }

    async def _cancel_title(self, params: dict[str, Any]) -> dict[str, Any]:
        return {"cancelled": self._runtime.cancel_title(_required_str(params, "conversation_id"))}


# ------------------------------------------------------------------
# Envelope helpers
# ------------------------------------------------------------------

def _error(request_id: Any, code: str, message: str) -> GatewayResult:
    return GatewayResult(outbound_json=({
        "type": "response",
        "id": request_id,
        "ok": False,
        "error": {"code": code, "message": message},
    },))


def _optional_str(params: dict[str, Any], key: str) -> str | None:
    value = params.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise RequestError("bad_request", f"{key} must be a string")
    return value


def _required_str(params: dict[str, Any], key: str) -> str:
    value = _optional_str(params, key)
    if not value:
        raise RequestError("bad_request", f"{key} is required")
    return value
