"""
JSON wire codec for the message channel.

Event envelope (server -> client):

    {"type": "event", "event": {"event_type": "TEXT_CHUNK", "ts_ms": 1,
                                "message_id": "msg_1", "text": "He"}}

Messages travel as:

    {"id": ..., "conversation_id": ..., "role": "assistant",
     "content": [{"type": "text", "text": "Hello"}],
     "reasoning": null, "created_at_ms": ..., "updated_at_ms": ...,
     "model_id": null}

Usage example:

    payload = encode_event(event)
    event = decode_event(payload)

Decoding validates shape and raises WireProtocolError subclasses; a
payload that fails to decode must be dropped, never partially applied.
"""

from __future__ import annotations

from typing import Any, Mapping

from context.message import (
    CitationPart,
    ContentPart,
    Conversation,
    ImagePart,
    Message,
    PartType,
    Role,
    TemporaryFilePart,
    TextPart,
    ToolCallPart,
)
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


# -------------------------
# Exceptions
# -------------------------

class WireProtocolError(Exception):
    """Base class for wire protocol errors."""


class UnknownEventType(WireProtocolError):
    """
    Raised when an event payload names an event_type this codec does not
    know. The sender and receiver disagree on the protocol version.
    """


class MalformedPayload(WireProtocolError):
    """
    Raised when a payload is missing a required field or a field has the
    wrong type. The payload is unsafe to apply and must be dropped.
    """


# =============================================================================
# Content parts
# =============================================================================

def encode_part(part: ContentPart) -> dict[str, Any]:
    if isinstance(part, TextPart):
        return {"type": PartType.TEXT.value, "text": part.text}
    if isinstance(part, ImagePart):
        return {"type": PartType.IMAGE.value, "image": part.image, "media_type": part.media_type}
    if isinstance(part, CitationPart):
        return {
            "type": PartType.CITATION.value,
            "filename": part.filename,
            "content": part.content,
            "source_id": part.source_id,
        }
    if isinstance(part, ToolCallPart):
        return {
            "type": PartType.TOOL_CALL.value,
            "tool_name": part.tool_name,
            "arguments": dict(part.arguments),
            "tool_call_id": part.tool_call_id,
        }
    return {
        "type": PartType.TEMPORARY_FILE.value,
        "name": part.name,
        "content": part.content,
        "media_type": part.media_type,
    }


def decode_part(data: Mapping[str, Any]) -> ContentPart:
    try:
        part_type = PartType(data["type"])
        if part_type is PartType.TEXT:
            return TextPart(_str(data, "text"))
        if part_type is PartType.IMAGE:
            return ImagePart(_str(data, "image"), data.get("media_type"))
        if part_type is PartType.CITATION:
            return CitationPart(_str(data, "filename"), _str(data, "content"), data.get("source_id"))
        if part_type is PartType.TOOL_CALL:
            arguments = data.get("arguments") or {}
            if not isinstance(arguments, dict):
                raise MalformedPayload("tool-call arguments must be an object")
            return ToolCallPart(_str(data, "tool_name"), arguments, data.get("tool_call_id"))
        return TemporaryFilePart(_str(data, "name"), _str(data, "content"), data.get("media_type"))
    except (KeyError, ValueError, TypeError) as exc:
        raise MalformedPayload(f"invalid content part: {exc}") from exc


# =============================================================================
# Messages / conversations
# =============================================================================

def encode_message(message: Message) -> dict[str, Any]:
    return {
        "id": message.id,
        "conversation_id": message.conversation_id,
        "role": message.role.value,
        "content": [encode_part(p) for p in message.content],
        "reasoning": message.reasoning,
        "created_at_ms": message.created_at_ms,
        "updated_at_ms": message.updated_at_ms,
        "model_id": message.model_id,
    }


def decode_message(data: Mapping[str, Any]) -> Message:
    try:
        content = data["content"]
        if not isinstance(content, list):
            raise MalformedPayload("message content must be a list")
        return Message(
            id=_str(data, "id"),
            conversation_id=_str(data, "conversation_id"),
            role=Role(data["role"]),
            content=[decode_part(p) for p in content],
            created_at_ms=int(data["created_at_ms"]),
            updated_at_ms=int(data.get("updated_at_ms", data["created_at_ms"])),
            reasoning=data.get("reasoning"),
            model_id=data.get("model_id"),
        )
    except (KeyError, ValueError, TypeError) as exc:
        raise MalformedPayload(f"invalid message: {exc}") from exc


def encode_conversation(conversation: Conversation) -> dict[str, Any]:
    return {
        "id": conversation.id,
        "title": conversation.title,
        "model_id": conversation.model_id,
        "created_at_ms": conversation.created_at_ms,
        "updated_at_ms": conversation.updated_at_ms,
    }


# =============================================================================
# Events
# =============================================================================

def encode_event(event: Event) -> dict[str, Any]:
    """Encode any event into a JSON-compatible dict."""
    payload: dict[str, Any] = {
        "event_type": event.event_type.value,
        "ts_ms": event.ts_ms,
    }

    message_id = getattr(event, "message_id", None)
    if message_id is not None:
        payload["message_id"] = message_id

    if isinstance(event, (ReasoningChunk, TextChunk)):
        payload["text"] = event.text
    elif isinstance(event, (Start, End, Cancelled, MessageAdded)):
        payload["message"] = encode_message(event.message)
    elif isinstance(event, Error):
        payload["code"] = event.code.value
        payload["reason"] = event.reason
        payload["message"] = encode_message(event.message) if event.message else None
    elif isinstance(event, MessageRemoved):
        payload["conversation_id"] = event.conversation_id
    elif isinstance(event, TitleGenerated):
        payload["conversation_id"] = event.conversation_id
        payload["title"] = event.title

    return payload


def decode_event(data: Mapping[str, Any]) -> Event:
    """
    Decode an event payload.

    Raises:
        UnknownEventType, MalformedPayload
    """
    try:
        event_type = EventType(data["event_type"])
    except KeyError as exc:
        raise MalformedPayload("missing event_type") from exc
    except ValueError as exc:
        raise UnknownEventType(str(data.get("event_type"))) from exc

    try:
        ts_ms = int(data["ts_ms"])
        base: dict[str, Any] = {"event_type": event_type, "ts_ms": ts_ms}

        if event_type is EventType.MESSAGE_ADDED:
            return MessageAdded(**base, message=decode_message(data["message"]))
        if event_type is EventType.MESSAGE_REMOVED:
            return MessageRemoved(
                **base,
                conversation_id=_str(data, "conversation_id"),
                message_id=_str(data, "message_id"),
            )
        if event_type is EventType.TITLE_GENERATED:
            return TitleGenerated(
                **base,
                conversation_id=_str(data, "conversation_id"),
                title=_str(data, "title"),
            )

        base["message_id"] = _str(data, "message_id")

        if event_type is EventType.START:
            return Start(**base, message=decode_message(data["message"]))
        if event_type is EventType.REASONING_START:
            return ReasoningStart(**base)
        if event_type is EventType.REASONING_CHUNK:
            return ReasoningChunk(**base, text=_str(data, "text"))
        if event_type is EventType.REASONING_END:
            return ReasoningEnd(**base)
        if event_type is EventType.TEXT_START:
            return TextStart(**base)
        if event_type is EventType.TEXT_CHUNK:
            return TextChunk(**base, text=_str(data, "text"))
        if event_type is EventType.TEXT_END:
            return TextEnd(**base)
        if event_type is EventType.END:
            return End(**base, message=decode_message(data["message"]))
        if event_type is EventType.CANCELLED:
            return Cancelled(**base, message=decode_message(data["message"]))

        message = data.get("message")
        return Error(
            **base,
            code=ErrorCode(data["code"]),
            reason=_str(data, "reason"),
            message=decode_message(message) if message else None,
        )
    except (KeyError, ValueError, TypeError) as exc:
        raise MalformedPayload(f"invalid {event_type.value} payload: {exc}") from exc


# =============================================================================
# Helpers
# =============================================================================

def _str(data: Mapping[str, Any], key: str) -> str:
    value = data[key]
    if not isinstance(value, str):
        raise MalformedPayload(f"{key} must be a string")
    return value
