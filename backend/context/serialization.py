"""
Conversation serialization for provider consumption.

Responsibilities:
- Convert an optional system prompt + stored messages into the
  OpenAI-compatible chat message format.

Non-responsibilities:
- No history selection (caller decides which messages are context)
- No logging
- No parameter handling

Rules:
- A message whose content is a single non-empty text part becomes a
  plain string.
- A message with any non-text part becomes an ordered list of
  provider-native parts; kinds the provider cannot take natively are
  rendered as textual markers.
- If that list collapses to a single text part it becomes a string again.
- An all-text message with several parts is joined with blank lines.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Any

from context.message import (
    CitationPart,
    ContentPart,
    ImagePart,
    Message,
    TemporaryFilePart,
    TextPart,
    ToolCallPart,
)
from context.text import strip_placeholder


def to_provider_messages(
    messages: Iterable[Message],
    *,
    system_prompt: str | None = None,
) -> list[dict[str, Any]]:
    """
    Serialize messages into provider message format.

    Output format:
    [
        {"role": "system", "content": "..."},
        {"role": "user", "content": "..." | [{"type": "text", ...}, ...]},
        {"role": "assistant", "content": "..."},
        ...
    ]
    """
    wire: list[dict[str, Any]] = []

    if system_prompt:
        wire.append({"role": "system", "content": system_prompt})

    for message in messages:
        wire.append({
            "role": message.role.value,
            "content": to_provider_content(message.content),
        })

    return wire


def to_provider_content(parts: list[ContentPart]) -> str | list[dict[str, Any]]:
    """Convert one message's content parts."""
    if len(parts) == 1 and isinstance(parts[0], TextPart):
        return strip_placeholder(parts[0].text)

    if any(not isinstance(p, TextPart) for p in parts):
        native = [n for n in (_to_native_part(p) for p in parts) if n is not None]
        if len(native) == 1 and native[0]["type"] == "text":
            return native[0]["text"]
        return native

    texts = [strip_placeholder(p.text) for p in parts if isinstance(p, TextPart)]
    return "\n\n".join(t for t in texts if t)


# -----------------------------------------------------------------------------
# Part conversion
# -----------------------------------------------------------------------------

def _to_native_part(part: ContentPart) -> dict[str, Any] | None:
    if isinstance(part, TextPart):
        text = strip_placeholder(part.text)
        if not text:
            return None
        return {"type": "text", "text": text}

    if isinstance(part, ImagePart):
        return {"type": "image_url", "image_url": {"url": _image_url(part)}}

    if isinstance(part, TemporaryFilePart):
        return {
            "type": "text",
            "text": f"[File: {part.name}]\n{part.content}\n[End of file]",
        }

    if isinstance(part, CitationPart):
        return {
            "type": "text",
            "text": f"[Citation: {part.filename}]\n{part.content}",
        }

    if isinstance(part, ToolCallPart):
        args = json.dumps(part.arguments, ensure_ascii=False, sort_keys=True)
        return {"type": "text", "text": f"[Tool call: {part.tool_name}({args})]"}

    return None


def _image_url(part: ImagePart) -> str:
    image = part.image
    if image.startswith(("http://", "https://", "data:")):
        return image
    media_type = part.media_type or "image/png"
    return f"data:{media_type};base64,{image}"
