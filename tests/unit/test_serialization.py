# pylint: disable=missing-module-docstring,missing-function-docstring

from context.message import (
    CitationPart,
    ImagePart,
    Message,
    Role,
    TemporaryFilePart,
    TextPart,
    ToolCallPart,
)
from context.serialization import to_provider_content, to_provider_messages

from constants import PLACEHOLDER_TEXT


def _msg(role: Role, *parts) -> Message:
    return Message(
        id="m",
        conversation_id="c",
        role=role,
        content=list(parts),
        created_at_ms=0,
        updated_at_ms=0,
    )


def test_single_text_part_is_plain_string():
    assert to_provider_content([TextPart("Hi")]) == "Hi"


def test_placeholder_is_stripped():
    assert to_provider_content([TextPart(PLACEHOLDER_TEXT + "Hi")]) == "Hi"


def test_multiple_text_parts_join_with_blank_line():
    assert to_provider_content([TextPart("a"), TextPart(""), TextPart("b")]) == "a\n\nb"


def test_image_becomes_native_part_list():
    content = to_provider_content([TextPart("look"), ImagePart("QUJD", media_type="image/jpeg")])

    assert content == [
        {"type": "text", "text": "look"},
        {"type": "image_url", "image_url": {"url": "data:image/jpeg;base64,QUJD"}},
    ]


def test_image_urls_pass_through():
    content = to_provider_content([ImagePart("https://example.com/cat.png")])

    assert content == [{"type": "image_url", "image_url": {"url": "https://example.com/cat.png"}}]


def test_unsupported_kinds_become_markers_and_collapse_to_string():
    assert to_provider_content([TemporaryFilePart("notes.txt", "hello")]) == (
        "[File: notes.txt]\nhello\n[End of file]"
    )
    assert to_provider_content([CitationPart("doc.pdf", "quote")]) == "[Citation: doc.pdf]\nquote"
    assert to_provider_content([ToolCallPart("search", {"q": "x"})]) == '[Tool call: search({"q": "x"})]'


def test_mixed_markers_keep_order():
    content = to_provider_content([
        TextPart("first"),
        CitationPart("a.md", "alpha"),
        TextPart("last"),
    ])

    assert [p["text"] for p in content] == ["first", "[Citation: a.md]\nalpha", "last"]


def test_messages_with_system_prompt():
    wire = to_provider_messages(
        [_msg(Role.USER, TextPart("Hi")), _msg(Role.ASSISTANT, TextPart("Hello"))],
        system_prompt="Be brief.",
    )

    assert wire == [
        {"role": "system", "content": "Be brief."},
        {"role": "user", "content": "Hi"},
        {"role": "assistant", "content": "Hello"},
    ]
