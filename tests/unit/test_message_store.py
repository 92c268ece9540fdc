# pylint: disable=missing-module-docstring,missing-function-docstring

import pytest

from context.message import Message, Role, TextPart
from display.message_store import IndexEntry, MessageStore


def _msg(mid: str, created: int, conv: str = "c1", text: str = "") -> Message:
    return Message(
        id=mid,
        conversation_id=conv,
        role=Role.USER,
        content=[TextPart(text or mid)],
        created_at_ms=created,
        updated_at_ms=created,
    )


def _ids(store: MessageStore, conv: str = "c1") -> list[str]:
    return [m.id for m in store.messages(conv)]


def test_in_order_adds_append():
    store = MessageStore()
    for i, ts in enumerate((1, 2, 2, 5)):
        store.add_message("c1", _msg(f"m{i}", ts))

    assert _ids(store) == ["m0", "m1", "m2", "m3"]
    assert store.index_entry("m3") == IndexEntry("c1", 3)
    assert store.validate_index() == []


def test_out_of_order_insert_keeps_sort_and_index():
    store = MessageStore()
    store.add_message("c1", _msg("a", 10))
    store.add_message("c1", _msg("c", 30))
    store.add_message("c1", _msg("b", 20))
    store.add_message("c1", _msg("b2", 20))

    assert _ids(store) == ["a", "b", "b2", "c"]
    assert store.get_message("c").id == "c"
    assert store.index_entry("c") == IndexEntry("c1", 3)
    assert store.validate_index() == []


def test_existing_id_is_replaced_not_duplicated():
    store = MessageStore()
    store.add_message("c1", _msg("a", 10, text="old"))
    store.add_message("c1", _msg("a", 10, text="new"))

    assert len(store) == 1
    assert store.get_message("a").text() == "new"


def test_replacement_with_new_timestamp_moves():
    store = MessageStore()
    store.add_message("c1", _msg("a", 10))
    store.add_message("c1", _msg("b", 20))
    store.add_message("c1", _msg("a", 30))

    assert _ids(store) == ["b", "a"]
    assert store.validate_index() == []


def test_remove_rebuilds_index():
    store = MessageStore()
    for mid, ts in (("a", 1), ("b", 2), ("c", 3)):
        store.add_message("c1", _msg(mid, ts))

    removed = store.remove_message("a")

    assert removed.id == "a"
    assert store.get_message("a") is None
    assert store.index_entry("c") == IndexEntry("c1", 1)
    assert store.remove_message("a") is None
    assert store.validate_index() == []


def test_index_integrity_under_mixed_operations():
    store = MessageStore()
    timestamps = [5, 1, 9, 3, 3, 7, 2, 8]
    for i, ts in enumerate(timestamps):
        store.add_message("c1" if i % 2 else "c2", _msg(f"m{i}", ts, conv="c1" if i % 2 else "c2"))
    for mid in ("m2", "m5", "m7"):
        store.remove_message(mid)

    assert store.validate_index() == []
    assert len(store) == len(timestamps) - 3


def test_update_message_stamps_updated_at():
    clock = iter([100, 200])
    store = MessageStore(now_ms=lambda: next(clock))
    store.add_message("c1", _msg("a", 10))

    updated = store.update_message("a", lambda m: m.content.append(TextPart("!")))

    assert updated.updated_at_ms == 100
    assert store.get_message("a").text() == "a!"
    assert store.update_message("missing", lambda m: None) is None


def test_update_message_rejects_identity_changes():
    store = MessageStore()
    store.add_message("c1", _msg("a", 10))

    def move(m: Message) -> None:
        m.created_at_ms = 1

    with pytest.raises(ValueError):
        store.update_message("a", move)


def test_ingest_merges_with_batch_winning_then_sorts():
    store = MessageStore()
    store.add_message("c1", _msg("a", 10, text="old"))
    store.add_message("c1", _msg("b", 20))

    store.ingest("c1", [_msg("a", 10, text="new"), _msg("z", 5)])

    assert _ids(store) == ["z", "a", "b"]
    assert store.get_message("a").text() == "new"
    assert store.validate_index() == []


def test_ingest_replace_drops_previous():
    store = MessageStore()
    store.add_message("c1", _msg("a", 10))

    store.ingest("c1", [_msg("b", 20)], replace=True)

    assert _ids(store) == ["b"]
    assert store.get_message("a") is None
    assert store.validate_index() == []


def test_conversation_mismatch_is_rejected():
    with pytest.raises(ValueError):
        MessageStore().add_message("c1", _msg("a", 1, conv="c2"))
