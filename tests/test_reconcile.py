"""
Tests for placeholder reconciliation.
"""

from openmessages.reconcile import (
    PLACEHOLDER_PREFIX,
    ReconciliationState,
    build_placeholder,
    conversation_state,
    is_placeholder_id,
    on_authoritative_message,
    reconcile,
)
from openmessages.schemas import Message


class TestPlaceholderIDs:
    def test_prefix(self):
        assert is_placeholder_id("tmp_12345")
        assert not is_placeholder_id("12345")
        assert not is_placeholder_id("tmpx_1")

    def test_build_placeholder(self):
        p = build_placeholder("c1", "on my way", timestamp_ms=42)

        assert p.message_id.startswith(PLACEHOLDER_PREFIX)
        assert p.conversation_id == "c1"
        assert p.body == "on my way"
        assert p.is_from_me is True
        assert p.status == "sending"
        assert p.timestamp_ms == 42

    def test_placeholder_ids_are_unique(self):
        assert build_placeholder("c1", "a").message_id != build_placeholder("c1", "a").message_id


class TestReconcile:
    def test_authoritative_message_removes_placeholders(self, store):
        placeholder = build_placeholder("c1", "hello")
        store.upsert_message(placeholder)
        assert conversation_state(store, "c1") is ReconciliationState.PLACEHOLDER_PRESENT

        confirmed = Message(message_id="server-1", conversation_id="c1", body="hello", is_from_me=True)
        store.upsert_message(confirmed)

        assert reconcile(store, "c1") >= 1
        assert store.get_message_by_id(placeholder.message_id) is None
        assert store.get_message_by_id("server-1") is not None
        assert conversation_state(store, "c1") is ReconciliationState.RECONCILED
        assert reconcile(store, "c1") == 0

    def test_all_placeholders_removed_not_just_one(self, store):
        for _ in range(3):
            store.upsert_message(build_placeholder("c1", "hello"))

        deleted = on_authoritative_message(store, Message(message_id="server-1", conversation_id="c1"))

        assert deleted == 3
        assert store.get_messages_by_conversation("c1", 10) == []

    def test_placeholder_does_not_trigger(self, store):
        first = build_placeholder("c1", "one")
        store.upsert_message(first)

        second = build_placeholder("c1", "two")
        store.upsert_message(second)

        assert on_authoritative_message(store, second) == 0
        assert store.count_tmp_messages("c1") == 2

    def test_other_conversations_untouched(self, store):
        other = build_placeholder("c2", "elsewhere")
        store.upsert_message(other)

        assert on_authoritative_message(store, Message(message_id="s1", conversation_id="c1")) == 0
        assert store.get_message_by_id(other.message_id) is not None
