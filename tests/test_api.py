"""
Tests for the HTTP API.

Tests cover:
- Health and status endpoints
- Conversation listing, lookup and messages
- Message filters, point lookup and search
- Contacts and drafts
- Response shape: derived media fields, omitted empty fields, no decryption key
- Storage errors mapped to 500
"""

import pytest
from sqlalchemy import text

from openmessages.schemas import Contact, Conversation, Message, Participant, Reaction


@pytest.fixture
def seeded_client(client, store):
    """Client with pre-seeded conversations, messages and contacts."""
    store.upsert_conversation(Conversation(
        conversation_id="c1", name="Alice", last_message_ts=3000,
        participants=[Participant(name="Alice", number="+15551234567")],
    ))
    store.upsert_conversation(Conversation(conversation_id="c2", name="Bob", last_message_ts=5000))

    messages = [
        Message(message_id="m1", conversation_id="c1", sender_number="+15551234567",
                body="Hello world", timestamp_ms=1000),
        Message(message_id="m2", conversation_id="c1", sender_number="+15551234567",
                body="", timestamp_ms=2000, media_id="mid-1", mime_type="audio/ogg",
                decryption_key="deadbeef"),
        Message(message_id="m3", conversation_id="c2", sender_number="+15557654321",
                body="Hello there", timestamp_ms=3000,
                reactions=[Reaction(emoji="👍", count=2)], reply_to_id="m1"),
    ]
    for m in messages:
        store.upsert_message(m)

    store.upsert_contact(Contact(contact_id="p1", name="Alice", number="+15551234567"))
    store.upsert_contact(Contact(contact_id="p2", name="Bob", number="+15557654321"))
    return client


class TestHealth:
    def test_live(self, client):
        response = client.get("/health/live")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "reason": None}

    def test_ready(self, client):
        response = client.get("/health/ready")
        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    def test_not_ready_without_schema(self, client, store):
        with store.engine.begin() as conn:
            conn.execute(text("DROP TABLE drafts"))

        response = client.get("/health/ready")
        assert response.status_code == 503
        assert response.json()["status"] == "not_ready"

    def test_request_id_header(self, client):
        response = client.get("/health/live")
        assert "x-request-id" in response.headers


class TestStatus:
    def test_status_reports_stats(self, seeded_client):
        response = seeded_client.get("/api/status")

        assert response.status_code == 200
        data = response.json()
        assert data["connected"] is False
        assert data["stats"] == {"conversations": 2, "messages": 3, "contacts": 2, "drafts": 0}


class TestConversations:
    def test_list_ordered_by_recency(self, seeded_client):
        response = seeded_client.get("/api/conversations")

        assert response.status_code == 200
        assert [c["conversation_id"] for c in response.json()] == ["c2", "c1"]

    def test_list_limit(self, seeded_client):
        response = seeded_client.get("/api/conversations", params={"limit": 1})
        assert [c["conversation_id"] for c in response.json()] == ["c2"]

    def test_list_empty(self, client):
        response = client.get("/api/conversations")
        assert response.status_code == 200
        assert response.json() == []

    def test_get_one(self, seeded_client):
        response = seeded_client.get("/api/conversations/c1")

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Alice"
        assert data["participants"] == [{"name": "Alice", "number": "+15551234567", "is_me": False}]

    def test_get_missing(self, seeded_client):
        response = seeded_client.get("/api/conversations/nope")
        assert response.status_code == 404
        assert response.json() == {"detail": "conversation not found"}

    def test_conversation_messages(self, seeded_client):
        response = seeded_client.get("/api/conversations/c1/messages")

        assert response.status_code == 200
        assert [m["message_id"] for m in response.json()] == ["m2", "m1"]


class TestMessages:
    def test_filters(self, seeded_client):
        response = seeded_client.get("/api/messages", params={
            "phone_number": "+15551234567", "after_ms": 1500, "before_ms": 2500,
        })

        assert response.status_code == 200
        assert [m["message_id"] for m in response.json()] == ["m2"]

    def test_no_filters(self, seeded_client):
        response = seeded_client.get("/api/messages", params={"limit": 2})
        assert [m["message_id"] for m in response.json()] == ["m3", "m2"]

    def test_unknown_number_is_empty(self, seeded_client):
        response = seeded_client.get("/api/messages", params={"phone_number": "+19999999999"})
        assert response.status_code == 200
        assert response.json() == []

    def test_get_message_with_media(self, seeded_client):
        response = seeded_client.get("/api/messages/m2")

        assert response.status_code == 200
        data = response.json()
        assert data["media_id"] == "mid-1"
        assert data["mime_type"] == "audio/ogg"
        assert data["media_extension"] == ".ogg"
        assert data["display_body"] == "[voice message, message_id: m2]"
        assert "decryption_key" not in data
        assert "reactions" not in data
        assert "reply_to_id" not in data

    def test_get_message_with_reactions_and_reply(self, seeded_client):
        data = seeded_client.get("/api/messages/m3").json()

        assert data["reactions"] == [{"emoji": "👍", "count": 2}]
        assert data["reply_to_id"] == "m1"
        assert data["display_body"] == "Hello there"
        assert "media_id" not in data

    def test_get_missing_message(self, seeded_client):
        response = seeded_client.get("/api/messages/nope")
        assert response.status_code == 404

    def test_invalid_limit(self, seeded_client):
        response = seeded_client.get("/api/messages", params={"limit": 0})
        assert response.status_code == 422


class TestSearch:
    def test_search(self, seeded_client):
        response = seeded_client.get("/api/search", params={"q": "hello"})

        assert response.status_code == 200
        assert [m["message_id"] for m in response.json()] == ["m3", "m1"]

    def test_search_with_phone(self, seeded_client):
        response = seeded_client.get("/api/search", params={"q": "hello", "phone_number": "+15551234567"})
        assert [m["message_id"] for m in response.json()] == ["m1"]

    def test_query_required(self, seeded_client):
        response = seeded_client.get("/api/search")
        assert response.status_code == 422


class TestContacts:
    def test_list_all(self, seeded_client):
        response = seeded_client.get("/api/contacts")
        assert [c["name"] for c in response.json()] == ["Alice", "Bob"]

    def test_query(self, seeded_client):
        response = seeded_client.get("/api/contacts", params={"q": "7654"})
        assert [c["contact_id"] for c in response.json()] == ["p2"]


class TestDrafts:
    def test_create_and_list(self, seeded_client):
        response = seeded_client.post("/api/drafts", json={"conversation_id": "c1", "body": "see you"})

        assert response.status_code == 201
        draft = response.json()
        assert draft["conversation_id"] == "c1"
        assert draft["body"] == "see you"
        assert draft["draft_id"]

        drafts = seeded_client.get("/api/conversations/c1/drafts").json()
        assert [d["draft_id"] for d in drafts] == [draft["draft_id"]]

    def test_empty_body_rejected(self, seeded_client):
        response = seeded_client.post("/api/drafts", json={"conversation_id": "c1", "body": ""})
        assert response.status_code == 422


class TestErrors:
    def test_storage_error_returns_500(self, seeded_client, store):
        with store.engine.begin() as conn:
            conn.execute(text("DROP TABLE messages"))

        response = seeded_client.get("/api/messages/m1")

        assert response.status_code == 500
        data = response.json()
        assert data["detail"].startswith("storage error")
        assert data["request_id"] == response.headers["x-request-id"]


class TestMetrics:
    def test_metrics_exposed(self, seeded_client):
        seeded_client.get("/api/conversations")
        response = seeded_client.get("/metrics")

        assert response.status_code == 200
        assert "http_requests_total" in response.text
