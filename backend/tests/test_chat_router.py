"""
API tests for the applications and chat routers
"""
import uuid

import pytest
from fastapi.testclient import TestClient
from fastapi import WebSocketDisconnect

from campusnest.database import get_db, get_session_factory
from campusnest.dependencies import get_live_channel
from campusnest.services.live_channel import InMemoryLiveChannel
from main import app

STUDENT = {"X-User-Id": "student-1"}
OWNER = {"X-User-Id": "owner-1"}
OUTSIDER = {"X-User-Id": "outsider"}


@pytest.fixture
def client(session_factory):
    channel = InMemoryLiveChannel()

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_live_channel] = lambda: channel
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def messages_url(conversation_id):
    return f"/api/conversations/{conversation_id}/messages"


class TestApplications:
    """Applying to listings"""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_apply_and_list_for_owner(self, client, seeded):
        response = client.post(
            "/api/applications",
            json={"listing_id": "listing-2", "owner_id": "owner-1", "message": "I'd love to visit"},
            headers=STUDENT,
        )

        assert response.status_code == 201
        body = response.json()
        assert body["applicant_id"] == "student-1"
        assert body["status"] == "pending"

        listed = client.get("/api/listings/listing-2/applications", headers=OWNER)
        assert [a["id"] for a in listed.json()] == [body["id"]]

        hidden = client.get("/api/listings/listing-2/applications", headers=STUDENT)
        assert hidden.json() == []

    def test_duplicate_application_conflicts(self, client, seeded):
        response = client.post(
            "/api/applications",
            json={"listing_id": "listing-1", "owner_id": "owner-1"},
            headers=STUDENT,
        )

        assert response.status_code == 409

    def test_owner_cannot_apply_to_own_listing(self, client, seeded):
        response = client.post(
            "/api/applications",
            json={"listing_id": "listing-3", "owner_id": "owner-1"},
            headers=OWNER,
        )

        assert response.status_code == 400

    def test_unknown_owner(self, client, seeded):
        response = client.post(
            "/api/applications",
            json={"listing_id": "listing-3", "owner_id": "nobody"},
            headers=STUDENT,
        )

        assert response.status_code == 404

    def test_missing_identity(self, client, seeded):
        response = client.post("/api/applications", json={"listing_id": "l", "owner_id": "owner-1"})

        assert response.status_code == 401


class TestConversationMessages:
    """History and send over HTTP"""

    def test_empty_conversation_shows_initial_message(self, client, seeded):
        response = client.get(messages_url(seeded["application_id"]), headers=STUDENT)

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ready"
        assert body["initial_message"] == "Hi, is the room still available?"
        assert body["messages"] == []

    def test_send_then_load(self, client, seeded):
        url = messages_url(seeded["application_id"])

        sent = client.post(url, json={"content": "Is the room furnished?"}, headers=STUDENT)
        assert sent.status_code == 201
        assert sent.json()["is_own_message"] is True

        client.post(url, json={"content": "Yes, fully furnished."}, headers=OWNER)

        history = client.get(url, headers=OWNER).json()["messages"]
        assert [m["content"] for m in history] == ["Is the room furnished?", "Yes, fully furnished."]
        assert history[0]["sender_display"] == "student@uni.edu"
        assert history[0]["is_own_message"] is False
        assert history[1]["is_own_message"] is True

    def test_blank_message_rejected(self, client, seeded):
        response = client.post(messages_url(seeded["application_id"]), json={"content": "   "}, headers=STUDENT)

        assert response.status_code == 400

    def test_oversized_message_rejected_by_store(self, client, seeded):
        response = client.post(
            messages_url(seeded["application_id"]),
            json={"content": "x" * 5000},
            headers=STUDENT,
        )

        assert response.status_code == 422

    def test_outsider_is_forbidden(self, client, seeded):
        response = client.get(messages_url(seeded["application_id"]), headers=OUTSIDER)

        assert response.status_code == 403

    def test_unknown_conversation(self, client, seeded):
        response = client.get(messages_url(uuid.uuid4()), headers=STUDENT)

        assert response.status_code == 404


class TestLiveFeed:
    """WebSocket live feed"""

    def test_snapshot_then_own_send(self, client, seeded):
        conversation_id = seeded["application_id"]
        client.post(messages_url(conversation_id), json={"content": "Hello!"}, headers=OWNER)

        with client.websocket_connect(f"/api/conversations/{conversation_id}/live?user_id=student-1") as ws:
            snapshot = ws.receive_json()
            assert snapshot["type"] == "snapshot"
            assert [m["content"] for m in snapshot["messages"]] == ["Hello!"]

            ws.send_json({"content": "Hi! When can I visit?"})
            frame = ws.receive_json()

        assert frame["type"] == "message"
        assert frame["message"]["content"] == "Hi! When can I visit?"
        assert frame["message"]["is_own_message"] is True

    def test_other_participant_message_is_pushed(self, client, seeded):
        conversation_id = seeded["application_id"]

        with client.websocket_connect(f"/api/conversations/{conversation_id}/live?user_id=student-1") as ws:
            assert ws.receive_json()["messages"] == []

            response = client.post(messages_url(conversation_id), json={"content": "Saturday works"}, headers=OWNER)
            assert response.status_code == 201

            frame = ws.receive_json()

        assert frame["type"] == "message"
        assert frame["message"]["content"] == "Saturday works"
        assert frame["message"]["sender_id"] == "owner-1"
        assert frame["message"]["is_own_message"] is False

    def test_outsider_cannot_connect(self, client, seeded):
        conversation_id = seeded["application_id"]

        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect(f"/api/conversations/{conversation_id}/live?user_id=outsider"):
                pass
