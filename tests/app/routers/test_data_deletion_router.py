"""Tests for Meta's data-deletion callback."""

from datetime import datetime, timezone

import pytest

from app.models.conversation import Conversation
from app.models.data_deletion import DataDeletionRequest
from app.models.message import Message
from app.models.message_queue import MessageProcessingStatus, QueuedMessage
from app.schemas.messaging import InboundMessage, Platform
from app.services.message_queue_service import MessageQueueService
from tests.fixtures.meta_fixtures import signed_request

SECRET = "app-secret"


@pytest.fixture
def app_secret(monkeypatch):
    monkeypatch.setenv("META_APP_SECRET", SECRET)
    monkeypatch.setenv("PUBLIC_BASE_URL", "https://relay.example.com/")
    return SECRET


def _request(user_id="4242", **extra):
    payload = {"algorithm": "HMAC-SHA256", "issued_at": 1767225600, **extra}
    if user_id is not None:
        payload["user_id"] = user_id
    return signed_request(payload, SECRET)


@pytest.fixture
def participant_data(db, setup_conversation, setup_messages, setup_user_id):
    """A queued message from the conversation's participant."""
    inbound = InboundMessage(
        platform=Platform.FACEBOOK,
        external_conversation_id=setup_conversation.participant_id,
        participant_id=setup_conversation.participant_id,
        text="queued",
    )
    MessageQueueService(db).enqueue(setup_user_id, inbound)
    return setup_conversation.participant_id


def test_deletion_erases_participant_data(
    client, db, app_secret, participant_data, setup_instagram_conversation
):
    r = client.post(
        "/data-deletion", data={"signed_request": _request(participant_data)}
    )
    assert r.status_code == 200
    body = r.json()
    code = body["confirmation_code"]
    assert code.startswith("DEL") and len(code) == 11
    assert body["url"] == f"https://relay.example.com/data-deletion/{code}"

    db.expire_all()
    remaining = db.query(Conversation).all()
    assert [c.id for c in remaining] == [setup_instagram_conversation.id]
    assert db.query(Message).count() == 0
    assert db.query(QueuedMessage).count() == 0
    assert db.query(MessageProcessingStatus).count() == 0

    request = db.query(DataDeletionRequest).one()
    assert request.facebook_user_id == participant_data
    assert request.status == "completed"
    assert request.conversations_deleted == 1
    assert request.messages_deleted == 2
    assert request.queued_messages_deleted == 1


def test_deletion_status_lookup(client, app_secret, participant_data):
    code = client.post(
        "/data-deletion", data={"signed_request": _request(participant_data)}
    ).json()["confirmation_code"]

    r = client.get(f"/data-deletion/{code}")
    assert r.status_code == 200
    data = r.json()
    assert data["confirmation_code"] == code
    assert data["status"] == "completed"
    assert data["messages_deleted"] == 2
    assert data["completed_at"] is not None


def test_deletion_for_unknown_user_still_confirms(client, db, app_secret):
    r = client.post("/data-deletion", data={"signed_request": _request("nobody")})
    assert r.status_code == 200
    request = db.query(DataDeletionRequest).one()
    assert request.status == "completed"
    assert request.conversations_deleted == 0


def test_deletion_status_unknown_code(client):
    assert client.get("/data-deletion/DELMISSING").status_code == 404


def test_deletion_requires_signed_request(client, app_secret):
    assert client.post("/data-deletion", data={}).status_code == 400


def test_deletion_without_app_secret(client, db):
    r = client.post("/data-deletion", data={"signed_request": _request()})
    assert r.status_code == 500
    assert db.query(DataDeletionRequest).count() == 0


def test_deletion_rejects_bad_signature(client, db, app_secret, participant_data):
    token = signed_request(
        {"algorithm": "HMAC-SHA256", "user_id": participant_data}, "not-our-secret"
    )
    r = client.post("/data-deletion", data={"signed_request": token})
    assert r.status_code == 403
    assert db.query(Conversation).count() == 1
    assert db.query(DataDeletionRequest).count() == 0


def test_deletion_rejects_malformed_request(client, app_secret):
    r = client.post("/data-deletion", data={"signed_request": "garbage"})
    assert r.status_code == 400


def test_deletion_requires_user_id(client, db, app_secret):
    r = client.post("/data-deletion", data={"signed_request": _request(user_id=None)})
    assert r.status_code == 400
    assert db.query(DataDeletionRequest).count() == 0
