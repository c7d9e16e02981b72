"""Tests for the inbound queue routes."""

from uuid import uuid4

import pytest

from app.commands.process_inbound_message_command import ProcessingStage
from app.schemas.messaging import InboundMessage, Platform
from app.services.message_queue_service import MessageQueueService


@pytest.fixture
def queued(db, setup_user_id):
    """One completed and one pending message for the owning user."""
    queue = MessageQueueService(db)
    items = []
    for text in ("first", "second"):
        inbound = InboundMessage(
            platform=Platform.FACEBOOK,
            external_conversation_id="123",
            participant_id="123",
            text=text,
        )
        items.append(queue.enqueue(setup_user_id, inbound))
    queue.claim(items[0].id)
    queue.record_stage(items[0].id, ProcessingStage.CONVERSATION_RESOLVED)
    queue.complete(items[0])
    return items


def test_list_queue_requires_user_id(client):
    assert client.get("/queue").status_code == 422


def test_list_queue(client, queued, setup_user_id):
    r = client.get("/queue", params={"user_id": str(setup_user_id)})
    assert r.status_code == 200
    data = r.json()
    assert data["total"] == 2
    assert {item["status"] for item in data["items"]} == {"completed", "pending"}
    assert {item["message_content"]["text"] for item in data["items"]} == {
        "first",
        "second",
    }


def test_list_queue_filters_status(client, queued, setup_user_id):
    r = client.get(
        "/queue", params={"user_id": str(setup_user_id), "status": "pending"}
    )
    assert r.status_code == 200
    assert [item["id"] for item in r.json()["items"]] == [str(queued[1].id)]


def test_list_queue_rejects_unknown_status(client, setup_user_id):
    r = client.get("/queue", params={"user_id": str(setup_user_id), "status": "lost"})
    assert r.status_code == 422


def test_list_queue_hides_other_users(client, queued):
    r = client.get("/queue", params={"user_id": str(uuid4())})
    assert r.json()["total"] == 0


def test_get_queued_message_with_stages(client, queued):
    r = client.get(f"/queue/{queued[0].id}")
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "completed"
    assert data["retry_count"] == 1
    assert [s["stage"] for s in data["stages"]] == [
        "received",
        "conversation_resolved",
    ]


def test_get_queued_message_not_found(client):
    assert client.get(f"/queue/{uuid4()}").status_code == 404


def test_process_queue(client, monkeypatch):
    calls = []

    async def fake_drain(batch_size):
        calls.append(batch_size)
        return 2

    monkeypatch.setattr("app.routers.queue_router.process_pending_messages", fake_drain)
    r = client.post("/queue/process", params={"batch_size": 4})
    assert r.status_code == 200
    assert r.json() == {"processed": 2}
    assert calls == [4]


def test_process_queue_rejects_bad_batch_size(client):
    assert client.post("/queue/process", params={"batch_size": 0}).status_code == 422
