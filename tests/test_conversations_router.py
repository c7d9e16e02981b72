"""Tests for conversations router."""

from uuid import uuid4


def test_list_conversations(client, setup_conversation):
    """GET /conversations returns a page of conversations."""
    r = client.get("/conversations", params={"user_id": str(setup_conversation.user_id)})
    assert r.status_code == 200
    data = r.json()
    assert data["total"] == 1
    assert data["items"][0]["id"] == str(setup_conversation.id)
    assert data["items"][0]["platform"] == "facebook"


def test_list_conversations_filters_platform(
    client, setup_conversation, setup_instagram_conversation
):
    r = client.get(
        "/conversations",
        params={"user_id": str(setup_conversation.user_id), "platform": "instagram"},
    )
    assert r.status_code == 200
    ids = [c["id"] for c in r.json()["items"]]
    assert ids == [str(setup_instagram_conversation.id)]


def test_list_conversations_rejects_unknown_platform(client):
    r = client.get(
        "/conversations", params={"user_id": str(uuid4()), "platform": "telegram"}
    )
    assert r.status_code == 422


def test_list_conversations_requires_user_id(client, setup_conversation):
    """Listing is always scoped to one user."""
    r = client.get("/conversations")
    assert r.status_code == 422


def test_list_conversations_hides_other_users(client, setup_conversation):
    r = client.get("/conversations", params={"user_id": str(uuid4())})
    assert r.status_code == 200
    assert r.json()["total"] == 0


def test_get_conversation(client, setup_conversation):
    """GET /conversations/{id} returns a conversation."""
    r = client.get(f"/conversations/{setup_conversation.id}")
    assert r.status_code == 200
    data = r.json()
    assert data["id"] == str(setup_conversation.id)
    assert data["participant_id"] == setup_conversation.participant_id


def test_get_conversation_not_found(client):
    """GET /conversations/{id} returns 404 for unknown id."""
    r = client.get(f"/conversations/{uuid4()}")
    assert r.status_code == 404


def test_list_conversation_messages(client, setup_conversation, setup_messages):
    """Messages come back in send order."""
    r = client.get(f"/conversations/{setup_conversation.id}/messages")
    assert r.status_code == 200
    data = r.json()
    assert data["total"] == 2
    assert [m["sender_type"] for m in data["items"]] == ["user", "assistant"]
    assert data["items"][0]["content"] == setup_messages[0].content


def test_list_messages_unknown_conversation(client):
    r = client.get(f"/conversations/{uuid4()}/messages")
    assert r.status_code == 404
