"""Tests for the background processing task."""

import pytest

from app.adapters.voiceflow import SimulatedVoiceflowClient
from app.core.app_state import state
from app.main import drain_queue
from app.models.message import Message
from app.models.message_queue import MessageProcessingStatus, QueuedMessage
from app.schemas.messaging import InboundMessage, Platform
from app.services.message_queue_service import MessageQueueService
from app.tasks.process_inbound_task import (
    process_inbound_message,
    process_pending_messages,
    process_queued_message,
)


def _inbound(text):
    return InboundMessage(
        platform=Platform.FACEBOOK,
        external_conversation_id="123",
        participant_id="123",
        text=text,
    )


@pytest.mark.asyncio
async def test_task_runs_pipeline_with_process_state(
    db, monkeypatch, setup_user_id, setup_voiceflow_mapping
):
    """The task opens its own session and uses the process-wide collaborators."""
    monkeypatch.setenv("VOICEFLOW_SIMULATE", "true")

    result = await process_inbound_message(setup_user_id, _inbound("hello"))

    assert isinstance(state.engine_client, SimulatedVoiceflowClient)
    assert result is not None
    assert result.reply.text.startswith("Hi there! How can I help you today?")
    assert result.delivery.success is False  # no page connected
    assert state.config_cache.get(setup_user_id) is not None
    contents = [m.content for m in db.query(Message).order_by(Message.sent_at)]
    assert contents[0] == "hello"
    assert contents[1].endswith("(Message sent via Facebook)")


@pytest.mark.asyncio
async def test_task_returns_none_when_not_configured(db, setup_user_id):
    assert await process_inbound_message(setup_user_id, _inbound("hello")) is None
    assert db.query(Message).count() == 1


def _ledger(db, queue_id):
    rows = (
        db.query(MessageProcessingStatus)
        .filter(MessageProcessingStatus.message_queue_id == queue_id)
        .order_by(MessageProcessingStatus.id)
    )
    return [(row.stage, row.status) for row in rows]


@pytest.mark.asyncio
async def test_queued_message_records_each_stage(
    db, monkeypatch, setup_user_id, setup_voiceflow_mapping
):
    monkeypatch.setenv("VOICEFLOW_SIMULATE", "true")
    item = MessageQueueService(db).enqueue(setup_user_id, _inbound("hello"))

    result = await process_queued_message(item.id)

    assert result is not None
    db.expire_all()
    item = db.get(QueuedMessage, item.id)
    assert item.status == "completed"
    assert item.retry_count == 1
    assert item.completed_at is not None
    # no page connected, so nothing is delivered
    assert _ledger(db, item.id) == [
        ("received", "completed"),
        ("conversation_resolved", "completed"),
        ("user_message_stored", "completed"),
        ("rate_checked", "completed"),
        ("config_resolved", "completed"),
        ("engine_reply_obtained", "completed"),
        ("assistant_message_stored", "completed"),
    ]


@pytest.mark.asyncio
async def test_queued_message_failure_is_final_after_storing(db, setup_user_id):
    item = MessageQueueService(db).enqueue(setup_user_id, _inbound("hello"))

    assert await process_queued_message(item.id) is None

    db.expire_all()
    item = db.get(QueuedMessage, item.id)
    assert item.status == "failed"
    assert "not_configured" in item.error
    assert _ledger(db, item.id)[-1][1] == "failed"
    assert db.query(Message).count() == 1


@pytest.mark.asyncio
async def test_queued_message_runs_once(db, setup_user_id):
    """A second run of the same item finds it already claimed."""
    queue = MessageQueueService(db)
    item = queue.enqueue(setup_user_id, _inbound("hello"))
    queue.claim(item.id)

    assert await process_queued_message(item.id) is None
    assert db.query(Message).count() == 0


@pytest.mark.asyncio
async def test_pending_messages_drained_in_batches(
    db, monkeypatch, setup_user_id, setup_voiceflow_mapping
):
    monkeypatch.setenv("VOICEFLOW_SIMULATE", "true")
    queue = MessageQueueService(db)
    for text in ("one", "two", "three"):
        queue.enqueue(setup_user_id, _inbound(text))

    assert await process_pending_messages(batch_size=2) == 2
    assert await process_pending_messages(batch_size=2) == 1
    assert await process_pending_messages(batch_size=2) == 0

    db.expire_all()
    statuses = {item.status for item in db.query(QueuedMessage)}
    assert statuses == {"completed"}
    user_turns = db.query(Message).filter(Message.sender_type == "user")
    assert sorted(m.content for m in user_turns) == ["one", "three", "two"]


@pytest.mark.asyncio
async def test_startup_drain_empties_the_queue(db, setup_user_id):
    """Messages left pending by a previous process are settled before serving."""
    queue = MessageQueueService(db)
    for text in ("one", "two"):
        queue.enqueue(setup_user_id, _inbound(text))

    assert await drain_queue() == 2

    db.expire_all()
    assert {item.status for item in db.query(QueuedMessage)} == {"failed"}
