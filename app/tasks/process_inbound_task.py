"""
Background tasks running inbound messages through the relay pipeline.

Webhook deliveries are queued durably first; process_queued_message runs one
queued item, process_pending_messages drains whatever is left (on startup or
from POST /queue/process). process_inbound_message runs an unqueued message
directly and is only used when the queue itself could not be written.
"""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.commands.process_inbound_message_command import (
    ProcessingResult,
    ProcessingStage,
    ProcessInboundMessageCommand,
    StageListener,
)
from app.config import get_settings
from app.core.app_state import state
from app.db import db_session
from app.infra.logging_config import get_logger
from app.models.message_queue import QueuedMessage
from app.schemas.messaging import InboundMessage
from app.services.message_queue_service import MessageQueueService

logger = get_logger("process_inbound_task")


def _build_command(
    db: Session, stage_listener: Optional[StageListener] = None
) -> ProcessInboundMessageCommand:
    return ProcessInboundMessageCommand(
        db,
        config_cache=state.config_cache,
        engine_client=state.engine_client,
        adapter=state.meta_adapter,
        error_reporter=state.error_reporter,
        stage_listener=stage_listener,
    )


def _queue_service(db: Session) -> MessageQueueService:
    settings = get_settings()
    return MessageQueueService(
        db,
        max_attempts=settings.queue_max_attempts,
        stale_after_seconds=settings.queue_stale_after_seconds,
    )


def _log_outcome(
    inbound: InboundMessage,
    result: Optional[ProcessingResult],
    command: ProcessInboundMessageCommand,
) -> None:
    if result is None:
        failure = command.failure
        logger.info(
            "Inbound %s message from %s not answered: %s",
            inbound.platform.value,
            inbound.participant_id,
            failure.reason.value if failure else "unknown",
        )
    else:
        logger.info(
            "Answered %s conversation %s (fallback=%s, delivered=%s)",
            inbound.platform.value,
            result.conversation.id,
            result.reply.fallback,
            result.delivery.success,
        )


async def process_inbound_message(
    user_id: UUID, inbound: InboundMessage
) -> Optional[ProcessingResult]:
    """Process one unqueued message with its own database session. Never raises."""
    with db_session() as db:
        command = _build_command(db)
        result = await command.execute(user_id, inbound)
    _log_outcome(inbound, result, command)
    return result


async def _run_claimed(
    queue: MessageQueueService, item: QueuedMessage
) -> Optional[ProcessingResult]:
    inbound = queue.inbound(item)

    def record(stage: ProcessingStage) -> None:
        queue.record_stage(item.id, stage)

    with db_session() as db:
        command = _build_command(db, stage_listener=record)
        result = await command.execute(item.user_id, inbound)

    try:
        if result is not None:
            queue.complete(item)
        elif command.failure is not None:
            queue.fail(item, command.failure)
    except SQLAlchemyError as e:
        # left in processing; the stale sweep settles it
        logger.error("Could not update queued message %s: %s", item.id, e)
    _log_outcome(inbound, result, command)
    return result


async def process_queued_message(queue_id: UUID) -> Optional[ProcessingResult]:
    """Claim and process one queued message. A no-op if it was already claimed."""
    with db_session() as queue_db:
        queue = _queue_service(queue_db)
        item = queue.claim(queue_id)
        if item is None:
            logger.info("Queued message %s already claimed or finished", queue_id)
            return None
        return await _run_claimed(queue, item)


async def process_pending_messages(batch_size: Optional[int] = None) -> int:
    """Drain up to batch_size claimable queued messages; returns how many ran."""
    if batch_size is None:
        batch_size = get_settings().queue_batch_size
    with db_session() as queue_db:
        queue = _queue_service(queue_db)
        items = queue.claim_pending(batch_size)
        for item in items:
            await _run_claimed(queue, item)
    if items:
        logger.info("Processed %d queued message(s)", len(items))
    return len(items)
