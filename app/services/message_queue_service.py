"""
Durable inbound queue and its per-stage ledger.

Messages are written here before a webhook delivery is acknowledged and are
claimed atomically for processing, so a restart loses nothing: anything
still pending (or stuck in processing past the stale window) is picked up
again by the next drain.

A failed run is only put back to pending when it stopped before the user
message was stored; rerunning it later would otherwise duplicate that
message.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, List, Optional
from uuid import UUID

from sqlalchemy import Select, and_, or_, select, update
from sqlalchemy.orm import Session

from app.commands.process_inbound_message_command import (
    FailureReason,
    InboundProcessingError,
    ProcessingStage,
)
from app.models.message_queue import (
    QUEUE_COMPLETED,
    QUEUE_FAILED,
    QUEUE_PENDING,
    QUEUE_PROCESSING,
    STAGE_COMPLETED,
    STAGE_FAILED,
    MessageProcessingStatus,
    QueuedMessage,
)
from app.models.mixins import utcnow
from app.schemas.messaging import InboundMessage
from app.services.conversation_service import Clock

logger = logging.getLogger(__name__)

# Failing in these stages leaves nothing behind that a rerun would duplicate.
REPLAYABLE_STAGES = {ProcessingStage.RECEIVED, ProcessingStage.CONVERSATION_RESOLVED}
TRANSIENT_REASONS = {FailureReason.STORE_ERROR, FailureReason.INTERNAL_ERROR}


class MessageQueueService:
    def __init__(
        self,
        db: Session,
        max_attempts: int = 3,
        stale_after_seconds: float = 300.0,
        clock: Optional[Clock] = None,
    ) -> None:
        self.db = db
        self.max_attempts = max_attempts
        self.stale_after = timedelta(seconds=stale_after_seconds)
        self._now = clock or utcnow

    def enqueue(self, user_id: UUID, inbound: InboundMessage) -> QueuedMessage:
        """Persist one inbound message as pending with a `received` ledger row."""
        item = QueuedMessage(
            user_id=user_id,
            platform=inbound.platform.value,
            sender_id=inbound.participant_id,
            recipient_id=inbound.recipient_id,
            message_content=inbound.model_dump(mode="json"),
            status=QUEUE_PENDING,
        )
        self.db.add(item)
        self.db.flush()
        self.db.add(
            MessageProcessingStatus(
                message_queue_id=item.id,
                stage=ProcessingStage.RECEIVED.value,
                status=STAGE_COMPLETED,
            )
        )
        self._commit()
        return item

    def get(self, queue_id: UUID) -> Optional[QueuedMessage]:
        return self.db.get(QueuedMessage, queue_id)

    def claim(self, queue_id: UUID) -> Optional[QueuedMessage]:
        """
        Move a pending (or stale processing) item to processing.

        Returns None when another worker already holds it or it is finished.
        """
        now = self._now()
        result = self.db.execute(
            update(QueuedMessage)
            .where(QueuedMessage.id == queue_id, self._claimable(now))
            .values(
                status=QUEUE_PROCESSING,
                retry_count=QueuedMessage.retry_count + 1,
                last_retry_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        self._commit()
        if result.rowcount == 0:
            return None
        item = self.get(queue_id)
        self.db.refresh(item)
        return item

    def claim_pending(self, limit: int) -> List[QueuedMessage]:
        """Claim up to `limit` of the oldest claimable items."""
        now = self._now()
        self._abandon_exhausted(now)
        candidates = self.db.scalars(
            select(QueuedMessage.id)
            .where(self._claimable(now))
            .order_by(QueuedMessage.created_at)
            .limit(limit)
        ).all()
        claimed = []
        for queue_id in candidates:
            item = self.claim(queue_id)
            if item is None:
                continue
            if self._reached(item, ProcessingStage.USER_MESSAGE_STORED):
                # interrupted mid-run after the user message was written
                self._finish(
                    item, QUEUE_FAILED, "Interrupted after user message stored"
                )
                continue
            claimed.append(item)
        return claimed

    def record_stage(
        self,
        queue_id: UUID,
        stage: ProcessingStage,
        status: str = STAGE_COMPLETED,
        error: Optional[str] = None,
        extra: Optional[dict[str, Any]] = None,
    ) -> MessageProcessingStatus:
        row = MessageProcessingStatus(
            message_queue_id=queue_id,
            stage=stage.value,
            status=status,
            error=error,
            extra=extra or {},
        )
        self.db.add(row)
        self._commit()
        return row

    def complete(self, item: QueuedMessage) -> QueuedMessage:
        return self._finish(item, QUEUE_COMPLETED)

    def fail(
        self, item: QueuedMessage, failure: InboundProcessingError
    ) -> QueuedMessage:
        """
        Record a failed run. Transient failures before the user message was
        stored go back to pending while attempts remain; anything else is final.
        """
        self.record_stage(
            item.id,
            failure.stage,
            status=STAGE_FAILED,
            error=str(failure),
            extra={"reason": failure.reason.value},
        )
        if self.is_replayable(failure) and item.retry_count < self.max_attempts:
            item.status = QUEUE_PENDING
            item.error = str(failure)
            self._commit()
            logger.info(
                "Queued message %s returned to pending (attempt %d/%d)",
                item.id,
                item.retry_count,
                self.max_attempts,
            )
            return item
        return self._finish(item, QUEUE_FAILED, str(failure))

    @staticmethod
    def is_replayable(failure: InboundProcessingError) -> bool:
        return (
            failure.reason in TRANSIENT_REASONS and failure.stage in REPLAYABLE_STAGES
        )

    @staticmethod
    def inbound(item: QueuedMessage) -> InboundMessage:
        return InboundMessage.model_validate(item.message_content)

    def get_stages(self, queue_id: UUID) -> List[MessageProcessingStatus]:
        return list(
            self.db.scalars(
                select(MessageProcessingStatus)
                .where(MessageProcessingStatus.message_queue_id == queue_id)
                .order_by(MessageProcessingStatus.id)
            )
        )

    def get_queue_query(self, user_id: UUID, status: Optional[str] = None) -> Select:
        query = select(QueuedMessage).where(QueuedMessage.user_id == user_id)
        if status:
            query = query.where(QueuedMessage.status == status)
        return query.order_by(QueuedMessage.created_at.desc())

    def _claimable(self, now: datetime):
        stale_before = now - self.stale_after
        return and_(
            QueuedMessage.retry_count < self.max_attempts,
            or_(
                QueuedMessage.status == QUEUE_PENDING,
                (QueuedMessage.status == QUEUE_PROCESSING)
                & (QueuedMessage.last_retry_at < stale_before),
            ),
        )

    def _abandon_exhausted(self, now: datetime) -> None:
        result = self.db.execute(
            update(QueuedMessage)
            .where(
                QueuedMessage.status == QUEUE_PROCESSING,
                QueuedMessage.last_retry_at < now - self.stale_after,
                QueuedMessage.retry_count >= self.max_attempts,
            )
            .values(
                status=QUEUE_FAILED,
                error=f"Abandoned after {self.max_attempts} attempts",
            )
            .execution_options(synchronize_session=False)
        )
        self._commit()
        if result.rowcount:
            logger.warning("Abandoned %d stuck queued message(s)", result.rowcount)

    def _reached(self, item: QueuedMessage, stage: ProcessingStage) -> bool:
        row = self.db.scalars(
            select(MessageProcessingStatus.id).where(
                MessageProcessingStatus.message_queue_id == item.id,
                MessageProcessingStatus.stage == stage.value,
                MessageProcessingStatus.status == STAGE_COMPLETED,
            )
        ).first()
        return row is not None

    def _finish(
        self, item: QueuedMessage, status: str, error: Optional[str] = None
    ) -> QueuedMessage:
        item.status = status
        item.error = error
        if status == QUEUE_COMPLETED:
            item.completed_at = self._now()
        self._commit()
        logger.info("Queued message %s %s", item.id, status)
        return item

    def _commit(self) -> None:
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
