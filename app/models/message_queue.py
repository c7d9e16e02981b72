"""
Durable inbound queue.

Every accepted webhook message is written to message_queue before the
delivery is acknowledged. message_processing_status is an append-only ledger
of the pipeline stages each queued message passed through.
"""

from __future__ import annotations

import uuid

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from app.db import Base
from app.models.mixins import TimestampMixin

QUEUE_PENDING = "pending"
QUEUE_PROCESSING = "processing"
QUEUE_COMPLETED = "completed"
QUEUE_FAILED = "failed"

STAGE_COMPLETED = "completed"
STAGE_FAILED = "failed"


class QueuedMessage(Base, TimestampMixin):
    __tablename__ = "message_queue"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False, index=True)
    platform = Column(String(32), nullable=False)
    sender_id = Column(String(255), nullable=False)
    recipient_id = Column(String(255), nullable=True)
    # InboundMessage.model_dump(mode="json")
    message_content = Column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=False
    )
    status = Column(String(32), nullable=False, default=QUEUE_PENDING, index=True)
    error = Column(Text, nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)
    last_retry_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    stages = relationship(
        "MessageProcessingStatus",
        back_populates="queued_message",
        cascade="all, delete-orphan",
        order_by="MessageProcessingStatus.id",
    )


class MessageProcessingStatus(Base, TimestampMixin):
    __tablename__ = "message_processing_status"

    id = Column(Integer, primary_key=True, autoincrement=True)
    message_queue_id = Column(
        Uuid,
        ForeignKey("message_queue.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    stage = Column(String(64), nullable=False)
    status = Column(String(32), nullable=False, default=STAGE_COMPLETED)
    error = Column(Text, nullable=True)
    extra = Column(
        "metadata", JSON().with_variant(JSONB(), "postgresql"), nullable=True
    )

    queued_message = relationship("QueuedMessage", back_populates="stages")
