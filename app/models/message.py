"""Message model: one row per user or assistant turn in a conversation."""

from __future__ import annotations

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import relationship

from app.db import Base
from app.models.mixins import utcnow


class Message(Base):
    """Append-only; sender_type is 'user' (from the platform) or 'assistant' (engine reply)."""

    __tablename__ = "messages"

    __table_args__ = (
        Index("ix_messages_conversation_sent_at", "conversation_id", "sent_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    conversation_id = Column(
        Uuid,
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
    )
    content = Column(Text, nullable=False)
    sender_type = Column(String(16), nullable=False)  # 'user' | 'assistant'
    external_id = Column(String(256), nullable=True)  # platform message id
    sent_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    conversation = relationship("Conversation", back_populates="messages")
