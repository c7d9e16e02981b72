"""Conversation model: one row per (owning user, platform, external conversation)."""

from __future__ import annotations

import uuid

from sqlalchemy import Column, DateTime, Index, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from app.db import Base
from app.models.mixins import TimestampMixin, utcnow


class Conversation(Base, TimestampMixin):
    """
    Running dialogue between one platform participant and one owning user.

    external_id is assigned by the platform and is unique per (user, platform);
    lookups by that triple are idempotent.
    """

    __tablename__ = "conversations"

    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "platform",
            "external_id",
            name="uq_conversations_user_platform_external",
        ),
        Index("ix_conversations_user_last_message", "user_id", "last_message_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False)
    platform = Column(String(32), nullable=False)  # 'facebook' | 'instagram'
    external_id = Column(String(256), nullable=False)
    participant_id = Column(String(256), nullable=False)
    participant_name = Column(String(256), nullable=True)
    last_message_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    messages = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="Message.sent_at",
    )
