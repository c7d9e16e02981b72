"""
MessageDeadLetter model: engine replies that could not be persisted.

Rows are written when the assistant message insert fails so the generated
reply is not lost; status stays 'failed' until an operator replays it.
"""

from __future__ import annotations

import uuid

from sqlalchemy import JSON, Column, DateTime, Integer, String, Text, Uuid
from sqlalchemy.dialects.postgresql import JSONB

from app.db import Base
from app.models.mixins import utcnow


class MessageDeadLetter(Base):
    __tablename__ = "message_dead_letters"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False, index=True)
    conversation_id = Column(Uuid, nullable=True)
    message_content = Column(Text, nullable=False)
    error_message = Column(Text, nullable=True)
    extra = Column(
        "metadata", JSON().with_variant(JSONB(), "postgresql"), nullable=True
    )  # DB column "metadata"; avoid shadowing Base.metadata
    retry_count = Column(Integer, nullable=False, default=0)
    status = Column(String(32), nullable=False, default="failed")
    failed_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
