"""
DataDeletionRequest model: one row per Meta data-deletion callback.

The confirmation code is handed back to Meta and lets the person check the
outcome at GET /data-deletion/{confirmation_code}.
"""

from __future__ import annotations

import uuid

from sqlalchemy import Column, DateTime, Integer, String, Text, Uuid

from app.db import Base
from app.models.mixins import TimestampMixin

DELETION_PENDING = "pending"
DELETION_COMPLETED = "completed"
DELETION_FAILED = "failed"


class DataDeletionRequest(Base, TimestampMixin):
    __tablename__ = "data_deletion_requests"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    confirmation_code = Column(String(32), nullable=False, unique=True, index=True)
    facebook_user_id = Column(String(255), nullable=False, index=True)
    status = Column(String(32), nullable=False, default=DELETION_PENDING)
    conversations_deleted = Column(Integer, nullable=False, default=0)
    messages_deleted = Column(Integer, nullable=False, default=0)
    queued_messages_deleted = Column(Integer, nullable=False, default=0)
    error = Column(Text, nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
