"""Pydantic schemas for dead-lettered engine replies."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel


class DeadLetterRead(BaseModel):
    """A reply that was generated but could not be stored."""

    id: UUID
    user_id: UUID
    conversation_id: Optional[UUID] = None
    message_content: str
    error_message: Optional[str] = None
    extra: Optional[dict[str, Any]] = None
    retry_count: int
    status: str
    failed_at: datetime

    model_config = {"from_attributes": True}
