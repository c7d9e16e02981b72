"""Pydantic schemas for Meta data-deletion callbacks."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class DataDeletionResponse(BaseModel):
    """The body Meta expects back from the callback."""

    url: str
    confirmation_code: str


class DataDeletionStatus(BaseModel):
    confirmation_code: str
    status: str
    conversations_deleted: int
    messages_deleted: int
    queued_messages_deleted: int
    created_at: datetime
    completed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
