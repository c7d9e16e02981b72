"""Pydantic schemas for the durable inbound queue."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel

QueueStatus = Literal["pending", "processing", "completed", "failed"]


class ProcessingStatusRead(BaseModel):
    """One ledger row: a stage a queued message reached or failed in."""

    stage: str
    status: str
    error: Optional[str] = None
    extra: Optional[dict[str, Any]] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class QueuedMessageRead(BaseModel):
    id: UUID
    user_id: UUID
    platform: str
    sender_id: str
    recipient_id: Optional[str] = None
    message_content: dict[str, Any]
    status: str
    error: Optional[str] = None
    retry_count: int
    last_retry_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class QueuedMessageDetail(QueuedMessageRead):
    stages: list[ProcessingStatusRead] = []


class QueueDrainResult(BaseModel):
    processed: int
