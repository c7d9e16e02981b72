"""Pydantic schemas for Conversation and Message."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel

# -----------------------------------------------------------------------------
# Conversation schemas
# -----------------------------------------------------------------------------


class ConversationBase(BaseModel):
    """Base conversation fields."""

    user_id: UUID
    platform: str
    external_id: str
    participant_id: str
    participant_name: Optional[str] = None
    last_message_at: datetime


class ConversationRead(ConversationBase):
    """Conversation for API responses."""

    id: UUID
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# -----------------------------------------------------------------------------
# Message schemas
# -----------------------------------------------------------------------------

SenderType = Literal["user", "assistant"]


class MessageCreate(BaseModel):
    """Schema for appending a message to a conversation."""

    content: str
    sender_type: SenderType
    external_id: Optional[str] = None


class MessageRead(MessageCreate):
    """Message for API responses."""

    id: UUID
    conversation_id: UUID
    sent_at: datetime
    created_at: datetime

    model_config = {"from_attributes": True}
