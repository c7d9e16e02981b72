"""
Normalized message contracts for the relay.

Meta webhook events are converted into InboundMessage; replies leave through
OutboundMessage. Stable and independent of the platform payload shapes.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class Platform(str, Enum):
    """Supported messaging platforms."""

    FACEBOOK = "facebook"
    INSTAGRAM = "instagram"


class MessageMetadata(BaseModel):
    """Metadata for normalized messages (timestamp, postback title, etc.)."""

    timestamp: Optional[datetime] = None  # ISO8601
    message_type: str = "text"
    postback_title: Optional[str] = None


class InboundMessage(BaseModel):
    """Normalized inbound message (adapter → pipeline)."""

    platform: Platform
    external_conversation_id: str  # the sender's platform-scoped id
    participant_id: str
    participant_name: Optional[str] = None
    recipient_id: Optional[str] = None  # page id / Instagram account id
    message_id: Optional[str] = None
    text: str
    attachments: list[dict[str, Any]] = Field(default_factory=list)
    metadata: MessageMetadata = Field(default_factory=MessageMetadata)


class OutboundMessage(BaseModel):
    """Normalized outbound message (pipeline → adapter)."""

    platform: Platform
    account_id: str  # Facebook page id or Instagram account id sending the reply
    recipient_id: str
    text: str
    messaging_type: str = "RESPONSE"


class OutboundSendResult(BaseModel):
    """Result of sending an outbound message (success + optional message_id)."""

    success: bool
    platform_message_id: Optional[str] = None
    error: Optional[str] = None
