"""Message append and reads."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session as DBSession
from sqlalchemy.sql import Select

from app.models.message import Message
from app.schemas.conversation import MessageCreate


class MessageService:
    def __init__(self, db: DBSession) -> None:
        self.db = db

    def append_message(
        self,
        conversation_id: UUID,
        content: str,
        sender_type: str,
        external_id: Optional[str] = None,
    ) -> Message:
        """Insert one message in its own commit; nothing is kept if the commit fails."""
        data = MessageCreate(
            content=content, sender_type=sender_type, external_id=external_id
        )
        now = datetime.now(timezone.utc)
        msg = Message(
            conversation_id=conversation_id,
            sent_at=now,
            created_at=now,
            **data.model_dump(),
        )
        self.db.add(msg)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(msg)
        return msg

    def get_messages_query(self, conversation_id: UUID) -> Select:
        """Select for a conversation's messages in send order (for pagination)."""
        return (
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.sent_at, Message.created_at)
        )
