"""Dead-letter records for engine replies that could not be stored."""

from __future__ import annotations

import logging
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from app.models.dead_letter import MessageDeadLetter

logger = logging.getLogger(__name__)


class DeadLetterService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def record(
        self,
        user_id: UUID,
        message_content: str,
        error_message: Optional[str] = None,
        conversation_id: Optional[UUID] = None,
        extra: Optional[dict[str, Any]] = None,
    ) -> MessageDeadLetter:
        entry = MessageDeadLetter(
            user_id=user_id,
            conversation_id=conversation_id,
            message_content=message_content,
            error_message=error_message,
            extra=extra or {},
        )
        self.db.add(entry)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(entry)
        logger.warning(
            "Dead-lettered reply for conversation %s: %s",
            conversation_id,
            error_message,
        )
        return entry

    def get_failed_query(self, user_id: UUID) -> Select:
        """One user's unreplayed dead letters, oldest first (for pagination)."""
        return (
            select(MessageDeadLetter)
            .where(
                MessageDeadLetter.user_id == user_id,
                MessageDeadLetter.status == "failed",
            )
            .order_by(MessageDeadLetter.failed_at)
        )
