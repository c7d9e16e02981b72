"""Conversation lookup, find-or-create, and listing."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session as DBSession
from sqlalchemy.sql import Select

from app.models.conversation import Conversation

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversationService:
    def __init__(self, db: DBSession, clock: Optional[Clock] = None) -> None:
        self.db = db
        self._clock = clock or _utcnow

    def get_conversation(self, conversation_id: UUID) -> Optional[Conversation]:
        return (
            self.db.query(Conversation)
            .filter(Conversation.id == conversation_id)
            .first()
        )

    def get_by_external_id(
        self, user_id: UUID, platform: str, external_id: str
    ) -> Optional[Conversation]:
        return (
            self.db.query(Conversation)
            .filter(
                Conversation.user_id == user_id,
                Conversation.platform == platform,
                Conversation.external_id == external_id,
            )
            .first()
        )

    def find_or_create(
        self,
        user_id: UUID,
        platform: str,
        external_id: str,
        participant_id: str,
        participant_name: Optional[str] = None,
    ) -> Conversation:
        """
        Return the conversation for (user, platform, external_id), creating it if missing.

        An existing row gets last_message_at (and participant_name, when given)
        refreshed. When a concurrent request inserts the same key first, the
        unique constraint rejects our insert and the winner's row is re-fetched.
        """
        conversation = self.get_by_external_id(user_id, platform, external_id)
        if conversation is not None:
            return self._touch(conversation, participant_name)

        conversation = Conversation(
            user_id=user_id,
            platform=platform,
            external_id=external_id,
            participant_id=participant_id,
            participant_name=participant_name,
            last_message_at=self._clock(),
        )
        self.db.add(conversation)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.info(
                "Conversation %s/%s created concurrently, re-fetching",
                platform,
                external_id,
            )
            existing = self.get_by_external_id(user_id, platform, external_id)
            if existing is None:
                raise
            return self._touch(existing, participant_name)
        self.db.refresh(conversation)
        return conversation

    def _touch(
        self, conversation: Conversation, participant_name: Optional[str]
    ) -> Conversation:
        conversation.last_message_at = self._clock()
        if participant_name:
            conversation.participant_name = participant_name
        self.db.commit()
        self.db.refresh(conversation)
        return conversation

    def get_conversations_query(
        self,
        user_id: UUID,
        platform: Optional[str] = None,
    ) -> Select:
        """One user's conversations, newest activity first (for pagination)."""
        stmt = (
            select(Conversation)
            .where(Conversation.user_id == user_id)
            .order_by(Conversation.last_message_at.desc())
        )
        if platform is not None:
            stmt = stmt.where(Conversation.platform == platform)
        return stmt
