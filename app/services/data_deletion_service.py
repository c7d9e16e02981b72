"""Erases everything stored about one Meta user when Meta asks us to."""

from __future__ import annotations

import logging
import secrets
import string
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.conversation import Conversation
from app.models.data_deletion import (
    DELETION_COMPLETED,
    DELETION_FAILED,
    DELETION_PENDING,
    DataDeletionRequest,
)
from app.models.dead_letter import MessageDeadLetter
from app.models.message import Message
from app.models.message_queue import MessageProcessingStatus, QueuedMessage
from app.models.mixins import utcnow

logger = logging.getLogger(__name__)

CODE_PREFIX = "DEL"
CODE_ALPHABET = string.ascii_uppercase + string.digits


def new_confirmation_code() -> str:
    return CODE_PREFIX + "".join(secrets.choice(CODE_ALPHABET) for _ in range(8))


class DataDeletionService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_by_code(self, confirmation_code: str) -> Optional[DataDeletionRequest]:
        return self.db.scalars(
            select(DataDeletionRequest).where(
                DataDeletionRequest.confirmation_code == confirmation_code
            )
        ).first()

    def delete_participant_data(self, facebook_user_id: str) -> DataDeletionRequest:
        """
        Record a deletion request, then remove the participant's conversations,
        messages, dead letters and queued messages in one transaction.

        The request row survives a failed deletion with status 'failed' so the
        confirmation code still resolves.
        """
        request = DataDeletionRequest(
            confirmation_code=new_confirmation_code(),
            facebook_user_id=facebook_user_id,
            status=DELETION_PENDING,
        )
        self.db.add(request)
        self._commit()

        try:
            self._erase(request)
            request.status = DELETION_COMPLETED
            request.completed_at = utcnow()
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                "Data deletion %s failed: %s", request.confirmation_code, e
            )
            request.status = DELETION_FAILED
            request.error = str(e)
            self._commit()
        else:
            logger.info(
                "Data deletion %s: %d conversation(s), %d message(s), "
                "%d queued message(s)",
                request.confirmation_code,
                request.conversations_deleted,
                request.messages_deleted,
                request.queued_messages_deleted,
            )
        self.db.refresh(request)
        return request

    def _erase(self, request: DataDeletionRequest) -> None:
        participant = request.facebook_user_id
        conversation_ids = select(Conversation.id).where(
            Conversation.participant_id == participant
        )
        queue_ids = select(QueuedMessage.id).where(
            QueuedMessage.sender_id == participant
        )
        request.messages_deleted = self._delete(
            delete(Message).where(Message.conversation_id.in_(conversation_ids))
        )
        self._delete(
            delete(MessageDeadLetter).where(
                MessageDeadLetter.conversation_id.in_(conversation_ids)
            )
        )
        request.conversations_deleted = self._delete(
            delete(Conversation).where(Conversation.participant_id == participant)
        )
        self._delete(
            delete(MessageProcessingStatus).where(
                MessageProcessingStatus.message_queue_id.in_(queue_ids)
            )
        )
        request.queued_messages_deleted = self._delete(
            delete(QueuedMessage).where(QueuedMessage.sender_id == participant)
        )

    def _delete(self, statement) -> int:
        result = self.db.execute(
            statement.execution_options(synchronize_session=False)
        )
        return result.rowcount

    def _commit(self) -> None:
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
