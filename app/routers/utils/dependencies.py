from uuid import UUID

from fastapi import Depends, HTTPException
from sqlalchemy.orm import Session

from app.db import get_db
from app.models.conversation import Conversation
from app.services.conversation_service import ConversationService


def get_conversation_by_id(
    conversation_id: UUID,
    db: Session = Depends(get_db),
) -> Conversation:
    """FastAPI dependency to get a conversation by ID."""
    conversation = ConversationService(db).get_conversation(conversation_id)
    if conversation is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conversation
