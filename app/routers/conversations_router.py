"""Conversations API: list, get, messages. Read-only."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi_pagination import Page, Params
from fastapi_pagination.ext.sqlalchemy import paginate
from sqlalchemy.orm import Session

from app.db import get_db
from app.models.conversation import Conversation
from app.routers.utils.dependencies import get_conversation_by_id
from app.schemas.conversation import ConversationRead, MessageRead
from app.schemas.messaging import Platform
from app.services.conversation_service import ConversationService
from app.services.message_service import MessageService

conversations_router = APIRouter(prefix="/conversations", tags=["Conversation"])


@conversations_router.get("", response_model=Page[ConversationRead])
def list_conversations(
    params: Params = Depends(),
    user_id: UUID = Query(...),
    platform: Optional[Platform] = Query(None),
    db: Session = Depends(get_db),
) -> Page[ConversationRead]:
    """List one user's conversations, most recently active first."""
    query = ConversationService(db).get_conversations_query(
        user_id=user_id,
        platform=platform.value if platform else None,
    )
    return paginate(db, query, params=params)


@conversations_router.get("/{conversation_id}", response_model=ConversationRead)
def get_conversation(
    conversation: Conversation = Depends(get_conversation_by_id),
) -> ConversationRead:
    """Get a conversation by ID."""
    return ConversationRead.model_validate(conversation)


@conversations_router.get(
    "/{conversation_id}/messages", response_model=Page[MessageRead]
)
def list_conversation_messages(
    params: Params = Depends(),
    conversation: Conversation = Depends(get_conversation_by_id),
    db: Session = Depends(get_db),
) -> Page[MessageRead]:
    """List a conversation's messages in the order they were sent."""
    query = MessageService(db).get_messages_query(conversation.id)
    return paginate(db, query, params=params)
