"""Inbound queue API: inspect queued messages and drain what is pending."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi_pagination import Page, Params
from fastapi_pagination.ext.sqlalchemy import paginate
from sqlalchemy.orm import Session

from app.db import get_db
from app.schemas.queue import (
    QueueDrainResult,
    QueuedMessageDetail,
    QueuedMessageRead,
    QueueStatus,
)
from app.services.message_queue_service import MessageQueueService
from app.tasks import process_pending_messages

queue_router = APIRouter(prefix="/queue", tags=["Queue"])


@queue_router.get("", response_model=Page[QueuedMessageRead])
def list_queued_messages(
    params: Params = Depends(),
    user_id: UUID = Query(...),
    status: Optional[QueueStatus] = Query(None),
    db: Session = Depends(get_db),
) -> Page[QueuedMessageRead]:
    """List a user's queued messages, newest first."""
    query = MessageQueueService(db).get_queue_query(user_id, status=status)
    return paginate(db, query, params=params)


@queue_router.post("/process", response_model=QueueDrainResult)
async def process_queue(
    batch_size: Optional[int] = Query(None, ge=1, le=100),
) -> QueueDrainResult:
    """Process up to batch_size pending messages now."""
    processed = await process_pending_messages(batch_size)
    return QueueDrainResult(processed=processed)


@queue_router.get("/{queue_id}", response_model=QueuedMessageDetail)
def get_queued_message(
    queue_id: UUID, db: Session = Depends(get_db)
) -> QueuedMessageDetail:
    """Get a queued message with the stages it went through."""
    item = MessageQueueService(db).get(queue_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Queued message not found")
    return QueuedMessageDetail.model_validate(item)
