"""Dead-letter API: replies that were generated but could not be stored."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi_pagination import Page, Params
from fastapi_pagination.ext.sqlalchemy import paginate
from sqlalchemy.orm import Session

from app.db import get_db
from app.schemas.dead_letter import DeadLetterRead
from app.services.dead_letter_service import DeadLetterService

dead_letters_router = APIRouter(prefix="/dead-letters", tags=["Dead letter"])


@dead_letters_router.get("", response_model=Page[DeadLetterRead])
def list_dead_letters(
    params: Params = Depends(),
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
) -> Page[DeadLetterRead]:
    """List a user's failed replies, oldest first."""
    query = DeadLetterService(db).get_failed_query(user_id)
    return paginate(db, query, params=params)
