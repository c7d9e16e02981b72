"""Meta data-deletion callback and the status page it points to."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Form, HTTPException
from sqlalchemy.orm import Session

from app.commands.webhooks.data_deletion_command import DataDeletionCommand
from app.db import get_db
from app.schemas.data_deletion import DataDeletionResponse, DataDeletionStatus
from app.services.data_deletion_service import DataDeletionService

data_deletion_router = APIRouter(prefix="/data-deletion", tags=["Data deletion"])


@data_deletion_router.post("", response_model=DataDeletionResponse)
def request_data_deletion(
    signed_request: Optional[str] = Form(None),
    db: Session = Depends(get_db),
) -> DataDeletionResponse:
    """Erase a Meta user's data and return a status URL with its confirmation code."""
    return DataDeletionResponse(**DataDeletionCommand(db).execute(signed_request))


@data_deletion_router.get("/{confirmation_code}", response_model=DataDeletionStatus)
def get_data_deletion_status(
    confirmation_code: str, db: Session = Depends(get_db)
) -> DataDeletionStatus:
    """Look up a deletion request by the code handed back to Meta."""
    request = DataDeletionService(db).get_by_code(confirmation_code)
    if request is None:
        raise HTTPException(status_code=404, detail="Deletion request not found")
    return DataDeletionStatus.model_validate(request)
