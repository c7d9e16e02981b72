"""
Command to handle Meta's data-deletion callback.

Meta POSTs a form-encoded signed_request naming the app-scoped user; the
participant's stored data is erased and Meta gets back a status URL and a
confirmation code.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from app.adapters.meta import (
    SignedRequestError,
    SignedRequestSignatureError,
    parse_signed_request,
)
from app.config import Settings, get_settings
from app.models.data_deletion import DataDeletionRequest
from app.services.data_deletion_service import DataDeletionService


class DataDeletionCommand:
    def __init__(self, db: Session, settings: Optional[Settings] = None) -> None:
        self.db = db
        self.settings = settings or get_settings()
        self.logger = logging.getLogger(__name__)

    def execute(self, signed_request: Optional[str]) -> dict[str, str]:
        """
        Verify the request and erase the participant's data.

        Returns:
            dict: {"url": status URL, "confirmation_code": code}

        Raises:
            HTTPException: 400 on a missing or malformed request or a payload
                without user_id, 403 on a bad signature, 500 when
                META_APP_SECRET is not configured.
        """
        if not signed_request:
            raise HTTPException(
                status_code=400, detail="Missing signed_request parameter"
            )
        secret = self.settings.meta_app_secret
        if not secret:
            self.logger.error("META_APP_SECRET not set; cannot verify deletion request")
            raise HTTPException(status_code=500, detail="Server configuration error")

        try:
            payload = parse_signed_request(signed_request, secret)
        except SignedRequestError as e:
            self.logger.warning("Rejected data deletion request: %s", e)
            status_code = 403 if isinstance(e, SignedRequestSignatureError) else 400
            raise HTTPException(status_code=status_code, detail=str(e)) from e

        facebook_user_id = payload.get("user_id")
        if not facebook_user_id:
            raise HTTPException(
                status_code=400, detail="Invalid user data in the request"
            )

        request = DataDeletionService(self.db).delete_participant_data(
            str(facebook_user_id)
        )
        return {
            "url": self.status_url(request),
            "confirmation_code": request.confirmation_code,
        }

    def status_url(self, request: DataDeletionRequest) -> str:
        base = self.settings.public_base_url.rstrip("/")
        return f"{base}/data-deletion/{request.confirmation_code}"
