"""
Webhook routes for Meta platform deliveries.

Each owning user subscribes their page / Instagram account to
/webhooks/{user_id}/{platform}. Meta performs the GET handshake once, then
POSTs message events; we verify, queue, schedule processing, and return 200.
"""

from __future__ import annotations

from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session

from app.commands.webhooks.meta_command import MetaWebhookCommand
from app.db import get_db
from app.schemas.messaging import Platform

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.get("/{user_id}/{platform}", response_class=PlainTextResponse)
def verify_meta_webhook(
    user_id: UUID,
    platform: Platform,
    hub_mode: Optional[str] = Query(None, alias="hub.mode"),
    hub_verify_token: Optional[str] = Query(None, alias="hub.verify_token"),
    hub_challenge: Optional[str] = Query(None, alias="hub.challenge"),
) -> str:
    """Echo hub.challenge when the verify token matches META_VERIFY_TOKEN."""
    return MetaWebhookCommand().verify_subscription(
        hub_mode, hub_verify_token, hub_challenge
    )


@router.post("/{user_id}/{platform}")
async def meta_webhook(
    user_id: UUID,
    platform: Platform,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """
    Receive Meta webhook events. Validate X-Hub-Signature-256 if META_APP_SECRET
    is set, queue and schedule each message for processing, return 200.
    """
    return await MetaWebhookCommand(db).execute(
        request, user_id, platform, background_tasks
    )
