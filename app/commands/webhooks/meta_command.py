"""
Command to handle Meta webhook deliveries for one owning user.

GET requests are the subscription handshake. POST requests are signature
checked, normalized into inbound messages, and each message is written to
the durable queue and handed to a background task; the delivery is
acknowledged immediately so Meta does not retry it.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional
from uuid import UUID

from fastapi import BackgroundTasks, HTTPException, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.adapters.meta import MESSAGING_OBJECTS, MetaAdapter
from app.config import Settings, get_settings
from app.schemas.messaging import InboundMessage, Platform
from app.services.message_queue_service import MessageQueueService
from app.tasks.process_inbound_task import (
    process_inbound_message,
    process_queued_message,
)

SUBSCRIBE_MODE = "subscribe"


class MetaWebhookCommand:
    def __init__(
        self,
        db: Optional[Session] = None,
        adapter: Optional[MetaAdapter] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.db = db
        self.settings = settings or get_settings()
        self.adapter = adapter or MetaAdapter.from_settings(self.settings)
        self.logger = logging.getLogger(__name__)

    def verify_subscription(
        self,
        mode: Optional[str],
        token: Optional[str],
        challenge: Optional[str],
    ) -> str:
        """
        Answer Meta's hub.challenge handshake.

        Raises:
            HTTPException: 400 on missing parameters or a non-subscribe mode,
                403 when the verify token does not match.
        """
        if not mode or not token or not challenge:
            raise HTTPException(status_code=400, detail="Missing required parameters")
        if mode != SUBSCRIBE_MODE:
            raise HTTPException(status_code=400, detail="Invalid hub.mode")
        expected = self.settings.meta_verify_token
        if not expected or token != expected:
            self.logger.warning("Webhook verification failed: token mismatch")
            raise HTTPException(status_code=403, detail="Verification failed")
        return challenge

    async def execute(
        self,
        request: Request,
        user_id: UUID,
        platform: Platform,
        background_tasks: BackgroundTasks,
    ) -> dict[str, Any]:
        """
        Validate and accept one webhook delivery.

        Returns:
            dict: {"status": "ok", "received": n, "queued": q} with n messages
                scheduled (q of them persisted to the queue), or
                {"status": "ignored"} for non-messaging objects.

        Raises:
            HTTPException: 401 on a bad signature, 400 on an unreadable body.
        """
        body = await request.body()
        secret = self.settings.meta_app_secret
        if not secret:
            self.logger.warning("META_APP_SECRET not set; skipping signature check")
        elif not self.adapter.verify_webhook(secret, request.headers, body):
            raise HTTPException(status_code=401, detail="Invalid webhook signature")

        try:
            payload = json.loads(body)
        except ValueError as e:
            self.logger.warning("Meta webhook invalid JSON: %s", e)
            raise HTTPException(status_code=400, detail="Invalid JSON body") from e
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Body must be a JSON object")

        if payload.get("object") not in MESSAGING_OBJECTS:
            return {"status": "ignored"}

        messages = self.adapter.parse_webhook(payload, platform)
        queued = 0
        for inbound in messages:
            if self._enqueue(user_id, inbound, background_tasks):
                queued += 1
        self.logger.info(
            "Accepted %d %s message(s) for user %s (%d queued)",
            len(messages),
            platform.value,
            user_id,
            queued,
        )
        return {"status": "ok", "received": len(messages), "queued": queued}

    def _enqueue(
        self,
        user_id: UUID,
        inbound: InboundMessage,
        background_tasks: BackgroundTasks,
    ) -> bool:
        """
        Persist the message, then schedule its queued run. When the queue
        cannot be written the message still runs, just without durability.
        """
        if self.db is not None:
            try:
                item = MessageQueueService(self.db).enqueue(user_id, inbound)
            except SQLAlchemyError as e:
                self.logger.error("Could not queue inbound message: %s", e)
            else:
                background_tasks.add_task(process_queued_message, item.id)
                return True
        background_tasks.add_task(process_inbound_message, user_id, inbound)
        return False
