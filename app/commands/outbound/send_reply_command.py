"""
Command to deliver an assistant reply back to the platform it came from.

Resolves the owning user's page/account connection, decrypts its token, and
sends through the Meta adapter. Delivery is not retried; a failure is reported
as a delivery_failed event and returned, never raised.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx
from cryptography.fernet import InvalidToken
from sqlalchemy.orm import Session

from app.adapters.base import BasePlatformAdapter
from app.adapters.meta import MetaSendError
from app.infra.error_reporter import ErrorReporter
from app.models.conversation import Conversation
from app.schemas.messaging import OutboundMessage, OutboundSendResult, Platform
from app.services.social_connection_service import SocialConnectionService

logger = logging.getLogger(__name__)

DELIVERY_FAILED_EVENT = "delivery_failed"


class SendReplyCommand:
    def __init__(
        self,
        db: Session,
        adapter: BasePlatformAdapter,
        error_reporter: Optional[ErrorReporter] = None,
    ) -> None:
        self.db = db
        self.adapter = adapter
        self.error_reporter = error_reporter
        self.social_connection_service = SocialConnectionService(db)

    async def execute(
        self,
        conversation: Conversation,
        text: str,
        account_id: Optional[str] = None,
    ) -> OutboundSendResult:
        """
        Send text to the conversation's participant.

        Args:
            conversation: Conversation the reply belongs to.
            text: Reply text.
            account_id: Page / Instagram account the inbound message was
                addressed to, when known; selects the matching connection.

        Returns:
            OutboundSendResult: success=False (with error) when no connection
                exists or the platform rejected the message.
        """
        platform = Platform(conversation.platform)
        connection = self.social_connection_service.get_connection_for_platform(
            conversation.user_id, platform, account_id
        )
        if connection is None:
            return self._failed(
                conversation,
                f"No {platform.value} connection for user",
            )

        try:
            access_token = self.social_connection_service.get_access_token(connection)
        except (InvalidToken, ValueError) as e:
            return self._failed(conversation, f"Access token unavailable: {e}")

        outbound = OutboundMessage(
            platform=platform,
            account_id=SocialConnectionService.account_id_for(connection, platform),
            recipient_id=conversation.participant_id,
            text=text,
        )
        try:
            result = await self.adapter.send(outbound, access_token)
        except (MetaSendError, httpx.HTTPError) as e:
            return self._failed(conversation, str(e))

        logger.info(
            "Delivered reply on %s conversation %s (message %s)",
            platform.value,
            conversation.id,
            result.platform_message_id,
        )
        return result

    def _failed(self, conversation: Conversation, error: str) -> OutboundSendResult:
        if self.error_reporter is not None:
            self.error_reporter.event(
                DELIVERY_FAILED_EVENT,
                {
                    "conversation_id": str(conversation.id),
                    "user_id": str(conversation.user_id),
                    "platform": conversation.platform,
                    "error": error,
                },
            )
        else:
            logger.warning(
                "Delivery failed for conversation %s: %s", conversation.id, error
            )
        return OutboundSendResult(success=False, error=error)
