"""
Command that runs one inbound platform message through the relay pipeline.

Stages, in order:

    received -> conversation_resolved -> user_message_stored -> rate_checked
    -> config_resolved -> engine_reply_obtained -> assistant_message_stored
    -> delivered

Any stage may fail. A failure is converted into an InboundProcessingError
carrying the stage it happened in and a reason, reported, and turned into a
None result; execute() itself never raises, so the webhook can always
acknowledge the delivery. Platform delivery is best effort: once the
assistant message is stored the run counts as a success whether or not the
send went through.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.adapters.base import BasePlatformAdapter
from app.adapters.voiceflow import EngineReply, VoiceflowAuthError, VoiceflowClient
from app.commands.outbound.send_reply_command import (
    DELIVERY_FAILED_EVENT,
    SendReplyCommand,
)
from app.config import get_settings
from app.core.integration_cache import IntegrationConfigCache
from app.infra.error_reporter import ErrorReporter
from app.models.conversation import Conversation
from app.models.message import Message
from app.schemas.messaging import InboundMessage, OutboundSendResult
from app.services.conversation_service import Clock, ConversationService
from app.services.dead_letter_service import DeadLetterService
from app.services.integration_service import IntegrationConfigResolver
from app.services.message_service import MessageService
from app.services.rate_limit_service import RateLimitService

logger = logging.getLogger(__name__)

ENGINE_PROVIDER = "voiceflow"
ENGINE_ENDPOINT = "interact"


class ProcessingStage(str, Enum):
    RECEIVED = "received"
    CONVERSATION_RESOLVED = "conversation_resolved"
    USER_MESSAGE_STORED = "user_message_stored"
    RATE_CHECKED = "rate_checked"
    CONFIG_RESOLVED = "config_resolved"
    ENGINE_REPLY_OBTAINED = "engine_reply_obtained"
    ASSISTANT_MESSAGE_STORED = "assistant_message_stored"
    DELIVERED = "delivered"


# Called with each stage as the run reaches it, e.g. to keep a durable ledger.
StageListener = Callable[[ProcessingStage], None]


class FailureReason(str, Enum):
    STORE_ERROR = "store_error"
    RATE_LIMITED = "rate_limited"
    RATE_CHECK_ERROR = "rate_check_error"
    NOT_CONFIGURED = "not_configured"
    ENGINE_ERROR = "engine_error"
    INTERNAL_ERROR = "internal_error"


class InboundProcessingError(Exception):
    """A pipeline run stopped at `stage` for `reason`."""

    def __init__(
        self,
        stage: ProcessingStage,
        reason: FailureReason,
        cause: Optional[BaseException] = None,
    ) -> None:
        message = f"Inbound processing failed at {stage.value}: {reason.value}"
        if cause is not None:
            message = f"{message} ({cause})"
        super().__init__(message)
        self.stage = stage
        self.reason = reason
        self.cause = cause


@dataclass
class ProcessingResult:
    conversation: Conversation
    user_message: Message
    assistant_message: Message
    reply: EngineReply
    delivery: OutboundSendResult

    @property
    def stage(self) -> ProcessingStage:
        """Last stage reached; delivery failure stops at assistant_message_stored."""
        if self.delivery.success:
            return ProcessingStage.DELIVERED
        return ProcessingStage.ASSISTANT_MESSAGE_STORED


class ProcessInboundMessageCommand:
    """
    Process one normalized inbound message for the owning user.

    After execute() returns None, `failure` holds the InboundProcessingError
    that stopped the run. An optional stage_listener sees every stage after
    received as it is reached.
    """

    def __init__(
        self,
        db: Session,
        config_cache: IntegrationConfigCache,
        engine_client: VoiceflowClient,
        adapter: BasePlatformAdapter,
        error_reporter: Optional[ErrorReporter] = None,
        daily_limit: Optional[int] = None,
        clock: Optional[Clock] = None,
        stage_listener: Optional[StageListener] = None,
    ) -> None:
        self.db = db
        self.stage_listener = stage_listener
        self.engine_client = engine_client
        self.error_reporter = error_reporter
        if daily_limit is None:
            daily_limit = get_settings().voiceflow_daily_interact_limit
        self.daily_limit = daily_limit
        self.conversation_service = ConversationService(db, clock=clock)
        self.message_service = MessageService(db)
        self.rate_limit_service = RateLimitService(db, clock=clock)
        self.resolver = IntegrationConfigResolver(db, config_cache)
        self.dead_letter_service = DeadLetterService(db)
        self.send_reply = SendReplyCommand(db, adapter, error_reporter)
        self.failure: Optional[InboundProcessingError] = None
        self._stage = ProcessingStage.RECEIVED

    async def execute(
        self, user_id: UUID, inbound: InboundMessage
    ) -> Optional[ProcessingResult]:
        """
        Run the pipeline for one inbound message.

        Returns:
            ProcessingResult once the assistant reply is stored (delivery may
            still have failed, see result.delivery), None on any failure.
        """
        self.failure = None
        self._stage = ProcessingStage.RECEIVED
        try:
            return await self._run(user_id, inbound)
        except InboundProcessingError as e:
            self._rollback()
            self._fail(user_id, inbound, e)
        except Exception as e:
            self._rollback()
            self._fail(
                user_id,
                inbound,
                InboundProcessingError(self._stage, FailureReason.INTERNAL_ERROR, e),
            )
        return None

    async def _run(self, user_id: UUID, inbound: InboundMessage) -> ProcessingResult:
        try:
            conversation = self.conversation_service.find_or_create(
                user_id=user_id,
                platform=inbound.platform.value,
                external_id=inbound.external_conversation_id,
                participant_id=inbound.participant_id,
                participant_name=inbound.participant_name,
            )
        except SQLAlchemyError as e:
            raise InboundProcessingError(
                self._stage, FailureReason.STORE_ERROR, e
            ) from e
        self._advance(ProcessingStage.CONVERSATION_RESOLVED, conversation.id)

        try:
            user_message = self.message_service.append_message(
                conversation.id, inbound.text, "user", external_id=inbound.message_id
            )
        except (SQLAlchemyError, ValidationError) as e:
            raise InboundProcessingError(
                self._stage, FailureReason.STORE_ERROR, e
            ) from e
        self._advance(ProcessingStage.USER_MESSAGE_STORED, conversation.id)

        try:
            allowed = self.rate_limit_service.check_and_consume(
                user_id, ENGINE_PROVIDER, ENGINE_ENDPOINT, self.daily_limit
            )
        except SQLAlchemyError as e:
            raise InboundProcessingError(
                self._stage, FailureReason.RATE_CHECK_ERROR, e
            ) from e
        if not allowed:
            raise InboundProcessingError(self._stage, FailureReason.RATE_LIMITED)
        self._advance(ProcessingStage.RATE_CHECKED, conversation.id)

        try:
            config = self.resolver.resolve(user_id)
        except SQLAlchemyError as e:
            raise InboundProcessingError(
                self._stage, FailureReason.STORE_ERROR, e
            ) from e
        if config is None:
            raise InboundProcessingError(self._stage, FailureReason.NOT_CONFIGURED)
        self._advance(ProcessingStage.CONFIG_RESOLVED, conversation.id)

        try:
            reply = await self.engine_client.generate_reply(
                user_id, conversation, inbound.text, config
            )
        except Exception as e:
            raise InboundProcessingError(
                self._stage, FailureReason.ENGINE_ERROR, e
            ) from e
        self._track(user_id)
        if reply.fallback and isinstance(reply.error, VoiceflowAuthError):
            self.resolver.invalidate(user_id)
        self._advance(ProcessingStage.ENGINE_REPLY_OBTAINED, conversation.id)

        try:
            assistant_message = self.message_service.append_message(
                conversation.id, reply.text, "assistant"
            )
        except (SQLAlchemyError, ValidationError) as e:
            self._dead_letter(user_id, conversation, reply, e)
            raise InboundProcessingError(
                self._stage, FailureReason.STORE_ERROR, e
            ) from e
        self._advance(ProcessingStage.ASSISTANT_MESSAGE_STORED, conversation.id)

        delivery = await self._deliver(conversation, reply.text, inbound.recipient_id)
        if delivery.success:
            self._advance(ProcessingStage.DELIVERED, conversation.id)

        return ProcessingResult(
            conversation=conversation,
            user_message=user_message,
            assistant_message=assistant_message,
            reply=reply,
            delivery=delivery,
        )

    def _rollback(self) -> None:
        try:
            self.db.rollback()
        except SQLAlchemyError as e:
            logger.error("Rollback after failed run raised: %s", e)

    def _advance(self, stage: ProcessingStage, conversation_id: UUID) -> None:
        self._stage = stage
        logger.debug("Conversation %s: %s", conversation_id, stage.value)
        if self.stage_listener is None:
            return
        try:
            self.stage_listener(stage)
        except SQLAlchemyError as e:
            # best effort
            logger.warning("Could not record stage %s: %s", stage.value, e)

    def _track(self, user_id: UUID) -> None:
        # audit trail only; the budget was already consumed by the rate check
        try:
            self.rate_limit_service.track(user_id, ENGINE_PROVIDER, ENGINE_ENDPOINT)
        except SQLAlchemyError as e:
            logger.warning("Could not record engine call for user %s: %s", user_id, e)

    def _dead_letter(
        self,
        user_id: UUID,
        conversation: Conversation,
        reply: EngineReply,
        error: BaseException,
    ) -> None:
        try:
            self.db.rollback()
            self.dead_letter_service.record(
                user_id=user_id,
                conversation_id=conversation.id,
                message_content=reply.text,
                error_message=str(error),
                extra={
                    "platform": conversation.platform,
                    "participant_id": conversation.participant_id,
                    "fallback": reply.fallback,
                },
            )
        except SQLAlchemyError as e:
            logger.error(
                "Could not dead-letter reply for conversation %s: %s",
                conversation.id,
                e,
            )

    async def _deliver(
        self, conversation: Conversation, text: str, account_id: Optional[str]
    ) -> OutboundSendResult:
        try:
            return await self.send_reply.execute(conversation, text, account_id)
        except Exception as e:
            # the reply is already stored; delivery problems never fail the run
            logger.exception("Unexpected error delivering reply: %s", e)
            if self.error_reporter is not None:
                self.error_reporter.event(
                    DELIVERY_FAILED_EVENT,
                    {"conversation_id": str(conversation.id), "error": str(e)},
                )
            return OutboundSendResult(success=False, error=str(e))

    def _fail(
        self,
        user_id: UUID,
        inbound: InboundMessage,
        error: InboundProcessingError,
    ) -> None:
        self.failure = error
        context = {
            "stage": error.stage.value,
            "reason": error.reason.value,
            "user_id": str(user_id),
            "platform": inbound.platform.value,
            "external_conversation_id": inbound.external_conversation_id,
        }
        if self.error_reporter is not None:
            self.error_reporter.report(error, context)
        else:
            logger.warning("%s context=%s", error, context)
