"""
Voiceflow runtime client.

Sends a participant's text to the user's Voiceflow project and returns the
assistant reply. Transient failures are retried a bounded number of times;
when every attempt fails the caller gets a fixed fallback reply instead of an
exception, tagged so it can tell the two apart.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Optional, Protocol
from uuid import UUID

import httpx

from app.config import Settings, get_settings
from app.infra.error_reporter import ErrorReporter
from app.schemas.integration import IntegrationConfig

logger = logging.getLogger(__name__)

FALLBACK_REPLY = (
    "I'm sorry, I'm having trouble processing your request at the moment. "
    "Please try again in a few moments."
)

PLATFORM_TAGS = {
    "facebook": "\n\n(Message sent via Facebook)",
    "instagram": "\n\n(Message sent via Instagram)",
}


class VoiceflowError(Exception):
    """Base error for a failed Voiceflow interaction."""


class VoiceflowTimeoutError(VoiceflowError):
    """The request was aborted before the transport timeout fired."""


class VoiceflowAuthError(VoiceflowError):
    """The runtime rejected the API key (HTTP 401/403)."""


class VoiceflowResponseError(VoiceflowError):
    """The runtime answered without any usable text."""


class ConversationLike(Protocol):
    participant_id: str
    participant_name: Optional[str]
    platform: str


@dataclass
class EngineReply:
    text: str
    fallback: bool = False
    attempts: int = 1
    error: Optional[BaseException] = None


class VoiceflowClient:
    """Async client for the Voiceflow general runtime."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 15.0,
        abort_margin: float = 1.0,
        max_attempts: int = 3,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        error_reporter: Optional[ErrorReporter] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        # Process-wide VOICEFLOW_API_KEY; per-user keys travel on the config only.
        self.default_api_key = api_key
        self.timeout = timeout
        self.abort_after = max(timeout - abort_margin, 0.1)
        self.max_attempts = max(1, max_attempts)
        self._transport = transport
        self._error_reporter = error_reporter

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        error_reporter: Optional[ErrorReporter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "VoiceflowClient":
        settings = settings or get_settings()
        client_cls = SimulatedVoiceflowClient if settings.voiceflow_simulate else cls
        return client_cls(
            base_url=settings.voiceflow_runtime_url,
            api_key=settings.voiceflow_api_key,
            timeout=settings.voiceflow_request_timeout_seconds,
            abort_margin=settings.voiceflow_abort_margin_seconds,
            max_attempts=settings.voiceflow_max_attempts,
            transport=transport,
            error_reporter=error_reporter,
        )

    async def generate_reply(
        self,
        user_id: UUID,
        conversation: ConversationLike,
        text: str,
        config: Optional[IntegrationConfig] = None,
    ) -> EngineReply:
        """
        Get the engine's reply, retrying up to max_attempts times.

        Never raises for engine-side failures: after the last failed attempt the
        error is reported and EngineReply(FALLBACK_REPLY, fallback=True) returned.
        """
        last_error: Optional[BaseException] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                reply = await self.interact(user_id, conversation, text, config)
                return EngineReply(text=reply, attempts=attempt)
            except (httpx.HTTPError, VoiceflowError, ValueError) as e:
                last_error = e
                logger.warning(
                    "Voiceflow attempt %d/%d failed: %s",
                    attempt,
                    self.max_attempts,
                    e,
                )

        if self._error_reporter is not None:
            self._error_reporter.report(
                last_error,
                {
                    "context": "voiceflow_generate_reply",
                    "user_id": str(user_id),
                    "platform": conversation.platform,
                    "attempts": self.max_attempts,
                },
            )
        return EngineReply(
            text=FALLBACK_REPLY,
            fallback=True,
            attempts=self.max_attempts,
            error=last_error,
        )

    async def interact(
        self,
        user_id: UUID,
        conversation: ConversationLike,
        text: str,
        config: Optional[IntegrationConfig] = None,
    ) -> str:
        """One interact call; raises on any failure."""
        try:
            return await asyncio.wait_for(
                self._post_interact(user_id, conversation, text, config),
                timeout=self.abort_after,
            )
        except asyncio.TimeoutError as e:
            raise VoiceflowTimeoutError(
                f"Voiceflow request aborted after {self.abort_after:.1f}s"
            ) from e

    async def _post_interact(
        self,
        user_id: UUID,
        conversation: ConversationLike,
        text: str,
        config: Optional[IntegrationConfig],
    ) -> str:
        headers = {"Content-Type": "application/json"}
        api_key = (config.api_key if config else None) or self.default_api_key
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        if config is not None:
            headers["versionID"] = config.version_id
        body = {
            "action": {"type": "text", "payload": text},
            "config": {"tts": False, "stripSSML": True},
            "state": {
                "variables": {
                    "participantId": conversation.participant_id,
                    "participantName": conversation.participant_name,
                    "platform": conversation.platform,
                }
            },
        }
        async with httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout, transport=self._transport
        ) as client:
            response = await client.post(
                f"/state/user/{user_id}/interact", json=body, headers=headers
            )
        if response.status_code in (401, 403):
            raise VoiceflowAuthError(
                f"Voiceflow rejected credentials (HTTP {response.status_code})"
            )
        response.raise_for_status()
        return self.parse_reply(response.json())

    @staticmethod
    def parse_reply(items: Any) -> str:
        """Join the text payloads of a runtime trace list with blank lines."""
        if not isinstance(items, list):
            raise VoiceflowResponseError("No valid response from Voiceflow")
        texts = []
        for item in items:
            if not isinstance(item, dict) or item.get("type") != "text":
                continue
            payload = item.get("payload")
            if not isinstance(payload, dict):
                raise VoiceflowResponseError("Malformed text trace payload")
            message = payload.get("message")
            if message is None:
                continue
            if not isinstance(message, str):
                raise VoiceflowResponseError("Malformed text trace message")
            if message:
                texts.append(message)
        if not texts:
            raise VoiceflowResponseError("No valid response from Voiceflow")
        return "\n\n".join(texts)


class SimulatedVoiceflowClient(VoiceflowClient):
    """Keyword-driven stand-in for development without a Voiceflow project."""

    async def interact(
        self,
        user_id: UUID,
        conversation: ConversationLike,
        text: str,
        config: Optional[IntegrationConfig] = None,
    ) -> str:
        return self.canned_reply(text) + PLATFORM_TAGS.get(conversation.platform, "")

    @staticmethod
    def canned_reply(text: str) -> str:
        lowered = text.lower()
        words = set(re.findall(r"[a-z]+", lowered))
        if words & {"hello", "hi", "hey"}:
            return "Hi there! How can I help you today?"
        if "help" in lowered:
            return "I'd be happy to help! What do you need assistance with?"
        if "thank" in lowered:
            return "You're very welcome! Is there anything else I can help with?"
        if "bye" in lowered:
            return "Goodbye! Have a great day!"
        return (
            f'I understand you\'re asking about "{text[:30]}...". '
            "Let me help with that."
        )
