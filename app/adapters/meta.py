"""
Meta platform adapter (Facebook Page Messenger and Instagram Direct).

Parses webhook deliveries from both the Messenger-style ``messaging`` events
and the older Instagram ``changes`` events, verifies payload signatures and
the signed_request of data-deletion callbacks, and sends replies through the
Graph API Send endpoint.
"""

from __future__ import annotations

import asyncio
import base64
import hashlib
import hmac
import json
import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

import httpx
from pydantic import ValidationError

from app.adapters.base import BasePlatformAdapter
from app.config import Settings, get_settings
from app.schemas.messaging import (
    InboundMessage,
    MessageMetadata,
    OutboundMessage,
    OutboundSendResult,
    Platform,
)

logger = logging.getLogger(__name__)

SIGNATURE_256_HEADER = "x-hub-signature-256"
SIGNATURE_SHA1_HEADER = "x-hub-signature"

MESSAGING_OBJECTS = {"page", "instagram"}
SIGNED_REQUEST_ALGORITHM = "HMAC-SHA256"


class MetaSendError(Exception):
    """The Graph API did not accept an outbound message."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SignedRequestError(ValueError):
    """A Meta signed_request that is malformed or fails its signature check."""


class SignedRequestSignatureError(SignedRequestError):
    """The signed_request was not signed with our app secret."""


def _b64url_decode(value: str) -> bytes:
    return base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))


def parse_signed_request(signed_request: str, secret: str) -> dict[str, Any]:
    """
    Verify and decode a Meta signed_request (``<signature>.<payload>``).

    The signature is an HMAC-SHA256 of the still-encoded payload keyed with
    the app secret; both halves are unpadded base64url.

    Raises:
        SignedRequestSignatureError: on a signature mismatch.
        SignedRequestError: on a malformed request or an unsupported algorithm.
    """
    encoded_signature, sep, encoded_payload = signed_request.partition(".")
    if not sep or not encoded_signature or not encoded_payload:
        raise SignedRequestError("signed_request must be <signature>.<payload>")
    try:
        signature = _b64url_decode(encoded_signature)
        payload = json.loads(_b64url_decode(encoded_payload))
    except ValueError as e:
        raise SignedRequestError(f"Undecodable signed_request: {e}") from e
    if not isinstance(payload, dict):
        raise SignedRequestError("signed_request payload must be an object")
    algorithm = str(payload.get("algorithm") or "").upper()
    if algorithm != SIGNED_REQUEST_ALGORITHM:
        raise SignedRequestError(f"Unsupported algorithm: {algorithm or None}")
    expected = hmac.new(
        secret.encode(), encoded_payload.encode(), hashlib.sha256
    ).digest()
    if not hmac.compare_digest(signature, expected):
        raise SignedRequestSignatureError("signed_request signature mismatch")
    return payload


def describe_attachment(attachment: dict[str, Any]) -> str:
    """Text stand-in for an attachment, used when a message carries no text."""
    kind = attachment.get("type")
    payload = attachment.get("payload") or {}
    if kind == "image":
        return f"[Image: {payload.get('url')}]"
    if kind == "audio":
        return "[Audio message]"
    if kind == "video":
        return "[Video message]"
    if kind == "file":
        return f"[File attachment: {payload.get('url')}]"
    if kind == "location":
        coordinates = payload.get("coordinates") or {}
        return f"[Location: {coordinates.get('lat')},{coordinates.get('long')}]"
    if kind == "fallback":
        return f"[Fallback: {payload.get('title') or 'Unsupported content'}]"
    return f"[Unsupported attachment type: {kind}]"


def _timestamp(value: Any) -> Optional[datetime]:
    """Meta timestamps are epoch milliseconds."""
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def _objects(items: Any, kind: str) -> list[dict[str, Any]]:
    """The dict members of a webhook list; anything else is logged and dropped."""
    if not items:
        return []
    if not isinstance(items, list):
        logger.warning(
            "Ignoring webhook %s list of type %s", kind, type(items).__name__
        )
        return []
    kept = [item for item in items if isinstance(item, dict)]
    if len(kept) != len(items):
        logger.warning(
            "Ignoring %d malformed webhook %s item(s)", len(items) - len(kept), kind
        )
    return kept


class MetaAdapter(BasePlatformAdapter):
    """Meta adapter: parse webhook deliveries, send messages via the Graph API."""

    def __init__(
        self,
        graph_api_url: str = "https://graph.facebook.com/v18.0",
        timeout: float = 15.0,
        abort_margin: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.graph_api_url = graph_api_url.rstrip("/")
        self.timeout = timeout
        self.abort_after = max(timeout - abort_margin, 0.1)
        self._transport = transport

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "MetaAdapter":
        settings = settings or get_settings()
        return cls(
            graph_api_url=settings.meta_graph_api_url,
            timeout=settings.meta_request_timeout_seconds,
            transport=transport,
        )

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify_webhook(
        self,
        secret: Optional[str],
        request_headers: Optional[Mapping[str, str]] = None,
        body: bytes = b"",
    ) -> bool:
        """
        Check X-Hub-Signature-256 (falling back to X-Hub-Signature) against an
        HMAC of the raw body. Without a secret nothing is checked.
        """
        if not secret:
            return True
        headers = {k.lower(): v for k, v in (request_headers or {}).items()}
        signature = headers.get(SIGNATURE_256_HEADER)
        digestmod = hashlib.sha256
        prefix = "sha256="
        if not signature:
            signature = headers.get(SIGNATURE_SHA1_HEADER)
            digestmod = hashlib.sha1
            prefix = "sha1="
        if not signature or not signature.startswith(prefix):
            return False
        expected = hmac.new(secret.encode(), body, digestmod).hexdigest()
        return hmac.compare_digest(signature[len(prefix):], expected)

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def parse_webhook(
        self, raw_payload: dict[str, Any], platform: Platform
    ) -> list[InboundMessage]:
        """
        Normalize every user message in a delivery. Echoes and receipts are
        dropped; a malformed entry or event is logged and skipped so the rest
        of the delivery still goes through.
        """
        messages: list[InboundMessage] = []
        for entry in _objects(raw_payload.get("entry"), "entry"):
            for event in _objects(entry.get("messaging"), "messaging event"):
                inbound = self._parse_safely(
                    self._from_messaging_event, event, platform
                )
                if inbound is not None:
                    messages.append(inbound)
            for change in _objects(entry.get("changes"), "change"):
                if change.get("field") != "messages":
                    continue
                inbound = self._parse_safely(
                    self._from_change, change.get("value") or {}, platform
                )
                if inbound is not None:
                    messages.append(inbound)
        return messages

    def _parse_safely(self, parse, item: Any, platform: Platform):
        try:
            return parse(item, platform)
        except (AttributeError, TypeError, KeyError, IndexError, ValidationError) as e:
            logger.warning(
                "Skipping malformed %s webhook event: %s", platform.value, e
            )
            return None

    def _from_messaging_event(
        self, event: dict[str, Any], platform: Platform
    ) -> Optional[InboundMessage]:
        message = event.get("message")
        postback = event.get("postback")
        if message is None and postback is None:
            return None  # read/delivery receipts, reactions, etc.
        if message is not None and message.get("is_echo"):
            return None
        sender_id = (event.get("sender") or {}).get("id")
        if not sender_id:
            logger.warning("Skipping %s event without sender id", platform.value)
            return None
        recipient_id = (event.get("recipient") or {}).get("id")
        return self._build(
            platform,
            str(sender_id),
            str(recipient_id) if recipient_id else None,
            message or {},
            postback,
            event.get("timestamp"),
        )

    def _from_change(
        self, value: dict[str, Any], platform: Platform
    ) -> Optional[InboundMessage]:
        sender_id = (value.get("sender") or {}).get("id")
        items = value.get("messages") or []
        if not sender_id or not items:
            return None
        recipient_id = (value.get("recipient") or {}).get("id")
        item = items[0]
        message: dict[str, Any] = {"mid": item.get("id")}
        if item.get("text"):
            message["text"] = (item["text"] or {}).get("body")
        elif item.get("attachments"):
            message["attachments"] = [
                {"type": att.get("type"), "payload": {"url": att.get("url")}}
                for att in item["attachments"]
            ]
        elif item.get("replies"):
            message["quick_reply"] = {"payload": item["replies"][0].get("title")}
        return self._build(
            platform,
            str(sender_id),
            str(recipient_id) if recipient_id else None,
            message,
            None,
            item.get("timestamp"),
        )

    def _build(
        self,
        platform: Platform,
        sender_id: str,
        recipient_id: Optional[str],
        message: dict[str, Any],
        postback: Optional[dict[str, Any]],
        timestamp: Any,
    ) -> InboundMessage:
        attachments = list(message.get("attachments") or [])
        quick_reply = message.get("quick_reply") or {}
        postback_title = None
        if postback is not None:
            text = postback.get("payload") or postback.get("title")
            message_type = "postback"
            postback_title = postback.get("title")
        elif quick_reply.get("payload"):
            text = quick_reply["payload"]
            message_type = "quick_reply"
        elif message.get("text"):
            text = message["text"]
            message_type = "text"
        elif attachments:
            text = describe_attachment(attachments[0])
            message_type = attachments[0].get("type") or "attachment"
        else:
            text = None
            message_type = "unsupported"
        if not text:
            text = f"[Unsupported {platform.value} message type]"
        return InboundMessage(
            platform=platform,
            external_conversation_id=sender_id,
            participant_id=sender_id,
            recipient_id=recipient_id,
            message_id=message.get("mid"),
            text=text,
            attachments=attachments,
            metadata=MessageMetadata(
                timestamp=_timestamp(timestamp),
                message_type=message_type,
                postback_title=postback_title,
            ),
        )

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send(
        self, outbound: OutboundMessage, access_token: str
    ) -> OutboundSendResult:
        """
        POST the reply to /{account_id}/messages. No retry.

        Raises:
            MetaSendError: on a non-2xx answer or when aborted before the timeout.
            httpx.HTTPError: on transport failures.
        """
        body = {
            "recipient": {"id": outbound.recipient_id},
            "message": {"text": outbound.text},
            "messaging_type": outbound.messaging_type,
        }
        try:
            response = await asyncio.wait_for(
                self._post(f"/{outbound.account_id}/messages", body, access_token),
                timeout=self.abort_after,
            )
        except asyncio.TimeoutError as e:
            raise MetaSendError(
                f"Graph API request aborted after {self.abort_after:.1f}s"
            ) from e

        if response.status_code >= 400:
            raise MetaSendError(
                self._error_detail(response), status_code=response.status_code
            )
        try:
            data = response.json()
        except ValueError:
            data = {}
        return OutboundSendResult(
            success=True,
            platform_message_id=data.get("message_id") if isinstance(data, dict) else None,
        )

    async def _post(
        self, path: str, body: dict[str, Any], access_token: str
    ) -> httpx.Response:
        async with httpx.AsyncClient(
            base_url=self.graph_api_url,
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            return await client.post(
                path, json=body, params={"access_token": access_token}
            )

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            error = (response.json() or {}).get("error") or {}
            message = error.get("message")
        except (ValueError, AttributeError):
            message = None
        return f"Graph API HTTP {response.status_code}: {message or response.text[:200]}"
