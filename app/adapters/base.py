"""
Platform adapter interface.

Adapters encapsulate platform-specific logic and expose a normalized
message format to the relay pipeline.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional

from app.schemas.messaging import (
    InboundMessage,
    OutboundMessage,
    OutboundSendResult,
    Platform,
)


class BasePlatformAdapter(ABC):
    """Contract for platform adapters. New platforms implement this interface."""

    @abstractmethod
    def parse_webhook(
        self, raw_payload: dict[str, Any], platform: Platform
    ) -> list[InboundMessage]:
        """Parse a raw webhook delivery into zero or more normalized inbound messages."""
        ...

    @abstractmethod
    async def send(
        self, outbound: OutboundMessage, access_token: str
    ) -> OutboundSendResult:
        """Send a normalized outbound message. Raise on delivery failure."""
        ...

    def verify_webhook(
        self,
        secret: Optional[str],
        request_headers: Optional[Mapping[str, str]] = None,
        body: bytes = b"",
    ) -> bool:
        """
        Verify a webhook request (e.g. payload signature). Override if the platform supports it.
        Return True if valid or verification not required; False to reject.
        """
        return True
