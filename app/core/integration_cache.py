from __future__ import annotations

from typing import Dict, Optional
from uuid import UUID

from app.schemas.integration import IntegrationConfig


class IntegrationConfigCache:
    """
    In-process cache of resolved integration configs, keyed by user.

    Entries live until invalidated; there is no TTL. Concurrent population for
    the same user is harmless (last write wins).
    """

    def __init__(self) -> None:
        self._entries: Dict[UUID, IntegrationConfig] = {}

    def get(self, user_id: UUID) -> Optional[IntegrationConfig]:
        return self._entries.get(user_id)

    def set(self, user_id: UUID, config: IntegrationConfig) -> None:
        self._entries[user_id] = config

    def invalidate(self, user_id: UUID) -> None:
        self._entries.pop(user_id, None)

    def clear(self) -> None:
        self._entries.clear()
