"""
Resolves a user's Voiceflow integration (project, version, API key).

Resolved configs are kept in an IntegrationConfigCache for the life of the
process; callers invalidate an entry when the underlying records change or
the key is rejected.
"""

from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from cryptography.fernet import InvalidToken
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.credentials import decrypt_secret
from app.core.integration_cache import IntegrationConfigCache
from app.models.integration import VoiceflowApiKey, VoiceflowMapping
from app.schemas.integration import IntegrationConfig

logger = logging.getLogger(__name__)


class IntegrationConfigResolver:
    def __init__(self, db: Session, cache: IntegrationConfigCache) -> None:
        self.db = db
        self.cache = cache

    def resolve(self, user_id: UUID) -> Optional[IntegrationConfig]:
        """
        Return the user's integration config, or None when not configured.

        A cached entry is returned without touching the store. A key that cannot
        be read or decrypted is logged and the config is built without one.
        """
        cached = self.cache.get(user_id)
        if cached is not None:
            return cached

        mapping = (
            self.db.query(VoiceflowMapping)
            .filter(VoiceflowMapping.user_id == user_id)
            .order_by(VoiceflowMapping.created_at)
            .first()
        )
        if mapping is None or not mapping.project_id:
            logger.info("No Voiceflow mapping for user %s", user_id)
            return None

        config = IntegrationConfig(
            user_id=user_id,
            project_id=mapping.project_id,
            version_id=mapping.version_id or "latest",
            api_key=self._load_api_key(user_id),
        )
        self.cache.set(user_id, config)
        return config

    def invalidate(self, user_id: UUID) -> None:
        self.cache.invalidate(user_id)
        logger.debug("Invalidated integration config for user %s", user_id)

    def _load_api_key(self, user_id: UUID) -> Optional[str]:
        try:
            row = (
                self.db.query(VoiceflowApiKey)
                .filter(VoiceflowApiKey.user_id == user_id)
                .first()
            )
            if row is None:
                return None
            return decrypt_secret(row.encrypted_api_key)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning("Could not load Voiceflow API key for %s: %s", user_id, e)
        except (InvalidToken, ValueError) as e:
            logger.warning("Could not decrypt Voiceflow API key for %s: %s", user_id, e)
        return None
