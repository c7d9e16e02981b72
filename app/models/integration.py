"""Per-user Voiceflow integration records (project mapping and API key)."""

from __future__ import annotations

import uuid

from sqlalchemy import JSON, Column, LargeBinary, String, Uuid
from sqlalchemy.dialects.postgresql import JSONB

from app.db import Base
from app.models.mixins import TimestampMixin


class VoiceflowMapping(Base, TimestampMixin):
    """Which Voiceflow project (and version) answers a user's conversations."""

    __tablename__ = "voiceflow_mappings"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False, index=True)
    project_id = Column(String(128), nullable=False)
    version_id = Column(String(128), nullable=False, default="latest")
    config = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=True)


class VoiceflowApiKey(Base, TimestampMixin):
    """Per-user Voiceflow API key. The key is Fernet-encrypted at rest."""

    __tablename__ = "voiceflow_api_keys"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False, unique=True)
    encrypted_api_key = Column(LargeBinary, nullable=False)
