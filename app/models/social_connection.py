"""SocialConnection model: a user's Facebook page or Instagram account credential."""

from __future__ import annotations

import uuid

from sqlalchemy import Column, DateTime, LargeBinary, String, Uuid

from app.db import Base
from app.models.mixins import TimestampMixin


class SocialConnection(Base, TimestampMixin):
    """
    Facebook connections carry fb_page_id, Instagram ones ig_account_id.
    The page/account access token is Fernet-encrypted before storage.
    """

    __tablename__ = "social_connections"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False, index=True)
    fb_page_id = Column(String(128), nullable=True)
    ig_account_id = Column(String(128), nullable=True)
    encrypted_access_token = Column(LargeBinary, nullable=False)
    token_expiry = Column(DateTime(timezone=True), nullable=True)
    refreshed_at = Column(DateTime(timezone=True), nullable=True)
