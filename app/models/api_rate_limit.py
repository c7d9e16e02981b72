"""
Rate limit counters and the API call audit log.

ApiRateLimit holds one daily budget per (user, provider, endpoint); the counter
is only ever changed through single UPDATE statements so concurrent requests
cannot both read the same count. ApiCallLog records calls after the fact.
"""

from __future__ import annotations

import uuid

from sqlalchemy import (
    Column,
    DateTime,
    Index,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)

from app.db import Base
from app.models.mixins import TimestampMixin, utcnow


class ApiRateLimit(Base, TimestampMixin):
    __tablename__ = "api_rate_limits"

    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "provider",
            "endpoint",
            name="uq_api_rate_limits_user_provider_endpoint",
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False)
    provider = Column(String(64), nullable=False)
    endpoint = Column(String(128), nullable=False)
    calls_made = Column(Integer, nullable=False, default=0)
    reset_at = Column(DateTime(timezone=True), nullable=False)


class ApiCallLog(Base):
    __tablename__ = "api_call_logs"

    __table_args__ = (
        Index(
            "ix_api_call_logs_user_provider_called_at",
            "user_id",
            "provider",
            "called_at",
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False)
    provider = Column(String(64), nullable=False)
    endpoint = Column(String(128), nullable=False)
    called_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
