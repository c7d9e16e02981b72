"""
Per-user, per-provider, per-endpoint daily call budgets.

check_and_consume() is the gate: it decides and counts in one UPDATE so two
concurrent requests can never both see "9 of 10 used" and both proceed.
track() is the audit trail, written once a call was actually dispatched.

Store errors are not caught here. A limiter that cannot reach its counters
denies by raising, it never silently lets calls through.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
from uuid import UUID

from sqlalchemy import and_, case, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.api_rate_limit import ApiCallLog, ApiRateLimit

logger = logging.getLogger(__name__)

RATE_WINDOW = timedelta(hours=24)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RateLimitService:
    def __init__(self, db: Session, clock: Optional[Clock] = None) -> None:
        self.db = db
        self._clock = clock or _utcnow

    def check_and_consume(
        self, user_id: UUID, provider: str, endpoint: str, limit: int
    ) -> bool:
        """
        Consume one call from the (user, provider, endpoint) budget.

        Returns True if the call is allowed (and counted), False if the window's
        budget is spent. An expired or missing window starts fresh at one call
        with a reset 24 hours from now.
        """
        if limit <= 0:
            return False
        now = self._clock()
        if self._consume_existing(user_id, provider, endpoint, limit, now):
            return True
        if self.get_counter(user_id, provider, endpoint) is not None:
            # either spent, or opened by a concurrent request since our UPDATE
            return self._consume_existing(user_id, provider, endpoint, limit, now)

        counter = ApiRateLimit(
            user_id=user_id,
            provider=provider,
            endpoint=endpoint,
            calls_made=1,
            reset_at=now + RATE_WINDOW,
        )
        self.db.add(counter)
        try:
            self.db.commit()
        except IntegrityError:
            # another request opened the window first; count against it
            self.db.rollback()
            return self._consume_existing(user_id, provider, endpoint, limit, now)
        return True

    def _consume_existing(
        self,
        user_id: UUID,
        provider: str,
        endpoint: str,
        limit: int,
        now: datetime,
    ) -> bool:
        expired = ApiRateLimit.reset_at <= now
        stmt = (
            update(ApiRateLimit)
            .where(
                and_(
                    ApiRateLimit.user_id == user_id,
                    ApiRateLimit.provider == provider,
                    ApiRateLimit.endpoint == endpoint,
                    or_(expired, ApiRateLimit.calls_made < limit),
                )
            )
            .values(
                calls_made=case((expired, 1), else_=ApiRateLimit.calls_made + 1),
                reset_at=case((expired, now + RATE_WINDOW), else_=ApiRateLimit.reset_at),
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.db.execute(stmt)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return result.rowcount == 1

    def get_counter(
        self, user_id: UUID, provider: str, endpoint: str
    ) -> Optional[ApiRateLimit]:
        counter = (
            self.db.query(ApiRateLimit)
            .filter(
                ApiRateLimit.user_id == user_id,
                ApiRateLimit.provider == provider,
                ApiRateLimit.endpoint == endpoint,
            )
            .first()
        )
        if counter is not None:
            self.db.refresh(counter)
        return counter

    def track(self, user_id: UUID, provider: str, endpoint: str) -> ApiCallLog:
        """Record that a call to (provider, endpoint) was dispatched for user."""
        entry = ApiCallLog(
            user_id=user_id,
            provider=provider,
            endpoint=endpoint,
            called_at=self._clock(),
        )
        self.db.add(entry)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(entry)
        logger.debug("Tracked %s/%s call for user %s", provider, endpoint, user_id)
        return entry
