"""Read access to users' Meta page/account connections."""

from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.credentials import decrypt_secret
from app.models.social_connection import SocialConnection
from app.schemas.messaging import Platform


class SocialConnectionService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_connections(self, user_id: UUID) -> List[SocialConnection]:
        return (
            self.db.query(SocialConnection)
            .filter(SocialConnection.user_id == user_id)
            .order_by(SocialConnection.created_at)
            .all()
        )

    def get_connection_for_platform(
        self,
        user_id: UUID,
        platform: Platform,
        account_id: Optional[str] = None,
    ) -> Optional[SocialConnection]:
        """
        Find the user's connection for a platform.

        Facebook connections are matched on fb_page_id, Instagram ones on
        ig_account_id. With account_id, only that page/account matches.
        """
        for connection in self.get_connections(user_id):
            connection_account = self.account_id_for(connection, platform)
            if not connection_account:
                continue
            if account_id is None or connection_account == account_id:
                return connection
        return None

    @staticmethod
    def account_id_for(
        connection: SocialConnection, platform: Platform
    ) -> Optional[str]:
        if platform == Platform.FACEBOOK:
            return connection.fb_page_id
        if platform == Platform.INSTAGRAM:
            return connection.ig_account_id
        return None

    @staticmethod
    def get_access_token(connection: SocialConnection) -> str:
        """Decrypt and return the connection's access token. Internal use only."""
        return decrypt_secret(connection.encrypted_access_token)
