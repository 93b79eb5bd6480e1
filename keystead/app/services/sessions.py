# keystead/app/services/sessions.py
"""
Per-(user, device) sessions.

A session holds the one refresh token currently valid for its pair.
Re-authenticating through the challenge flow replaces it; refreshing an
access token only reads it. Presenting any other refresh token for the pair,
including one that was valid before the last login, is rejected.
"""
import logging
import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from keystead.app.core.clock import Clock, utcnow
from keystead.app.core.exceptions import UnauthorizedError
from keystead.app.db.base import commit_or_raise
from keystead.app.models.auth_session import AuthSession
from keystead.app.models.device import Device
from keystead.app.schemas.session import SessionTokens
from keystead.app.security.hashing import constant_time_compare
from keystead.app.security.jwt import TokenCodec, TokenScope

logger = logging.getLogger(__name__)


class SessionManager:
    def __init__(self, db: AsyncSession, codec: TokenCodec, clock: Clock = utcnow):
        self.db = db
        self.codec = codec
        self.clock = clock

    async def get(self, user_id: uuid.UUID, device_id: uuid.UUID, lock: bool = False) -> Optional[AuthSession]:
        query = select(AuthSession).where(
            AuthSession.user_id == user_id,
            AuthSession.device_id == device_id,
        )
        if lock:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalars().first()

    async def create_or_rotate(
        self,
        user_id: uuid.UUID,
        device_id: uuid.UUID,
        ip_address: str,
        user_agent: Optional[str] = None,
    ) -> SessionTokens:
        """
        Open the session for (user, device), or rotate the existing one.

        Either way a brand-new refresh token is stored, invalidating the
        previous one.

        Raises:
            ConflictError: a concurrent login created the same session first
        """
        refresh_token = self.codec.issue(TokenScope.REFRESH, user_id, device_id)

        session = await self.get(user_id, device_id, lock=True)
        if session is None:
            session = AuthSession(
                id=uuid.uuid4(),
                user_id=user_id,
                device_id=device_id,
                refresh_token=refresh_token,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            self.db.add(session)
            logger.info("Opening session for user %s on device %s", user_id, device_id)
        else:
            session.refresh_token = refresh_token
            session.ip_address = ip_address
            session.user_agent = user_agent
            logger.info("Rotating session %s", session.id)

        await commit_or_raise(self.db)

        return SessionTokens(
            access_token=self.codec.issue(TokenScope.ACCESS, user_id, device_id),
            refresh_token=refresh_token,
        )

    async def refresh(self, refresh_token: str) -> str:
        """
        Exchange the current refresh token of a session for an access token.

        Raises:
            InvalidTokenError: bad refresh token
            UnauthorizedError: token is not the one currently stored
        """
        claims = self.codec.validate(TokenScope.REFRESH, refresh_token)

        session = await self.get(claims.user_id, claims.device_id)
        if session is None or not constant_time_compare(session.refresh_token, refresh_token):
            logger.info(
                "Stale refresh token for user %s on device %s",
                claims.user_id,
                claims.device_id,
            )
            raise UnauthorizedError("Refresh token is no longer valid")

        device = await self.db.get(Device, claims.device_id)
        if device is not None:
            device.last_seen = self.clock()
            await commit_or_raise(self.db)

        return self.codec.issue(TokenScope.ACCESS, claims.user_id, claims.device_id)
