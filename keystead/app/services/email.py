# keystead/app/services/email.py
"""
Email address verification.

A verification link carries a short-lived EMAIL_VERIFICATION token. Mail
delivery goes through an EmailSender; the default sender only logs, real
transports plug in via the `get_email_sender` dependency.
"""
import logging
from typing import Protocol
from urllib.parse import urlencode

from sqlalchemy.ext.asyncio import AsyncSession

from keystead.app.core.exceptions import NotFoundError
from keystead.app.db.base import commit_or_raise
from keystead.app.models.user import User
from keystead.app.security.jwt import TokenCodec, TokenScope

logger = logging.getLogger(__name__)


class EmailSender(Protocol):
    async def send(self, to: str, subject: str, body: str) -> None:
        ...


class LoggingEmailSender:
    """
    Writes outgoing mail headers to the log instead of sending it.

    The body carries a live token and is left out.
    """

    async def send(self, to: str, subject: str, body: str) -> None:
        logger.info("Email to %s: %s (%d chars)", to, subject, len(body))


class EmailVerificationService:
    def __init__(
        self,
        db: AsyncSession,
        codec: TokenCodec,
        sender: EmailSender,
        base_url: str,
    ):
        self.db = db
        self.codec = codec
        self.sender = sender
        self.base_url = base_url

    def build_link(self, user: User) -> str:
        token = self.codec.issue(TokenScope.EMAIL_VERIFICATION, user.id)
        return f"{self.base_url}?{urlencode({'token': token})}"

    async def send_verification(self, user: User) -> None:
        link = self.build_link(user)
        await self.sender.send(
            user.email,
            "Verify your email address",
            f'<p>Confirm your address by opening <a href="{link}">this link</a>.</p>',
        )

    async def confirm(self, token: str) -> User:
        """
        Mark the token's user as verified. Idempotent.

        Raises:
            InvalidTokenError: bad or expired verification token
            NotFoundError: user no longer exists
        """
        claims = self.codec.validate(TokenScope.EMAIL_VERIFICATION, token)

        user = await self.db.get(User, claims.user_id)
        if user is None:
            raise NotFoundError("User was not found")

        if not user.email_verified:
            user.email_verified = True
            await commit_or_raise(self.db)
            logger.info("Verified email of user %s", user.id)
        return user
