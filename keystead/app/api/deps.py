# keystead/app/api/deps.py
from datetime import timedelta

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from keystead.app.api.middleware import AuthContext
from keystead.app.core.clock import Clock, utcnow
from keystead.app.core.config import Settings
from keystead.app.core.exceptions import UnauthorizedError
from keystead.app.db.base import get_db
from keystead.app.security.jwt import TokenCodec
from keystead.app.services.challenges import ChallengeManager
from keystead.app.services.credentials import CredentialVerifier
from keystead.app.services.devices import DeviceRegistry
from keystead.app.services.email import EmailSender, EmailVerificationService, LoggingEmailSender
from keystead.app.services.sessions import SessionManager
from keystead.app.services.users import UserService


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_token_codec(request: Request) -> TokenCodec:
    return request.app.state.token_codec


def get_clock() -> Clock:
    return utcnow


def get_email_sender() -> EmailSender:
    return LoggingEmailSender()


def get_auth_context(request: Request) -> AuthContext:
    """Identity put on the request by the auth gate."""
    auth = getattr(request.state, "auth", None)
    if not isinstance(auth, AuthContext):
        raise UnauthorizedError("Missing or invalid user/device information")
    return auth


def get_client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def get_credential_verifier(
        db: AsyncSession = Depends(get_db),
        settings: Settings = Depends(get_app_settings),
) -> CredentialVerifier:
    return CredentialVerifier(db, pepper=settings.SERVER_SECRET)


def get_device_registry(db: AsyncSession = Depends(get_db)) -> DeviceRegistry:
    return DeviceRegistry(db)


def get_challenge_manager(
        db: AsyncSession = Depends(get_db),
        codec: TokenCodec = Depends(get_token_codec),
        settings: Settings = Depends(get_app_settings),
        clock: Clock = Depends(get_clock),
) -> ChallengeManager:
    return ChallengeManager(
        db,
        codec,
        ttl=timedelta(seconds=settings.CHALLENGE_TTL_SECONDS),
        clock=clock,
    )


def get_session_manager(
        db: AsyncSession = Depends(get_db),
        codec: TokenCodec = Depends(get_token_codec),
        clock: Clock = Depends(get_clock),
) -> SessionManager:
    return SessionManager(db, codec, clock=clock)


def get_user_service(db: AsyncSession = Depends(get_db)) -> UserService:
    return UserService(db)


def get_email_verification_service(
        db: AsyncSession = Depends(get_db),
        codec: TokenCodec = Depends(get_token_codec),
        sender: EmailSender = Depends(get_email_sender),
        settings: Settings = Depends(get_app_settings),
) -> EmailVerificationService:
    return EmailVerificationService(db, codec, sender, base_url=settings.EMAIL_VERIFICATION_URL)
