# keystead/app/security/jwt.py
"""
Scoped, short-lived JWTs.

Every stage of the login protocol gets its own token scope, and every scope
is signed with its own secret. A challenge-access token therefore fails
signature verification at the session endpoint even though both tokens
carry the same claims. The scope is also written into the token and checked
on decode.

Claims:
    sub       user id (UUID string)
    deviceId  device id (UUID string), required for device-bound scopes
    scope     TokenScope value
    jti       random id, makes every issued token unique
    iat, exp  issue and expiry time; expiry is checked with zero leeway
"""
import enum
import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import timedelta
from types import MappingProxyType
from typing import Mapping, Optional

from jose import jwt, JWTError

from keystead.app.core.clock import utcnow
from keystead.app.core.exceptions import InvalidTokenError

logger = logging.getLogger(__name__)

DEFAULT_ALGORITHM = "HS256"
DEVICE_CLAIM = "deviceId"
SCOPE_CLAIM = "scope"


class TokenScope(str, enum.Enum):
    CHALLENGE_ACCESS = "challenge_access"
    SESSION_ACCESS = "session_access"
    ACCESS = "access"
    REFRESH = "refresh"
    EMAIL_VERIFICATION = "email_verification"


@dataclass(frozen=True)
class TokenClaims:
    user_id: uuid.UUID
    device_id: Optional[uuid.UUID] = None
    scope: Optional[TokenScope] = None


def create_token(
    subject: uuid.UUID,
    secret: str,
    ttl: timedelta,
    device_id: Optional[uuid.UUID] = None,
    scope: Optional[TokenScope] = None,
    algorithm: str = DEFAULT_ALGORITHM,
) -> str:
    """Sign a token for `subject` that expires `ttl` from now."""
    now = utcnow()
    claims = {
        "sub": str(subject),
        "jti": secrets.token_urlsafe(16),
        "iat": now,
        "exp": now + ttl,
    }
    if device_id is not None:
        claims[DEVICE_CLAIM] = str(device_id)
    if scope is not None:
        claims[SCOPE_CLAIM] = scope.value
    return jwt.encode(claims, secret, algorithm=algorithm)


def decode_token(
    token: str,
    secret: str,
    check_expiry: bool = True,
    require_device: bool = False,
    scope: Optional[TokenScope] = None,
    algorithm: str = DEFAULT_ALGORITHM,
) -> TokenClaims:
    """
    Verify signature, algorithm and expiry, then parse the identity claims.

    Raises:
        InvalidTokenError: on any failure; `reason` names the cause
    """
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[algorithm],
            options={
                "verify_exp": check_expiry,
                "require_exp": True,
                "require_sub": True,
                "leeway": 0,
            },
        )
    except JWTError as exc:
        raise InvalidTokenError(str(exc)) from exc

    if scope is not None and payload.get(SCOPE_CLAIM) != scope.value:
        raise InvalidTokenError("scope mismatch")

    try:
        user_id = uuid.UUID(payload["sub"])
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidTokenError("subject is not a valid id") from exc

    device_id = None
    raw_device = payload.get(DEVICE_CLAIM)
    if raw_device is None:
        if require_device:
            raise InvalidTokenError("missing device id")
    else:
        try:
            device_id = uuid.UUID(raw_device)
        except (TypeError, ValueError) as exc:
            raise InvalidTokenError("device id is not a valid id") from exc

    return TokenClaims(user_id=user_id, device_id=device_id, scope=scope)


@dataclass(frozen=True)
class ScopeKey:
    """Signing identity of one scope."""
    secret: str
    ttl: timedelta
    max_ttl: Optional[timedelta] = None
    requires_device: bool = False


class TokenCodec:
    """
    Issues and validates tokens by scope.

    Callers name a TokenScope, never a secret, so a token can only be
    checked against the key of the stage that expects it.
    """

    def __init__(
        self,
        keys: Mapping[TokenScope, ScopeKey],
        algorithm: str = DEFAULT_ALGORITHM,
    ):
        missing = set(TokenScope) - set(keys)
        if missing:
            raise ValueError(f"no key configured for {sorted(s.value for s in missing)}")

        secrets_in_use = [key.secret for key in keys.values()]
        if len(set(secrets_in_use)) != len(secrets_in_use):
            raise ValueError("each token scope needs its own secret")

        self._keys = MappingProxyType(dict(keys))
        self.algorithm = algorithm

    @classmethod
    def from_settings(cls, settings) -> "TokenCodec":
        return cls(
            {
                TokenScope.CHALLENGE_ACCESS: ScopeKey(
                    secret=settings.CHALLENGE_ACCESS_TOKEN_SECRET,
                    ttl=timedelta(seconds=settings.CHALLENGE_ACCESS_TOKEN_EXPIRE_SECONDS),
                ),
                TokenScope.SESSION_ACCESS: ScopeKey(
                    secret=settings.SESSION_ACCESS_TOKEN_SECRET,
                    ttl=timedelta(seconds=settings.SESSION_ACCESS_TOKEN_EXPIRE_SECONDS),
                    requires_device=True,
                ),
                TokenScope.ACCESS: ScopeKey(
                    secret=settings.ACCESS_TOKEN_SECRET,
                    ttl=timedelta(seconds=settings.ACCESS_TOKEN_EXPIRE_SECONDS),
                    requires_device=True,
                ),
                TokenScope.REFRESH: ScopeKey(
                    secret=settings.REFRESH_TOKEN_SECRET,
                    ttl=timedelta(seconds=settings.REFRESH_TOKEN_EXPIRE_SECONDS),
                    max_ttl=timedelta(seconds=settings.REFRESH_TOKEN_MAX_EXPIRE_SECONDS),
                    requires_device=True,
                ),
                TokenScope.EMAIL_VERIFICATION: ScopeKey(
                    secret=settings.EMAIL_TOKEN_SECRET,
                    ttl=timedelta(seconds=settings.EMAIL_TOKEN_EXPIRE_SECONDS),
                ),
            },
            algorithm=settings.ALGORITHM,
        )

    def ttl(self, scope: TokenScope) -> timedelta:
        return self._keys[scope].ttl

    def issue(
        self,
        scope: TokenScope,
        user_id: uuid.UUID,
        device_id: Optional[uuid.UUID] = None,
        ttl: Optional[timedelta] = None,
    ) -> str:
        key = self._keys[scope]
        ttl = ttl if ttl is not None else key.ttl

        if ttl <= timedelta(0):
            raise ValueError("token lifetime must be positive")
        if key.max_ttl is not None and ttl > key.max_ttl:
            raise ValueError(f"{scope.value} tokens may not live longer than {key.max_ttl}")
        if key.requires_device and device_id is None:
            raise ValueError(f"{scope.value} tokens must carry a device id")

        return create_token(
            user_id,
            key.secret,
            ttl,
            device_id=device_id,
            scope=scope,
            algorithm=self.algorithm,
        )

    def validate(
        self,
        scope: TokenScope,
        token: str,
        check_expiry: bool = True,
    ) -> TokenClaims:
        key = self._keys[scope]
        try:
            return decode_token(
                token,
                key.secret,
                check_expiry=check_expiry,
                require_device=key.requires_device,
                scope=scope,
                algorithm=self.algorithm,
            )
        except InvalidTokenError as exc:
            logger.info("Rejected %s token: %s", scope.value, exc.reason)
            raise
