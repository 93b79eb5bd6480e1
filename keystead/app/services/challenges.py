# keystead/app/services/challenges.py
"""
Device challenges: proof that the caller holds a device's private key.

Lifecycle of a device's challenge:

    none ──issue──▶ pending ──verify──▶ verified (row deleted, device linked)
                       │
                       ├── older than the TTL ──▶ expired
                       └── wrong device / bytes ──▶ rejected

The plaintext is a canonical JSON document (compact, sorted keys) so the
bytes stored at issuance are exactly the bytes a well-behaved client sends
back after decrypting. Verification compares those bytes, not the parsed
structure, which binds the answer to the random nonce that was issued.
"""
import base64
import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import orjson
from pydantic import ValidationError
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from keystead.app.core.clock import Clock, as_utc, utcnow
from keystead.app.core.exceptions import (
    ConflictError,
    PayloadFormatError,
    SecurityViolationError,
    TransientFailureError,
    UnauthorizedError,
)
from keystead.app.db.base import commit_or_raise
from keystead.app.models.device import Device, DeviceChallenge, UserDevice
from keystead.app.schemas.session import ChallengePayload
from keystead.app.security.jwt import TokenCodec, TokenScope
from keystead.app.security.keys import encrypt_with_public_key

logger = logging.getLogger(__name__)

RANDOM_BYTES = 32


@dataclass(frozen=True)
class IssuedChallenge:
    plaintext: bytes
    # base64 RSA-OAEP ciphertext of `plaintext`
    encrypted: str


@dataclass(frozen=True)
class VerifiedDevice:
    user_id: uuid.UUID
    device_id: uuid.UUID


def encode_challenge(payload: ChallengePayload) -> bytes:
    """Canonical byte form: compact JSON, camelCase keys, sorted."""
    return orjson.dumps(
        payload.model_dump(mode="json", by_alias=True),
        option=orjson.OPT_SORT_KEYS,
    )


def decode_challenge(raw: bytes) -> ChallengePayload:
    try:
        return ChallengePayload.model_validate(orjson.loads(raw))
    except (orjson.JSONDecodeError, ValidationError) as exc:
        raise PayloadFormatError("Invalid challenge format") from exc


class ChallengeManager:
    def __init__(
        self,
        db: AsyncSession,
        codec: TokenCodec,
        ttl: timedelta,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.codec = codec
        self.ttl = ttl
        self.clock = clock

    async def _pending(self, device_id: uuid.UUID) -> Optional[DeviceChallenge]:
        result = await self.db.execute(
            select(DeviceChallenge)
            .where(DeviceChallenge.device_id == device_id)
            .with_for_update()
        )
        return result.scalars().first()

    async def issue_challenge(self, device: Device, user_id: uuid.UUID) -> IssuedChallenge:
        """
        Store a fresh challenge for `device`, replacing any pending one, and
        return it in plaintext and encrypted to the device's public key.

        Raises:
            TransientFailureError: the challenge could not be stored; retry
        """
        payload = ChallengePayload(
            device_id=device.id,
            user_id=user_id,
            random=base64.b64encode(secrets.token_bytes(RANDOM_BYTES)).decode("utf-8"),
        )
        plaintext = encode_challenge(payload)
        encrypted = encrypt_with_public_key(plaintext, device.public_key)

        pending = await self._pending(device.id)
        if pending is None:
            self.db.add(DeviceChallenge(device_id=device.id, challenge=plaintext, issued_at=self.clock()))
        else:
            pending.challenge = plaintext
            pending.issued_at = self.clock()

        try:
            await commit_or_raise(self.db)
        except ConflictError as exc:
            # Two issuances raced on a new device; the caller just asks again
            raise TransientFailureError("Failed to save challenge, please retry") from exc

        logger.info("Issued challenge for device %s", device.id)
        return IssuedChallenge(plaintext=plaintext, encrypted=encrypted)

    async def verify_response(self, session_access_token: str, client_response: str) -> VerifiedDevice:
        """
        Check a decrypted challenge against the one issued to the device
        named in the session-access token.

        On success the device is linked to the user, the challenge is
        consumed and last_seen is updated, all in one transaction.

        Raises:
            InvalidTokenError: bad session-access token
            UnauthorizedError: unknown device or bytes differ from the challenge
            SecurityViolationError: no live challenge, or it names another device/user
            PayloadFormatError: response is not a challenge document
        """
        claims = self.codec.validate(TokenScope.SESSION_ACCESS, session_access_token)

        device = await self.db.get(Device, claims.device_id)
        if device is None:
            raise UnauthorizedError("Invalid challenge response")

        now = self.clock()
        pending = await self._pending(device.id)
        if pending is None or now - as_utc(pending.issued_at) > self.ttl:
            logger.info("No live challenge for device %s", device.id)
            raise SecurityViolationError("Challenge expired")

        try:
            response = client_response.encode("utf-8")
        except UnicodeEncodeError as exc:
            # JSON admits lone surrogates that have no UTF-8 form
            raise PayloadFormatError("Invalid challenge format") from exc
        payload = decode_challenge(response)

        if payload.device_id != device.id:
            raise SecurityViolationError("Challenge device ID mismatch")
        if payload.user_id != claims.user_id:
            raise SecurityViolationError("Challenge user ID mismatch")
        if not secrets.compare_digest(response, pending.challenge):
            logger.info("Challenge bytes mismatch for device %s", device.id)
            raise UnauthorizedError("Invalid challenge response")

        # Consume the challenge; a concurrent verify that got here first wins
        result = await self.db.execute(
            delete(DeviceChallenge).where(
                DeviceChallenge.device_id == device.id,
                DeviceChallenge.challenge == pending.challenge,
            ).execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            raise SecurityViolationError("Challenge expired")
        self.db.expunge(pending)

        link = await self.db.get(UserDevice, (claims.user_id, device.id))
        if link is None:
            self.db.add(UserDevice(user_id=claims.user_id, device_id=device.id, linked_at=now))

        device.last_seen = now
        await commit_or_raise(self.db)

        logger.info("Verified device %s for user %s", device.id, claims.user_id)
        return VerifiedDevice(user_id=claims.user_id, device_id=device.id)

    async def purge_expired(self) -> int:
        """Delete challenges past the TTL. Returns the number removed."""
        cutoff = self.clock() - self.ttl
        result = await self.db.execute(
            delete(DeviceChallenge).where(DeviceChallenge.issued_at < cutoff)
            .execution_options(synchronize_session="fetch")
        )
        await commit_or_raise(self.db)
        if result.rowcount:
            logger.info("Purged %d expired challenges", result.rowcount)
        return result.rowcount
