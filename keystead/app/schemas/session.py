# keystead/app/schemas/session.py
"""
Request/response bodies of the login protocol.

    /sessions/credentials            → challengeAccessToken
    /sessions/challenges             → encryptedChallenge + sessionAccessToken
    /sessions                        → accessToken + refreshToken
    /sessions/tokens/refresh-tokens  → accessToken
"""
import uuid

from pydantic import ConfigDict, Field

from keystead.app.schemas.user import CamelModel


class CredentialsRequest(CamelModel):
    username_or_email: str = Field(..., min_length=1, max_length=254)
    password_hash: str = Field(..., min_length=1, max_length=1024)


class ChallengeAccessResponse(CamelModel):
    challenge_access_token: str


class ChallengeRequest(CamelModel):
    challenge_access_token: str
    # PEM-encoded RSA public key of the device
    public_key: str = Field(..., min_length=1, max_length=8192)


class ChallengeResponse(CamelModel):
    # base64 RSA-OAEP ciphertext of the challenge payload
    encrypted_challenge: str
    session_access_token: str


class SessionCreateRequest(CamelModel):
    session_access_token: str
    # Decrypted challenge, exactly as recovered by the device
    client_response: str = Field(..., min_length=1, max_length=8192)


class SessionTokens(CamelModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class RefreshRequest(CamelModel):
    refresh_token: str


class AccessTokenResponse(CamelModel):
    access_token: str
    token_type: str = "bearer"


class ChallengePayload(CamelModel):
    """Plaintext of a device challenge."""
    model_config = ConfigDict(extra="forbid")

    device_id: uuid.UUID
    user_id: uuid.UUID
    random: str = Field(..., min_length=1)
