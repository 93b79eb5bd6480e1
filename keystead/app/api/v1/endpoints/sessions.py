# keystead/app/api/v1/endpoints/sessions.py
"""
Login protocol.

1. POST /sessions/credentials  prove the password → challenge-access token
2. POST /sessions/challenges   present a device key → encrypted challenge
                               + session-access token
3. POST /sessions              return the decrypted challenge → access
                               + refresh token
4. POST /sessions/tokens/refresh-tokens  refresh token → access token

Each step only accepts the token minted by the step before it.
"""
from fastapi import APIRouter, Depends, Request

from keystead.app.api import deps
from keystead.app.schemas.session import (
    AccessTokenResponse,
    ChallengeAccessResponse,
    ChallengeRequest,
    ChallengeResponse,
    CredentialsRequest,
    RefreshRequest,
    SessionCreateRequest,
    SessionTokens,
)
from keystead.app.security.jwt import TokenCodec, TokenScope
from keystead.app.security.keys import public_key_bytes
from keystead.app.services.challenges import ChallengeManager
from keystead.app.services.credentials import CredentialVerifier
from keystead.app.services.devices import DeviceRegistry
from keystead.app.services.sessions import SessionManager

router = APIRouter()


@router.post("/credentials", response_model=ChallengeAccessResponse)
async def exchange_credentials(
        body: CredentialsRequest,
        verifier: CredentialVerifier = Depends(deps.get_credential_verifier),
        codec: TokenCodec = Depends(deps.get_token_codec),
):
    user_id = await verifier.authenticate(body.username_or_email, body.password_hash)

    # Short-lived: only good for asking a device challenge
    return ChallengeAccessResponse(
        challenge_access_token=codec.issue(TokenScope.CHALLENGE_ACCESS, user_id)
    )


@router.post("/challenges", response_model=ChallengeResponse)
async def issue_device_challenge(
        body: ChallengeRequest,
        codec: TokenCodec = Depends(deps.get_token_codec),
        registry: DeviceRegistry = Depends(deps.get_device_registry),
        challenges: ChallengeManager = Depends(deps.get_challenge_manager),
):
    claims = codec.validate(TokenScope.CHALLENGE_ACCESS, body.challenge_access_token)

    device = await registry.find_or_register(public_key_bytes(body.public_key))
    issued = await challenges.issue_challenge(device, claims.user_id)

    return ChallengeResponse(
        encrypted_challenge=issued.encrypted,
        session_access_token=codec.issue(TokenScope.SESSION_ACCESS, claims.user_id, device.id),
    )


@router.post("", response_model=SessionTokens)
async def create_session(
        body: SessionCreateRequest,
        request: Request,
        challenges: ChallengeManager = Depends(deps.get_challenge_manager),
        sessions: SessionManager = Depends(deps.get_session_manager),
):
    verified = await challenges.verify_response(body.session_access_token, body.client_response)

    return await sessions.create_or_rotate(
        verified.user_id,
        verified.device_id,
        ip_address=deps.get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )


@router.post("/tokens/refresh-tokens", response_model=AccessTokenResponse)
async def refresh_access_token(
        body: RefreshRequest,
        sessions: SessionManager = Depends(deps.get_session_manager),
):
    return AccessTokenResponse(access_token=await sessions.refresh(body.refresh_token))
