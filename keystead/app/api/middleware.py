# keystead/app/api/middleware.py
"""
Auth gate: every request that is not on the public allow-list must carry a
valid access token.

The gate runs before routing and keeps no state of its own. On success it
puts an AuthContext on `request.state.auth`; handlers read it through
`deps.get_auth_context`. Every rejected token gets the same 401 body so
callers cannot tell an expired token from a forged one.
"""
import logging
import uuid
from dataclasses import dataclass
from typing import Optional, Sequence

from fastapi import status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from keystead.app.core.config import PublicEndpoint
from keystead.app.core.exceptions import InvalidTokenError
from keystead.app.security.jwt import TokenCodec, TokenScope

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class AuthContext:
    user_id: uuid.UUID
    device_id: uuid.UUID


def extract_bearer_token(header: Optional[str]) -> Optional[str]:
    if not header or not header.startswith(BEARER_PREFIX):
        return None
    token = header[len(BEARER_PREFIX):].strip()
    return token or None


def _unauthorized(detail: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"detail": detail},
        headers={"WWW-Authenticate": "Bearer"},
    )


class AuthGateMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app: ASGIApp,
        codec: TokenCodec,
        public_endpoints: Sequence[PublicEndpoint],
    ):
        super().__init__(app)
        self.codec = codec
        self.public_endpoints = tuple(public_endpoints)

    def is_public(self, path: str, method: str) -> bool:
        return any(ep.matches(path, method) for ep in self.public_endpoints)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if self.is_public(request.url.path, request.method):
            return await call_next(request)

        token = extract_bearer_token(request.headers.get("Authorization"))
        if token is None:
            return _unauthorized("Missing or invalid Authorization header")

        try:
            claims = self.codec.validate(TokenScope.ACCESS, token)
        except InvalidTokenError:
            return _unauthorized(InvalidTokenError.detail)

        request.state.auth = AuthContext(user_id=claims.user_id, device_id=claims.device_id)
        return await call_next(request)
