"""
Tests for the auth gate middleware and the public endpoint allow-list.

The gate is mounted on a small app of its own so every path and method
combination can be probed without a database.
"""
import uuid
from datetime import timedelta

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from keystead.app.api import deps
from keystead.app.api.middleware import AuthContext, AuthGateMiddleware, extract_bearer_token
from keystead.app.core.config import PublicEndpoint
from keystead.app.security.jwt import TokenScope, create_token


@pytest.fixture
def gated_client(codec, settings) -> TestClient:
    app = FastAPI()
    app.add_middleware(
        AuthGateMiddleware,
        codec=codec,
        public_endpoints=settings.public_endpoints,
    )

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.post("/api/v1/sessions/credentials")
    def credentials():
        return {"public": True}

    @app.get("/api/v1/sessions/credentials")
    def credentials_get():
        return {"public": False}

    @app.post("/api/v1/users/me/email-verification")
    def request_verification(auth: AuthContext = Depends(deps.get_auth_context)):
        return {"userId": str(auth.user_id)}

    @app.get("/api/v1/vault")
    def vault(auth: AuthContext = Depends(deps.get_auth_context)):
        return {"userId": str(auth.user_id), "deviceId": str(auth.device_id)}

    return TestClient(app)


class TestPublicEndpoint:

    def test_exact_match(self):
        endpoint = PublicEndpoint("/api/v1/sessions", "POST")

        assert endpoint.matches("/api/v1/sessions", "POST")
        assert endpoint.matches("/api/v1/sessions/", "post")
        assert not endpoint.matches("/api/v1/sessions", "GET")
        assert not endpoint.matches("/api/v1/sessions/other", "POST")
        assert not endpoint.matches("/api/v1/sessionsx", "POST")

    def test_prefix_match_stops_at_segment_boundary(self):
        endpoint = PublicEndpoint("/docs", "GET", prefix=True)

        assert endpoint.matches("/docs", "GET")
        assert endpoint.matches("/docs/oauth2-redirect", "GET")
        assert not endpoint.matches("/docsearch", "GET")

    def test_root_is_exact(self):
        endpoint = PublicEndpoint("/", "GET")

        assert endpoint.matches("/", "GET")
        assert not endpoint.matches("/anything", "GET")

    def test_default_allow_list(self, settings):
        public = settings.public_endpoints

        def is_public(path, method):
            return any(ep.matches(path, method) for ep in public)

        for path in (
            "/api/v1/sessions/credentials",
            "/api/v1/sessions/challenges",
            "/api/v1/sessions",
            "/api/v1/sessions/tokens/refresh-tokens",
            "/api/v1/users",
            "/api/v1/users/email-verification",
        ):
            assert is_public(path, "POST"), path

        assert is_public("/health", "GET")
        assert not is_public("/api/v1/users/me", "GET")
        assert not is_public("/api/v1/users/me", "DELETE")
        assert not is_public("/api/v1/users/me/email-verification", "POST")
        assert not is_public("/api/v1/sessions/credentials", "GET")


def test_extract_bearer_token():
    assert extract_bearer_token("Bearer abc") == "abc"
    assert extract_bearer_token("Bearer   abc  ") == "abc"
    assert extract_bearer_token("Bearer ") is None
    assert extract_bearer_token("Basic abc") is None
    assert extract_bearer_token(None) is None


class TestGate:

    def test_public_endpoint_needs_no_token(self, gated_client):
        assert gated_client.get("/health").status_code == 200
        assert gated_client.post("/api/v1/sessions/credentials").json() == {"public": True}

    def test_same_path_other_method_is_gated(self, gated_client):
        response = gated_client.get("/api/v1/sessions/credentials")

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_missing_header(self, gated_client):
        response = gated_client.get("/api/v1/vault")

        assert response.status_code == 401
        assert "detail" in response.json()

    def test_valid_access_token_sets_identity(self, gated_client, codec):
        user_id, device_id = uuid.uuid4(), uuid.uuid4()
        token = codec.issue(TokenScope.ACCESS, user_id, device_id)

        response = gated_client.get("/api/v1/vault", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200
        assert response.json() == {"userId": str(user_id), "deviceId": str(device_id)}

    def test_sub_path_of_public_endpoint_is_gated(self, gated_client):
        response = gated_client.post("/api/v1/users/me/email-verification")
        assert response.status_code == 401

    @pytest.mark.parametrize(
        "scope",
        [TokenScope.REFRESH, TokenScope.SESSION_ACCESS, TokenScope.CHALLENGE_ACCESS],
    )
    def test_other_scopes_are_refused(self, gated_client, codec, scope):
        token = codec.issue(scope, uuid.uuid4(), uuid.uuid4())

        response = gated_client.get("/api/v1/vault", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401

    def test_expired_and_forged_tokens_get_same_answer(self, gated_client, settings):
        user_id, device_id = uuid.uuid4(), uuid.uuid4()
        expired = create_token(
            user_id,
            settings.ACCESS_TOKEN_SECRET,
            timedelta(seconds=-1),
            device_id=device_id,
            scope=TokenScope.ACCESS,
        )
        forged = create_token(
            user_id,
            "not-the-secret",
            timedelta(minutes=1),
            device_id=device_id,
            scope=TokenScope.ACCESS,
        )

        answers = [
            gated_client.get("/api/v1/vault", headers={"Authorization": f"Bearer {token}"})
            for token in (expired, forged)
        ]

        assert [r.status_code for r in answers] == [401, 401]
        assert answers[0].json() == answers[1].json()
