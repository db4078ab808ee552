"""
Tests for the OAuth broker HTTP endpoints
"""
from urllib.parse import urlsplit, parse_qs

import jwt
import pytest
from fastapi.testclient import TestClient

from oauth_broker.app import app, get_dispatcher, get_subject_resolver
from oauth_broker.core.state import CallbackState
from oauth_broker.core.subjects import SubjectResolver


class TestOAuthEndpoints:
    """Test suite for the broker endpoints"""

    @pytest.fixture
    def client(self, dispatcher, jwt_secret):
        """Test client wired to the fixture dispatcher"""
        app.dependency_overrides[get_dispatcher] = lambda: dispatcher
        app.dependency_overrides[get_subject_resolver] = lambda: SubjectResolver(jwt_secret)
        yield TestClient(app)
        app.dependency_overrides.clear()

    @pytest.fixture
    def auth_headers(self, jwt_secret):
        """Bearer header for user-123 / jdoe"""
        token = jwt.encode({"sub": "user-123", "username": "jdoe"}, jwt_secret, algorithm="HS256")
        return {"Authorization": f"Bearer {token}"}

    def test_health_endpoint(self, client):
        """Test health check endpoint"""
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "oauth-broker"

    def test_authenticate_redirects(self, client, state_codec):
        """Test authenticate answers with a temporary redirect to the provider"""
        response = client.get(
            "/oauth/authenticate",
            params={
                "oauth_provider": "github",
                "scope": ["repo", "user"],
                "redirect_after_login": "https://che.example.com/dashboard",
            },
            follow_redirects=False,
        )

        assert response.status_code == 307
        params = parse_qs(urlsplit(response.headers["location"]).query)
        assert params["redirect_uri"] == ["http://testserver/oauth/callback"]
        state = state_codec.decode(params["state"][0])
        assert state.scope == ["repo", "user"]
        assert state.redirect_after_login == "https://che.example.com/dashboard"

    def test_authenticate_unknown_provider(self, client):
        """Test unregistered provider returns 404"""
        response = client.get(
            "/oauth/authenticate",
            params={"oauth_provider": "bitbucket-cloud"},
            follow_redirects=False,
        )
        assert response.status_code == 404
        assert "Unsupported OAuth provider" in response.json()["detail"]

    def test_callback_access_denied(self, client, state_codec):
        """Test provider denial redirects back with an error code"""
        state = state_codec.encode(CallbackState(
            oauth_provider="github",
            redirect_after_login="https://che.example.com/dashboard?a=1",
        ))

        response = client.get(
            "/oauth/callback",
            params={"state": state, "error": "access_denied"},
            follow_redirects=False,
        )

        assert response.status_code == 307
        assert "error_code=access_denied" in urlsplit(response.headers["location"]).query

    def test_callback_success(self, client, state_codec, store):
        """Test a completed callback stores the token and redirects"""
        state = state_codec.encode(CallbackState(
            oauth_provider="github",
            redirect_after_login="https://che.example.com/dashboard",
            user_id="user-123",
        ))

        response = client.get(
            "/oauth/callback",
            params={"state": state, "code": "xyz"},
            follow_redirects=False,
        )

        assert response.status_code == 307
        assert response.headers["location"] == "https://che.example.com/dashboard"

    def test_callback_invalid_state(self, client):
        response = client.get("/oauth/callback", params={"state": "garbage"}, follow_redirects=False)
        assert response.status_code == 400

    def test_registered_authenticators(self, client):
        """Test the provider directory lists every registered provider"""
        response = client.get("/oauth")

        assert response.status_code == 200
        data = response.json()
        assert [d["name"] for d in data] == ["bitbucket-server", "github"]
        link = data[1]["links"][0]
        assert link["href"] == "http://testserver/oauth/authenticate"
        assert link["parameters"][0] == {
            "name": "oauth_provider",
            "default_value": "github",
            "required": True,
            "description": None,
        }

    def test_get_token(self, client, auth_headers, dispatcher, store):
        """Test token lookup for the bearer subject"""
        import asyncio
        asyncio.run(store.put("github", "jdoe", "gho_secret"))

        response = client.get("/oauth/token", params={"oauth_provider": "github"}, headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["token"] == "gho_secret"

    def test_get_token_requires_authentication(self, client):
        response = client.get("/oauth/token", params={"oauth_provider": "github"})
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_get_token_invalid_bearer(self, client):
        response = client.get(
            "/oauth/token",
            params={"oauth_provider": "github"},
            headers={"Authorization": "Bearer not-a-jwt"},
        )
        assert response.status_code == 401

    def test_get_token_not_stored(self, client, auth_headers):
        response = client.get("/oauth/token", params={"oauth_provider": "github"}, headers=auth_headers)
        assert response.status_code == 401

    def test_get_token_unknown_provider(self, client, auth_headers):
        response = client.get("/oauth/token", params={"oauth_provider": "svn"}, headers=auth_headers)
        assert response.status_code == 404

    def test_invalidate_token(self, client, auth_headers, store):
        """Test token invalidation removes the stored credential"""
        import asyncio
        asyncio.run(store.put("github", "user-123", "gho_secret"))

        response = client.delete("/oauth/token", params={"oauth_provider": "github"}, headers=auth_headers)

        assert response.status_code == 204
        assert asyncio.run(store.get("github", "user-123")) is None

    def test_invalidate_missing_token(self, client, auth_headers):
        response = client.delete("/oauth/token", params={"oauth_provider": "github"}, headers=auth_headers)
        assert response.status_code == 401

    def test_get_token_unknown_provider_without_bearer(self, client):
        """Test unregistered provider is reported before authentication"""
        response = client.get("/oauth/token", params={"oauth_provider": "svn"})
        assert response.status_code == 404

    def test_invalidate_unknown_provider_without_bearer(self, client):
        response = client.delete("/oauth/token", params={"oauth_provider": "svn"})
        assert response.status_code == 404

    def test_invalidate_requires_authentication(self, client, store):
        """Test anonymous invalidation is rejected and keeps stored tokens"""
        import asyncio
        asyncio.run(store.put("github", "0000-00-0000", "gho_secret"))

        response = client.delete("/oauth/token", params={"oauth_provider": "github"})

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"
        assert asyncio.run(store.get("github", "0000-00-0000")) is not None
