"""Integration tests for the FastAPI routes and session dependency."""

# pylint: disable=redefined-outer-name

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock

import fakeredis.aioredis

from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient
from starlette.middleware.sessions import SessionMiddleware

from oidc_session.auth.lifecycle import SessionLifecycle
from oidc_session.auth.routes import create_auth_router, create_session_dependency
from oidc_session.config import load_settings
from oidc_session.state import get_memory_registry


ORIGIN = {"origin": "http://testserver"}


# ── Helpers ──────────────────────────────────────────────────────────


def _make_app(provider: MagicMock, redis_client: Any = None, **overrides: Any) -> FastAPI:
    settings = load_settings(client_id="client-1", **overrides)
    app = FastAPI()
    app.add_middleware(SessionMiddleware, secret_key="test-secret")
    app.include_router(create_auth_router(settings, provider, redis_client=redis_client))
    return app


def _login(client: TestClient, provider: MagicMock) -> str:
    """Run the login redirect and return the issued state."""
    resp = client.get("/auth/login", follow_redirects=False)
    assert resp.status_code == 302
    assert resp.headers["location"] == "https://idp.test/authorize?state=x"
    return provider.build_authorize_url.call_args.args[1]


# ── Login flow ───────────────────────────────────────────────────────


class TestLoginFlow:
    """Tests for /auth/login and /auth/callback."""

    def test_full_login(self, mock_provider: MagicMock) -> None:
        """Login, callback and /auth/me share the browser session."""
        client = TestClient(_make_app(mock_provider))
        state = _login(client, mock_provider)
        redirect_uri = mock_provider.build_authorize_url.call_args.args[0]
        assert redirect_uri == "http://testserver/auth/callback"

        resp = client.get("/auth/callback", params={"code": "abc", "state": state})
        assert resp.status_code == 200
        assert resp.json() == {"authenticated": True, "user_id": "u1"}
        mock_provider.exchange_code.assert_awaited_once_with("abc", redirect_uri)

        resp = client.get("/auth/me")
        assert resp.status_code == 200
        assert resp.json() == {"user_id": "u1", "claims": None}

    def test_forged_state(self, mock_provider: MagicMock) -> None:
        """A callback with the wrong state is not exchanged."""
        client = TestClient(_make_app(mock_provider))
        _login(client, mock_provider)

        resp = client.get("/auth/callback", params={"code": "abc", "state": "forged"})
        assert resp.json() == {"authenticated": False, "user_id": ""}
        mock_provider.exchange_code.assert_not_awaited()

    def test_sessions_isolated(self, mock_provider: MagicMock) -> None:
        """Another browser cannot complete someone else's login."""
        app = _make_app(mock_provider)
        alice = TestClient(app)
        mallory = TestClient(app)
        state = _login(alice, mock_provider)

        resp = mallory.get("/auth/callback", params={"code": "abc", "state": state})
        assert resp.json()["authenticated"] is False

    def test_provider_error(self, mock_provider: MagicMock) -> None:
        """Provider errors in the callback are reported as 400."""
        client = TestClient(_make_app(mock_provider))
        resp = client.get(
            "/auth/callback", params={"error": "access_denied", "error_description": "Denied"}
        )
        assert resp.status_code == 400
        assert resp.json() == {"error": "access_denied", "error_description": "Denied"}

    def test_endpoint_return_uri(self, mock_provider: MagicMock) -> None:
        """An endpoint destination is resolved through the app's routes."""
        client = TestClient(
            _make_app(
                mock_provider,
                return_uri={"endpoint": "auth_callback", "params": {"lang": "en"}},
            )
        )
        _login(client, mock_provider)
        redirect_uri = mock_provider.build_authorize_url.call_args.args[0]
        assert redirect_uri == "http://testserver/auth/callback?lang=en"

    def test_cookie_backend(self, mock_provider: MagicMock) -> None:
        """The cookie backend keeps the record in the signed session."""
        client = TestClient(_make_app(mock_provider, session_backend="cookie"))
        state = _login(client, mock_provider)
        resp = client.get("/auth/callback", params={"code": "abc", "state": state})
        assert resp.json()["user_id"] == "u1"
        assert client.get("/auth/me").json()["user_id"] == "u1"

    def test_redis_backend(self, mock_provider: MagicMock) -> None:
        """The redis backend stores one hash per browser session."""
        redis_client = fakeredis.aioredis.FakeRedis(decode_responses=True)
        app = _make_app(mock_provider, redis_client=redis_client, session_backend="redis")
        with TestClient(app) as client:
            state = _login(client, mock_provider)
            resp = client.get("/auth/callback", params={"code": "abc", "state": state})
            assert resp.json()["user_id"] == "u1"
            assert client.get("/auth/me").json()["user_id"] == "u1"
            client.portal.call(redis_client.flushall)


# ── Logout ───────────────────────────────────────────────────────────


class TestLogout:
    """Tests for /auth/logout."""

    def _logged_in_client(self, provider: MagicMock, **overrides: Any) -> TestClient:
        client = TestClient(_make_app(provider, **overrides))
        state = _login(client, provider)
        client.get("/auth/callback", params={"code": "abc", "state": state})
        return client

    def test_logout_clears_record(self, mock_provider: MagicMock) -> None:
        """Logging out clears the OAuth record."""
        client = self._logged_in_client(mock_provider)
        resp = client.post("/auth/logout", headers=ORIGIN, follow_redirects=False)
        assert resp.status_code == 303
        assert resp.headers["location"] == "/"
        assert client.get("/auth/me").status_code == 401

    def test_anonymous_visitors_leave_no_session(self, mock_provider: MagicMock) -> None:
        """Requests that never write issue no session id and store nothing."""
        app = _make_app(mock_provider)
        for _ in range(20):
            client = TestClient(app)
            assert client.get("/auth/me").status_code == 401
            assert "session" not in client.cookies
        assert len(get_memory_registry(86400)) == 0

    def test_logout_forgets_memory_session(self, mock_provider: MagicMock) -> None:
        """A cleared record is removed from the process-wide registry."""
        client = self._logged_in_client(mock_provider)
        assert len(get_memory_registry(86400)) == 1
        client.post("/auth/logout", headers=ORIGIN, follow_redirects=False)
        assert len(get_memory_registry(86400)) == 0

    def test_logout_keeps_record_when_disabled(self, mock_provider: MagicMock) -> None:
        """With clear_all_with_logout off the record survives logout."""
        client = self._logged_in_client(mock_provider, clear_all_with_logout=False)
        resp = client.post("/auth/logout", headers=ORIGIN, follow_redirects=False)
        assert resp.status_code == 303
        assert client.get("/auth/me").json()["user_id"] == "u1"

    def test_logout_requires_same_origin(self, mock_provider: MagicMock) -> None:
        """Cross-site logout requests are refused."""
        client = self._logged_in_client(mock_provider)
        resp = client.post("/auth/logout", headers={"origin": "https://evil.test"})
        assert resp.status_code == 403
        assert client.get("/auth/me").status_code == 200

    def test_logout_referer_fallback(self, mock_provider: MagicMock) -> None:
        """The Referer header is accepted when Origin is missing."""
        client = self._logged_in_client(mock_provider)
        resp = client.post(
            "/auth/logout",
            headers={"referer": "http://testserver/dashboard"},
            follow_redirects=False,
        )
        assert resp.status_code == 303


# ── Dependency ───────────────────────────────────────────────────────


class TestSessionDependency:
    """Tests for create_session_dependency()."""

    def test_host_route_uses_dependency(self, mock_provider: MagicMock) -> None:
        """Host routes receive a SessionLifecycle per request."""
        settings = load_settings(client_id="client-1", return_uri="https://app.test/oauth")
        get_session = create_session_dependency(settings, mock_provider)
        app = FastAPI()
        app.add_middleware(SessionMiddleware, secret_key="test-secret")

        @app.get("/whoami")
        async def whoami(lifecycle: SessionLifecycle = Depends(get_session)) -> dict[str, Any]:  # noqa: B008
            return {
                "user": await lifecycle.get_user(),
                "redirect_uri": lifecycle.redirect_uri,
            }

        resp = TestClient(app).get("/whoami")
        assert resp.json() == {"user": "", "redirect_uri": "https://app.test/oauth"}
