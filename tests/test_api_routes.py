"""
tests/test_api_routes.py -- Integration tests for the JSON auth routes.

These tests exercise the full stack: session gate middleware -> FastAPI
routing -> AuthContext -> response model serialization. Unit testing the
route functions alone would miss the gate, dependency injection and the
error envelope produced by the exception handlers.

Coverage:
  - Auth failures: 401 envelope on /api/v1/auth/me and any other /api path
  - POST /api/v1/auth/login: 200 + cookie, 401 bad_credentials, 422, 503
  - GET /api/v1/auth/me with a session
  - POST /api/v1/auth/logout clears the cookie

Fixtures used (from conftest.py):
  - web_client: TestClient over the full app, follow_redirects=False, with
    alice (plaintext), bob (bcrypt) and carol configured.
"""

from __future__ import annotations

import json

import pytest
from fastapi.testclient import TestClient

from auth.tokens import SESSION_COOKIE_NAME
from tests.conftest import BOB_PASSWORD, USERS, client_for, make_context


def _set_cookie_headers(resp) -> list[str]:
    return [v for k, v in resp.headers.multi_items() if k.lower() == "set-cookie"]


class TestApiAuthFailure:
    """Unauthenticated requests to protected API routes must return 401."""

    def test_get_me_unauthenticated(self, web_client: TestClient) -> None:
        """GET /api/v1/auth/me without a cookie must return 401 with the error envelope."""
        resp = web_client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_unknown_api_path_is_401_not_redirect(self, web_client: TestClient) -> None:
        """The gate answers before routing: an API client never gets a login redirect."""
        resp = web_client.get("/api/usage")
        assert resp.status_code == 401
        assert "location" not in resp.headers

    def test_forged_cookie(self, web_client: TestClient) -> None:
        web_client.cookies.set(SESSION_COOKIE_NAME, "bob:99999999999999.AAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA")
        assert web_client.get("/api/v1/auth/me").status_code == 401


class TestApiLogin:
    def test_login_success(self, web_client: TestClient) -> None:
        resp = web_client.post("/api/v1/auth/login", json={"username": "bob", "password": BOB_PASSWORD})
        assert resp.status_code == 200, f"Expected 200, got {resp.status_code}: {resp.text}"
        data = resp.json()
        assert data["identity"] == {
            "username": "bob",
            "company": "globex",
            "dashboard": "/dashboard/globex",
            "label": "Globex Corp",
            "projectId": "proj_123",
        }
        assert isinstance(data["expires_at"], int)
        assert "token" not in data
        assert resp.headers["cache-control"] == "no-store"
        assert any(h.startswith(f"{SESSION_COOKIE_NAME}=") for h in _set_cookie_headers(resp))

    def test_identity_without_project_omits_key(self, web_client: TestClient) -> None:
        data = web_client.post("/api/v1/auth/login", json={"username": "alice", "password": "pw"}).json()
        assert "projectId" not in data["identity"]

    def test_login_then_me(self, web_client: TestClient) -> None:
        web_client.post("/api/v1/auth/login", json={"username": "alice", "password": "pw"})
        resp = web_client.get("/api/v1/auth/me")
        assert resp.status_code == 200
        assert resp.json()["company"] == "acme"

    def test_bad_password(self, web_client: TestClient) -> None:
        resp = web_client.post("/api/v1/auth/login", json={"username": "alice", "password": "nope"})
        assert resp.status_code == 401
        assert resp.json() == {"error": {"code": "bad_credentials", "message": "Invalid username or password."}}

    def test_unknown_user_matches_bad_password(self, web_client: TestClient) -> None:
        unknown = web_client.post("/api/v1/auth/login", json={"username": "mallory", "password": "nope"})
        wrong = web_client.post("/api/v1/auth/login", json={"username": "alice", "password": "nope"})
        assert unknown.status_code == wrong.status_code == 401
        assert unknown.json() == wrong.json()

    def test_missing_fields_is_422(self, web_client: TestClient) -> None:
        resp = web_client.post("/api/v1/auth/login", json={"username": "alice"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"

    def test_login_without_secret_is_503(self) -> None:
        with client_for(make_context(auth_secret="")) as client:
            resp = client.post("/api/v1/auth/login", json={"username": "alice", "password": "pw"})
        assert resp.status_code == 503
        assert resp.json()["error"]["code"] == "auth_not_configured"


class TestApiSession:
    def test_me_with_cookie(self, web_client: TestClient, live_ctx) -> None:
        web_client.cookies.set(SESSION_COOKIE_NAME, live_ctx.codec.issue("carol").value)
        resp = web_client.get("/api/v1/auth/me")
        assert resp.status_code == 200
        assert resp.json() == {
            "username": "carol",
            "company": "initech",
            "dashboard": "/reports/initech",
            "label": "initech",
        }

    def test_logout(self, web_client: TestClient) -> None:
        web_client.post("/api/v1/auth/login", json={"username": "alice", "password": "pw"})
        resp = web_client.post("/api/v1/auth/logout")
        assert resp.status_code == 200
        assert resp.json() == {"ok": True}
        cleared = [h for h in _set_cookie_headers(resp) if h.startswith(f"{SESSION_COOKIE_NAME}=")]
        assert cleared and "max-age=0" in cleared[0].lower()
        assert web_client.get("/api/v1/auth/me").status_code == 401

    def test_logout_without_session(self, web_client: TestClient) -> None:
        assert web_client.post("/api/v1/auth/logout").status_code == 200


class TestNonLatin1Username:
    """Set-Cookie is Latin-1: the cookie value must be encoded for any username."""

    @pytest.fixture
    def client(self):
        users = USERS + [{"username": "王", "password": "pw9", "company": "wang"}]
        with client_for(make_context(auth_users=json.dumps(users))) as client:
            yield client

    def test_login_and_me(self, client: TestClient) -> None:
        resp = client.post("/api/v1/auth/login", json={"username": "王", "password": "pw9"})
        assert resp.status_code == 200, f"Expected 200, got {resp.status_code}: {resp.text}"
        assert resp.json()["identity"]["username"] == "王"

        me = client.get("/api/v1/auth/me")
        assert me.status_code == 200
        assert me.json()["company"] == "wang"
