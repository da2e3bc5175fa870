"""
tests/conftest.py -- Shared test fixtures for TenantGate.

This module provides:
  - USERS / make_settings(): an AUTH_USERS table and Settings built from it,
    independent of the process environment and any .env file
  - FakeClock: an injectable clock so expiry can be tested without sleeping
  - make_context(): a fresh AuthContext per test -- no shared globals
  - client_for(): TestClient over the real ASGI app (gate middleware, web and
    API routers) with the lifespan replaced so app.state.auth is the test's
    context

Clients use follow_redirects=False: redirect tests assert on the Location
header, which is invisible once the client follows it.

The login rate limiter is disabled: a test module logs in far more often than
10 times a minute from the same "client".
"""

from __future__ import annotations

import json
import time
from collections.abc import Callable, Generator, Iterator
from contextlib import asynccontextmanager, contextmanager

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from asgi import app
from auth.context import AuthContext, build_auth_context
from auth.passwords import hash_password
from core.config import Settings

limiter.enabled = False

SECRET = "s3cret"
START = 1_700_000_000.0

# Low bcrypt cost keeps the suite fast; production hashes use cost 12.
BOB_PASSWORD = "hunter2"
BOB_HASH = hash_password(BOB_PASSWORD, rounds=4)

USERS = [
    # Legacy plaintext entry -- only accepted with auth_allow_plaintext=True.
    {"username": "alice", "password": "pw", "company": "acme", "dashboard": "/dashboard/acme"},
    {"username": "bob", "password": BOB_HASH, "company": "globex", "label": "Globex Corp", "projectId": "proj_123"},
    # company derived from the dashboard path; leading "/" added.
    {"username": "carol", "password": "pw3", "dashboard": "reports/initech"},
]


class FakeClock:
    """Callable stand-in for time.time()."""

    def __init__(self, start: float = START) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_settings(**overrides) -> Settings:
    values = {
        "auth_secret": SECRET,
        "auth_users": json.dumps(USERS),
        "auth_allow_plaintext": True,
        "auth_mode": "env",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_context(clock: Callable[[], float] = time.time, **overrides) -> AuthContext:
    return build_auth_context(make_settings(**overrides), clock=clock)


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def ctx(clock: FakeClock) -> AuthContext:
    """Enabled context: secret set, three static users, fake clock."""
    return make_context(clock=clock)


# ---------------------------------------------------------------------------
# App-level fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(ctx: AuthContext):
    """Return an async context manager that replaces the real lifespan.

    Wires the test's AuthContext into app.state so the gate middleware and
    routes see it instead of one built from the process environment.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.auth = ctx
        yield

    return test_lifespan


@contextmanager
def client_for(ctx: AuthContext) -> Iterator[TestClient]:
    app.router.lifespan_context = _patch_lifespan(ctx)
    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield client


@pytest.fixture
def live_ctx() -> AuthContext:
    """Enabled context on the real clock -- cookie expiry must be in the future."""
    return make_context()


@pytest.fixture
def web_client(live_ctx: AuthContext) -> Generator[TestClient, None, None]:
    with client_for(live_ctx) as client:
        yield client
