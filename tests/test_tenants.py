"""Unit tests for auth/tenants.py -- landing paths and per-tenant access."""

from __future__ import annotations

import json

import pytest

from auth.store import StaticCredentialStore
from auth.tenants import TenantGranted, TenantNotFound, TenantRedirect, TenantResolver
from tests.conftest import USERS


@pytest.fixture
def resolver() -> TenantResolver:
    return TenantResolver(StaticCredentialStore(json.dumps(USERS)))


@pytest.fixture
def alice(ctx):
    return ctx.verifier.verify("alice", "pw")


def test_landing_path_is_the_identity_dashboard(resolver: TenantResolver, ctx) -> None:
    carol = ctx.verifier.verify("carol", "pw3")
    assert resolver.landing_path_for(carol) == "/reports/initech"


def test_own_tenant_is_granted(resolver: TenantResolver, alice) -> None:
    access = resolver.authorize(alice, "acme")
    assert isinstance(access, TenantGranted)
    assert access.tenant.username == "alice"


def test_other_tenant_redirects_home(resolver: TenantResolver, alice) -> None:
    assert resolver.authorize(alice, "globex") == TenantRedirect(location="/dashboard/acme")


def test_unknown_tenant_is_not_found(resolver: TenantResolver, alice) -> None:
    assert resolver.authorize(alice, "umbrella") == TenantNotFound(slug="umbrella")


def test_slug_match_is_exact(resolver: TenantResolver, alice) -> None:
    assert isinstance(resolver.authorize(alice, "ACME"), TenantNotFound)


def test_tenant_for(resolver: TenantResolver) -> None:
    assert resolver.tenant_for("globex").label == "Globex Corp"
    assert resolver.tenant_for("") is None
