"""
auth/tenants.py -- Map identities and company slugs to tenant routes.

A direct request for /dashboard/{company} has three outcomes, and callers
must keep them apart:

  TenantNotFound   the slug matches no active credential -> 404
  TenantRedirect   the slug exists but belongs to another company -> send the
                   caller to their own dashboard
  TenantGranted    the caller's company owns the slug

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

from dataclasses import dataclass

from auth.models import Credential, Identity
from auth.store import CredentialStore


@dataclass(frozen=True)
class TenantGranted:
    tenant: Credential


@dataclass(frozen=True)
class TenantRedirect:
    location: str


@dataclass(frozen=True)
class TenantNotFound:
    slug: str


TenantAccess = TenantGranted | TenantRedirect | TenantNotFound


class TenantResolver:
    def __init__(self, store: CredentialStore) -> None:
        self._store = store

    def landing_path_for(self, identity: Identity) -> str:
        """The identity's own dashboard, normalized when the credential loaded."""
        return identity.dashboard

    def tenant_for(self, slug: str) -> Credential | None:
        return self._store.find_by_company(slug)

    def authorize(self, identity: Identity, slug: str) -> TenantAccess:
        """Decide what a request by identity for tenant slug should get.

        The not-found check runs first, so an unknown slug is a 404 even for
        a logged-in caller from another tenant.
        """
        tenant = self.tenant_for(slug)
        if tenant is None:
            return TenantNotFound(slug=slug)
        if tenant.company != identity.company:
            return TenantRedirect(location=self.landing_path_for(identity))
        return TenantGranted(tenant=tenant)
