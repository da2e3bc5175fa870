"""
auth/context.py -- Explicit wiring for the authentication core.

AuthContext bundles everything the gate, routes and dependencies need:
settings, credential store, verifier, token codec, tenant resolver and path
rules. The app builds exactly one in its lifespan and keeps it on
app.state.auth; tests build a fresh one per case. No module-level caches
outside this object.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from auth.gate import DEFAULT_PATH_RULES, PathRules
from auth.passwords import CredentialVerifier
from auth.store import CredentialStore, build_credential_store
from auth.tenants import TenantResolver
from auth.tokens import TokenCodec
from core.config import Settings

logger = logging.getLogger("tenantgate.auth")


@dataclass(frozen=True)
class AuthContext:
    settings: Settings
    store: CredentialStore
    verifier: CredentialVerifier
    codec: TokenCodec
    tenants: TenantResolver
    rules: PathRules = DEFAULT_PATH_RULES

    @property
    def secret_configured(self) -> bool:
        return bool(self.settings.auth_secret)

    @property
    def credentials_configured(self) -> bool:
        return self.store.has_credentials()

    @property
    def enabled(self) -> bool:
        """True when the gate enforces sessions; False means everything passes."""
        return self.secret_configured and self.credentials_configured

    def close(self) -> None:
        self.store.close()


def build_auth_context(
    settings: Settings,
    store: CredentialStore | None = None,
    rules: PathRules = DEFAULT_PATH_RULES,
    clock: Callable[[], float] = time.time,
) -> AuthContext:
    """Wire the auth core from settings.

    store defaults to the backend selected by AUTH_MODE; pass one explicitly
    to share a store between contexts or to use a prepared test database.
    """
    if store is None:
        store = build_credential_store(settings)
    return AuthContext(
        settings=settings,
        store=store,
        verifier=CredentialVerifier(
            store,
            require_bcrypt=settings.use_database,
            allow_plaintext=settings.auth_allow_plaintext,
        ),
        codec=TokenCodec(settings, store, clock=clock),
        tenants=TenantResolver(store),
        rules=rules,
    )


def log_auth_status(ctx: AuthContext) -> None:
    """Log once at startup whether access control is actually on."""
    if ctx.enabled:
        logger.info("Authentication enabled (mode=%s)", ctx.settings.auth_mode)
        return
    reason = "AUTH_SECRET is not set" if not ctx.secret_configured else "no active credentials in AUTH_USERS"
    logger.warning("Authentication DISABLED -- %s. Every request is allowed through.", reason)
