"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Stores build
these, the verifier and codec hand them out, routes and templates read them.
All three are frozen: the core never mutates a credential, and the identity
handed downstream is read-only by contract.

Layer rule: no imports from api/, web/, or core/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Identity:
    """An authenticated identity -- the Credential minus the password hash.

    Reflects the credential store only at the moment of verification. Callers
    must not cache it as a stand-in for the current record.
    """

    username: str
    company: str
    dashboard: str
    label: str
    project_id: str | None = None


@dataclass(frozen=True)
class Credential:
    """One registered login, as loaded from AUTH_USERS or the auth_users table.

    password_hash is either a bcrypt hash ($2a$/$2b$/$2y$ prefix) or, in the
    legacy env mode only, the plaintext password itself.
    dashboard is already normalized (leading "/", default /dashboard/{company}).
    Inactive records never leave the store; active is kept for provisioning.
    """

    username: str
    password_hash: str
    company: str
    dashboard: str
    label: str
    project_id: str | None = None
    active: bool = True

    def to_identity(self) -> Identity:
        return Identity(
            username=self.username,
            company=self.company,
            dashboard=self.dashboard,
            label=self.label,
            project_id=self.project_id,
        )


@dataclass(frozen=True)
class SessionToken:
    """A freshly issued session token.

    value is "<subject>:<expires_at>.<base64url signature>"; expires_at is the
    absolute epoch-millisecond deadline, kept alongside so the cookie can be
    given the same expiry.
    """

    value: str
    expires_at: int
