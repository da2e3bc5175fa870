"""
auth/passwords.py -- Password hashing and credential verification.

Security design decisions:
  bcrypt, used directly (no passlib wrapper). Hashes produced here use cost
  12. A stored hash is recognized as bcrypt by its $2a$/$2b$/$2y$ prefix.

  Legacy plaintext bridge: AUTH_USERS entries may still carry the password
  itself instead of a hash. Those are compared only when
  AUTH_ALLOW_PLAINTEXT=true, and never in database mode, where bcrypt is
  mandatory. Run `python main.py import-env-users` to move such entries into
  the database as bcrypt hashes.

  Uniform rejection: an unknown username and a wrong password both return
  None. The unknown-user path still runs one bcrypt check against
  _DUMMY_HASH so it costs about as much as a real comparison.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

import hmac
import logging

import bcrypt

from auth.models import Identity
from auth.store import CredentialStore

logger = logging.getLogger("tenantgate.auth")

BCRYPT_ROUNDS = 12
_BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")


def hash_password(plain: str, rounds: int = BCRYPT_ROUNDS) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only considers the first 72 bytes; recent bcrypt releases raise
    ValueError for longer inputs instead of truncating silently.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def looks_like_bcrypt(value: str) -> bool:
    return value.startswith(_BCRYPT_PREFIXES)


def check_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Computed once at module load so the first unknown-user attempt is not
# measurably slower than later ones.
_DUMMY_HASH: str = hash_password("tenantgate_timing_dummy")


class CredentialVerifier:
    """Check a username/password pair against a CredentialStore.

    require_bcrypt: database mode -- stored hashes must be bcrypt.
    allow_plaintext: env mode only -- accept the legacy plaintext entries.
    """

    def __init__(self, store: CredentialStore, require_bcrypt: bool = False, allow_plaintext: bool = False) -> None:
        self._store = store
        self._require_bcrypt = require_bcrypt
        self._allow_plaintext = allow_plaintext and not require_bcrypt

    def verify(self, username: str, password: str) -> Identity | None:
        """Return the Identity for a valid login, None for anything else."""
        credential = self._store.find_by_username(username)
        if credential is None:
            check_password(password, _DUMMY_HASH)
            return None

        stored = credential.password_hash
        if looks_like_bcrypt(stored):
            valid = check_password(password, stored)
        elif self._require_bcrypt:
            logger.warning("Stored password for a database credential is not a bcrypt hash; login rejected")
            valid = False
        elif self._allow_plaintext:
            valid = hmac.compare_digest(password.encode("utf-8"), stored.encode("utf-8"))
        else:
            logger.warning(
                "Plaintext password in AUTH_USERS rejected; store a bcrypt hash or set AUTH_ALLOW_PLAINTEXT=true"
            )
            valid = False

        return credential.to_identity() if valid else None
