"""
auth/tokens.py -- Session token codec and session cookie helpers.

Token format:
    <subject>:<expires_at>.<signature>

  subject     the username; re-resolved against the credential store on every
              verification, so a deactivated user stops authenticating before
              the token's own expiry.
  expires_at  absolute deadline in epoch milliseconds.
  signature   HMAC-SHA256(AUTH_SECRET, "<subject>:<expires_at>" as UTF-8),
              base64url without padding.

Security design decisions:
  Cheap rejection first: structure and expiry are checked before any HMAC
  work, so garbage and expired cookies cost almost nothing.

  Constant-time comparison: the recomputed MAC is compared with
  hmac.compare_digest(), never ==, so response timing does not reveal how
  many leading signature bytes were right.

  Strict base64url: the signature must decode canonically. Alternate
  spellings of the same bytes (stray padding, non-zero trailing bits) are
  rejected, so every single-character change to a token invalidates it.

  No revocation list: tokens are immutable once issued. Logout clears the
  cookie only.

  AUTH_SECRET is the kill-switch: with no secret, issue() returns None and
  verify() rejects everything.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import re
import threading
import time
from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from urllib.parse import quote, unquote

from auth.models import Identity, SessionToken
from auth.store import CredentialStore
from core.config import Settings

SESSION_COOKIE_NAME = "tg_session"

_B64URL_ALPHABET = re.compile(r"[A-Za-z0-9_-]*")


# ---------------------------------------------------------------------------
# base64url (RFC 4648 section 5, padding stripped)
# ---------------------------------------------------------------------------


def b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def b64url_decode(value: str) -> bytes:
    """Decode unpadded base64url. Raises ValueError on any non-canonical input."""
    if not _B64URL_ALPHABET.fullmatch(value) or len(value) % 4 == 1:
        raise ValueError("invalid base64url")
    raw = base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))
    if b64url_encode(raw) != value:
        raise ValueError("non-canonical base64url")
    return raw


# ---------------------------------------------------------------------------
# Codec
# ---------------------------------------------------------------------------


class TokenCodec:
    """Issue and verify session tokens.

    The keyed HMAC state is built once per secret value and copied for every
    signature, so the key schedule is not recomputed per request. If the
    secret changes while the process runs, the cached state is rebuilt on the
    next call. The build runs under a lock; racing builders would produce
    identical state anyway.

    clock returns seconds since the epoch (time.time by default). Tests inject
    a fake clock to move past a token's expiry.
    """

    def __init__(
        self,
        settings: Settings,
        store: CredentialStore,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings = settings
        self._store = store
        self._clock = clock
        self._keyed: tuple[str, hmac.HMAC] | None = None
        self._key_lock = threading.Lock()

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _keyed_mac(self, secret: str) -> hmac.HMAC:
        keyed = self._keyed
        if keyed is None or keyed[0] != secret:
            with self._key_lock:
                keyed = self._keyed
                if keyed is None or keyed[0] != secret:
                    keyed = (secret, hmac.new(secret.encode("utf-8"), digestmod=hashlib.sha256))
                    self._keyed = keyed
        return keyed[1].copy()

    def _sign(self, secret: str, payload: str) -> bytes:
        mac = self._keyed_mac(secret)
        mac.update(payload.encode("utf-8"))
        return mac.digest()

    def issue(self, username: str) -> SessionToken | None:
        """Return a signed token for username, or None when AUTH_SECRET is unset."""
        secret = self._settings.auth_secret
        if not secret:
            return None
        expires_at = self._now_ms() + self._settings.auth_session_max_age * 1000
        payload = f"{username}:{expires_at}"
        signature = b64url_encode(self._sign(secret, payload))
        return SessionToken(value=f"{payload}.{signature}", expires_at=expires_at)

    def verify(self, token: str | None) -> Identity | None:
        """Return the Identity for a valid, unexpired, live token; None otherwise.

        Check order: structure, expiry, signature (constant-time), then a
        fresh credential lookup for the subject.
        """
        if not token:
            return None
        secret = self._settings.auth_secret
        if not secret:
            return None

        # rpartition: the signature never contains "." or ":", the subject may.
        payload, sep, signature = token.rpartition(".")
        if not sep or not payload or not signature:
            return None
        subject, sep, expires_raw = payload.rpartition(":")
        if not sep or not subject:
            return None
        if not (expires_raw.isascii() and expires_raw.isdigit()):
            return None
        if int(expires_raw) <= self._now_ms():
            return None

        try:
            provided = b64url_decode(signature)
        except ValueError:
            return None
        if not hmac.compare_digest(self._sign(secret, payload), provided):
            return None

        credential = self._store.find_by_username(subject)
        if credential is None or credential.username != subject:
            return None
        return credential.to_identity()


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, token: SessionToken, secure: bool) -> None:
    """Write the session token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST -- CSRF mitigation.
    secure: HTTPS only; on by default in production (Settings.cookie_secure).
    expires: the token's own deadline, so cookie and token expire together.

    The value is percent-encoded: Set-Cookie headers are Latin-1, usernames
    are not. read_session_cookie() reverses it.
    """
    response.set_cookie(
        SESSION_COOKIE_NAME,
        value=quote(token.value, safe=":"),
        httponly=True,
        samesite="lax",
        secure=secure,
        path="/",
        expires=datetime.fromtimestamp(token.expires_at / 1000, tz=timezone.utc),
    )


def clear_session_cookie(response, secure: bool) -> None:
    """Expire the session cookie immediately (empty value, max-age=0)."""
    response.delete_cookie(
        SESSION_COOKIE_NAME,
        path="/",
        secure=secure,
        httponly=True,
        samesite="lax",
    )


def read_session_cookie(cookies: Mapping[str, str]) -> str | None:
    """Return the raw session token from request cookies, or None."""
    value = cookies.get(SESSION_COOKIE_NAME)
    return unquote(value) if value else None
