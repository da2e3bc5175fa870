"""
auth/gate.py -- The session gate: one decision per inbound request.

evaluate_request() is a pure function of (auth context, path, query string,
session cookie). It returns one of three outcomes and never raises for an
auth failure:

  Pass(identity)       let the request through; identity is None for public
                       paths and when auth is switched off
  Redirect(location)   send the browser elsewhere (login, or its dashboard)
  Reject(status, body) machine-readable denial for API paths

Decision order:
  1. Auth not configured (no secret, or no credentials in env mode) -> Pass.
     Fail-open by design; see core/config.py for the AUTH_REQUIRED override.
  2. Public or static path -> Pass without looking at the cookie. The login
     page is the exception: it is public, but a valid session is redirected
     away from it so a logged-in user never sees the form again.
  3. Verify the session cookie with the token codec.
  4. Valid on /login           -> Redirect to the landing dashboard.
  5. Valid on /dashboard alias -> Redirect to the tenant's own dashboard.
  6. Valid otherwise           -> Pass(identity).
  7. Invalid under /api        -> Reject(401, error envelope).
  8. Invalid otherwise         -> Redirect to /login?next=<path?query>.

Nothing is cached between calls; the only per-request state is local.

Layer rule: no imports from api/ or web/. The HTTP adapter lives in
api/main.py.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING
from urllib.parse import urlencode

from auth.models import Identity

if TYPE_CHECKING:
    from auth.context import AuthContext


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Pass:
    identity: Identity | None = None


@dataclass(frozen=True)
class Redirect:
    location: str


@dataclass(frozen=True)
class Reject:
    status: int
    body: dict = field(hash=False)


GateAction = Pass | Redirect | Reject

UNAUTHORIZED_BODY = {"error": {"code": "unauthorized", "message": "Invalid or expired session."}}


# ---------------------------------------------------------------------------
# Path classification
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PathRules:
    """Which paths skip the session check, and where the gate sends people.

    Static extensions never exempt API paths: /api/report.txt still needs a
    session.
    """

    public_paths: frozenset[str] = frozenset(
        {
            "/login",
            "/favicon.ico",
            "/icon.ico",
            "/manifest.json",
            "/robots.txt",
            "/api/v1/health",
            "/api/v1/auth/login",
            "/api/v1/auth/logout",
        }
    )
    static_prefixes: tuple[str, ...] = ("/_next", "/public", "/assets", "/static")
    static_extensions: frozenset[str] = frozenset(
        {".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp", ".ico", ".txt", ".css", ".js"}
    )
    login_path: str = "/login"
    dashboard_alias: str = "/dashboard"
    api_prefix: str = "/api"
    next_param: str = "next"

    def extend(
        self,
        public_paths: tuple[str, ...] = (),
        static_prefixes: tuple[str, ...] = (),
        static_extensions: tuple[str, ...] = (),
    ) -> PathRules:
        """Return a copy with extra public paths, static prefixes or extensions."""
        return replace(
            self,
            public_paths=self.public_paths | frozenset(public_paths),
            static_prefixes=self.static_prefixes + tuple(static_prefixes),
            static_extensions=self.static_extensions | frozenset(ext.lower() for ext in static_extensions),
        )

    def is_api(self, path: str) -> bool:
        return _under(path, self.api_prefix)

    def is_public(self, path: str) -> bool:
        if path in self.public_paths:
            return True
        if any(_under(path, prefix) for prefix in self.static_prefixes):
            return True
        return not self.is_api(path) and _extension(path) in self.static_extensions

    def login_redirect(self, path: str, query: str = "") -> str:
        """Return the login URL carrying path (and query) as the return hint."""
        requested = f"{path}?{query}" if query else path
        return f"{self.login_path}?{urlencode({self.next_param: requested}, safe='/')}"


DEFAULT_PATH_RULES = PathRules()


def _under(path: str, prefix: str) -> bool:
    """Segment-aware prefix match: /static covers /static/x, not /static-x."""
    prefix = prefix.rstrip("/")
    return path == prefix or path.startswith(prefix + "/")


def _extension(path: str) -> str:
    segment = path.rsplit("/", 1)[-1]
    dot = segment.rfind(".")
    return segment[dot:].lower() if dot != -1 else ""


# ---------------------------------------------------------------------------
# Decision
# ---------------------------------------------------------------------------


def evaluate_request(ctx: AuthContext, path: str, query: str = "", cookie: str | None = None) -> GateAction:
    """Classify one request. Same inputs, same outcome."""
    if not ctx.enabled:
        return Pass()

    rules = ctx.rules
    on_login = path == rules.login_path
    if not on_login and rules.is_public(path):
        return Pass()

    identity = ctx.codec.verify(cookie)

    if identity is not None:
        landing = ctx.tenants.landing_path_for(identity)
        if (on_login or path == rules.dashboard_alias) and landing != path:
            return Redirect(landing)
        return Pass(identity)

    if on_login:
        return Pass()
    if rules.is_api(path):
        return Reject(401, UNAUTHORIZED_BODY)
    return Redirect(rules.login_redirect(path, query))
