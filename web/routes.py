"""
web/routes.py -- Jinja2 template routes for the TenantGate web UI.

These routes serve server-rendered HTML. They share app.state.auth with the
API routes but return HTML instead of JSON. The session gate has already run
by the time any handler here executes: protected pages can rely on
request.state.identity when auth is enabled.

Route registration order matters: GET /dashboard must be registered before
GET /dashboard/{company}.

Routes:
  GET  /                     -- home (identity summary, link to own dashboard)
  GET  /dashboard            -- generic dashboard alias (gate redirects logged-in users)
  GET  /dashboard/{company}  -- tenant dashboard: 404 / redirect-to-own / render
  GET  /login                -- login form
  POST /login                -- handle password login
  POST /logout               -- clear cookie, redirect /login
"""

import logging
from pathlib import Path
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from api.limiter import limiter, login_rate_limit
from auth.dependencies import get_auth_context, try_get_identity
from auth.tenants import TenantNotFound, TenantRedirect
from auth.tokens import clear_session_cookie, set_session_cookie

logger = logging.getLogger("tenantgate.web")

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
router = APIRouter()

# ---------------------------------------------------------------------------
# Auth helpers
# ---------------------------------------------------------------------------

# Whitelist mapping for ?error= query params on /login.
# The raw query param is NEVER passed to templates -- only the message from
# this dict is. Prevents reflected XSS via crafted error query strings.
_ERROR_MESSAGES: dict[str, str] = {
    "bad_credentials": "Invalid username or password.",
    "missing_fields": "Enter both a username and a password.",
    "not_configured": "Authentication is not configured.",
}


def _safe_next(next_url: Optional[str], fallback: str) -> str:
    """Validate a post-login redirect target. Only accept relative paths.

    Prevents open redirect attacks where an attacker crafts a URL like:
      /login?next=https://attacker.com  or  /login?next=//attacker.com

    Both would redirect off-site after login. We only allow paths that:
    - Start with "/" (relative, server-local)
    - Do NOT start with "//" or "/\\" (protocol-relative URL, redirects off-site)
    """
    if next_url and next_url.startswith("/") and not next_url.startswith(("//", "/\\")):
        return next_url
    return fallback


def _login_error(code: str, next_url: Optional[str]) -> RedirectResponse:
    params = {"error": code}
    if next_url:
        params["next"] = next_url
    return RedirectResponse(f"/login?{urlencode(params, safe='/')}", status_code=302)


# ---------------------------------------------------------------------------
# Pages
# ---------------------------------------------------------------------------


@router.get("/", response_class=HTMLResponse)
def home(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(request, "home.html", {"identity": try_get_identity(request)})


@router.get("/dashboard", response_class=HTMLResponse)
def dashboard(request: Request) -> HTMLResponse:
    """Generic dashboard, reached only when the gate is not enforcing sessions."""
    return templates.TemplateResponse(request, "dashboard.html", {"tenant": None})


@router.get("/dashboard/{company}", response_class=HTMLResponse)
def tenant_dashboard(request: Request, company: str) -> HTMLResponse:
    """Render one tenant's dashboard.

    Unknown tenant -> 404, regardless of who asks. Known tenant, other
    company's session -> redirect to the caller's own dashboard.
    """
    ctx = get_auth_context(request)

    if not ctx.enabled:
        tenant = ctx.tenants.tenant_for(company)
        if tenant is None:
            return templates.TemplateResponse(request, "not_found.html", {"slug": company}, status_code=404)
        return templates.TemplateResponse(request, "dashboard.html", {"tenant": tenant})

    # The gate normally redirects first; this covers rules that make dashboards public.
    identity = try_get_identity(request)
    if identity is None:
        return RedirectResponse(ctx.rules.login_redirect(request.url.path), status_code=302)

    access = ctx.tenants.authorize(identity, company)
    if isinstance(access, TenantNotFound):
        return templates.TemplateResponse(request, "not_found.html", {"slug": access.slug}, status_code=404)
    if isinstance(access, TenantRedirect):
        return RedirectResponse(access.location, status_code=302)
    return templates.TemplateResponse(request, "dashboard.html", {"tenant": access.tenant})


# ---------------------------------------------------------------------------
# Login / logout
# ---------------------------------------------------------------------------


@router.get("/login", response_class=HTMLResponse)
def login_form(request: Request) -> HTMLResponse:
    """Render the login form. The gate redirects requests with a live session away."""
    error_msg = _ERROR_MESSAGES.get(request.query_params.get("error", ""), None)
    return templates.TemplateResponse(
        request,
        "login.html",
        {
            "error_msg": error_msg,
            "next_url": _safe_next(request.query_params.get("next"), ""),
        },
    )


@limiter.limit(login_rate_limit)
@router.post("/login", response_class=HTMLResponse)
def login_post(
    request: Request,
    username: str = Form(""),
    password: str = Form(""),
    next_url: str = Form("", alias="next"),
) -> RedirectResponse:
    """Handle username/password login form submission."""
    ctx = get_auth_context(request)
    safe_next = _safe_next(next_url, "")
    username = username.strip()
    if not username or not password:
        return _login_error("missing_fields", safe_next)

    identity = ctx.verifier.verify(username, password)
    if identity is None:
        return _login_error("bad_credentials", safe_next)

    token = ctx.codec.issue(identity.username)
    if token is None:
        return _login_error("not_configured", safe_next)

    resp = RedirectResponse(_safe_next(safe_next, ctx.tenants.landing_path_for(identity)), status_code=302)
    set_session_cookie(resp, token, ctx.settings.cookie_secure)
    resp.headers["Cache-Control"] = "no-store"
    logger.info("Login succeeded for company %s", identity.company)
    return resp


@router.post("/logout")
def logout(request: Request) -> RedirectResponse:
    """Clear the session cookie and redirect to the login page."""
    ctx = get_auth_context(request)
    resp = RedirectResponse("/login", status_code=302)
    clear_session_cookie(resp, ctx.settings.cookie_secure)
    return resp
