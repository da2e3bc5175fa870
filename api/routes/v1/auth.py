"""
api/routes/v1/auth.py -- Session login/logout endpoints for API clients.

Routes:
  POST /api/v1/auth/login   -- password login; sets the session cookie
  POST /api/v1/auth/logout  -- clears the session cookie; 200
  GET  /api/v1/auth/me      -- current identity (requires a session)

Security:
  POST /login is rate-limited per IP (LOGIN_RATE_LIMIT, default 10/minute).
  Unknown username and wrong password get the same "bad_credentials" answer.
  Cache-Control: no-store on login responses.
  The token is only ever returned as an httpOnly cookie, never in the body.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_rate_limit
from api.models import IdentityResponse, LoginRequest, LoginResponse, LogoutResponse
from auth.dependencies import get_auth_context, get_current_identity
from auth.models import Identity
from auth.tokens import clear_session_cookie, set_session_cookie

# Auth policy:
# - POST /api/v1/auth/login:   public -- listed in PathRules.public_paths
# - POST /api/v1/auth/logout:  public -- clearing a cookie needs no prior auth
# - GET  /api/v1/auth/me:      requires a session (get_current_identity)
router = APIRouter()


def _error(status_code: int, code: str, message: str) -> JSONResponse:
    resp = JSONResponse(status_code=status_code, content={"error": {"code": code, "message": message}})
    resp.headers["Cache-Control"] = "no-store"
    return resp


@limiter.limit(login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username and password; set the session cookie.

    Returns 503 when AUTH_SECRET is unset: without a secret no token can be
    issued, so there is no session to log into.
    """
    ctx = get_auth_context(request)
    identity = ctx.verifier.verify(body.normalized_username(), body.password)
    if identity is None:
        return _error(401, "bad_credentials", "Invalid username or password.")

    token = ctx.codec.issue(identity.username)
    if token is None:
        return _error(503, "auth_not_configured", "Authentication is not configured.")

    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            identity=IdentityResponse.from_identity(identity),
            expires_at=token.expires_at,
        ).model_dump(by_alias=True, exclude_none=True),
    )
    set_session_cookie(resp, token, ctx.settings.cookie_secure)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout", response_model=LogoutResponse)
def logout(request: Request) -> JSONResponse:
    """Clear the session cookie. The token itself stays valid until expiry."""
    ctx = get_auth_context(request)
    resp = JSONResponse(content=LogoutResponse().model_dump())
    clear_session_cookie(resp, ctx.settings.cookie_secure)
    return resp


@router.get("/auth/me", response_model=IdentityResponse, response_model_exclude_none=True)
def me(identity: Identity = Depends(get_current_identity)) -> IdentityResponse:
    """Return the identity attached to the current session."""
    return IdentityResponse.from_identity(identity)
