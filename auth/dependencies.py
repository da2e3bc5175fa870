"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

The session gate middleware (api/main.py) verifies the cookie once per
request and leaves the Identity on request.state.identity. These helpers read
it from there, and fall back to verifying the cookie themselves on paths the
gate lets through unchecked (public paths such as /login).

try_get_identity() is the soft variant (returns None on failure).
get_current_identity() wraps it and raises HTTP 401 if unauthenticated.

Layer rule: no imports from web/ or api/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.context import AuthContext
from auth.models import Identity
from auth.tokens import read_session_cookie


def get_auth_context(request: Request) -> AuthContext:
    """Return the AuthContext built in the app lifespan."""
    return request.app.state.auth


def try_get_identity(request: Request) -> Identity | None:
    """Return the Identity for this request, or None. Never raises."""
    identity = getattr(request.state, "identity", None)
    if identity is not None:
        return identity
    ctx = get_auth_context(request)
    return ctx.codec.verify(read_session_cookie(request.cookies))


def get_current_identity(request: Request) -> Identity:
    """Require a session. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(identity: Identity = Depends(get_current_identity)): ...
    """
    identity = try_get_identity(request)
    if identity is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return identity
