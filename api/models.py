"""
API request and response models for TenantGate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import Identity

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login.

    The username is trimmed; the password is taken verbatim. max_length keeps
    inputs well under bcrypt's 72-byte limit for typical character sets.
    """

    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=72)

    model_config = ConfigDict(str_strip_whitespace=False)

    def normalized_username(self) -> str:
        return self.username.strip()


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class IdentityResponse(BaseModel):
    """The authenticated identity, minus any credential material."""

    model_config = ConfigDict(populate_by_name=True)

    username: str
    company: str
    dashboard: str
    label: str
    project_id: Optional[str] = Field(default=None, serialization_alias="projectId")

    @classmethod
    def from_identity(cls, identity: Identity) -> "IdentityResponse":
        return cls(
            username=identity.username,
            company=identity.company,
            dashboard=identity.dashboard,
            label=identity.label,
            project_id=identity.project_id,
        )


class LoginResponse(BaseModel):
    """Response for a successful login. The token itself travels only in the cookie."""

    identity: IdentityResponse
    expires_at: int = Field(description="Session expiry, epoch milliseconds.")


class LogoutResponse(BaseModel):
    ok: bool = True


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
    auth_enabled: bool


class ErrorDetail(BaseModel):
    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Uniform error envelope: every JSON error response has this shape."""

    error: ErrorDetail
