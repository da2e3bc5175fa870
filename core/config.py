"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for TenantGate happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. The app
      wires it into an AuthContext at startup; tests construct Settings(...)
      directly and never touch the cached singleton.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. auth_secret -> AUTH_SECRET). Type coercion and validation are built in.

Fail-open policy:
  An empty AUTH_SECRET switches the whole authentication feature off -- the
  session gate passes every request. That is the deliberate default for
  unauthenticated deployments. AUTH_REQUIRED=true turns a missing secret into
  a hard startup failure instead, for deployments that must never run open.

Layer rule: core/ is the kernel. This module may not import from api/, web/,
or auth/.
"""

import logging
from functools import lru_cache

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("tenantgate.config")

DEFAULT_SESSION_TTL_SECONDS = 8 * 60 * 60
DEFAULT_USERS_TABLE = "auth_users"

_AUTH_MODES = ("env", "database")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    app_env: str = "development"
    allowed_hosts: list[str] = ["*"]

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured" -- the kill-switch
    # for the whole feature.
    auth_secret: str = ""
    auth_required: bool = False
    # "env" reads AUTH_USERS; "database" queries AUTH_USERS_TABLE.
    auth_mode: str = "env"
    # Raw JSON list. Parsed (and validated per entry) by StaticCredentialStore,
    # never here, so one bad entry cannot fail the whole settings load.
    auth_users: str = ""
    auth_users_table: str = DEFAULT_USERS_TABLE
    auth_session_max_age: int = DEFAULT_SESSION_TTL_SECONDS
    # Legacy bridge: plaintext passwords in AUTH_USERS. Off unless asked for.
    auth_allow_plaintext: bool = False

    # None means "follow app_env" -- Secure in production only.
    secure_cookies: bool | None = None

    # ------------------------------------------------------------------
    # Database (relational credential backend)
    # ------------------------------------------------------------------

    database_url: str = Field(
        default="",
        validation_alias=AliasChoices("POSTGRES_URL", "DATABASE_URL", "database_url"),
    )

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("auth_secret", mode="before")
    @classmethod
    def strip_secret(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("auth_mode", mode="before")
    @classmethod
    def normalize_mode(cls, value) -> str:
        """Anything other than "database" (case-insensitive) means "env"."""
        if isinstance(value, str) and value.strip().lower() in _AUTH_MODES:
            return value.strip().lower()
        return "env"

    @field_validator("auth_session_max_age", mode="before")
    @classmethod
    def clamp_session_ttl(cls, value) -> int:
        """Fall back to the 8h default for blank, non-numeric or non-positive TTLs."""
        if value is None or (isinstance(value, str) and not value.strip()):
            return DEFAULT_SESSION_TTL_SECONDS
        try:
            parsed = int(str(value).strip())
        except ValueError:
            logger.warning("AUTH_SESSION_MAX_AGE is not an integer; using %ds", DEFAULT_SESSION_TTL_SECONDS)
            return DEFAULT_SESSION_TTL_SECONDS
        if parsed <= 0:
            logger.warning("AUTH_SESSION_MAX_AGE must be positive; using %ds", DEFAULT_SESSION_TTL_SECONDS)
            return DEFAULT_SESSION_TTL_SECONDS
        return parsed

    @model_validator(mode="after")
    def validate_required_secret(self) -> "Settings":
        """Refuse to start without AUTH_SECRET when AUTH_REQUIRED=true."""
        if self.auth_required and not self.auth_secret:
            raise ValueError(
                "AUTH_SECRET is required when AUTH_REQUIRED=true. "
                "Set AUTH_SECRET in your environment or .env file, or unset "
                "AUTH_REQUIRED to run without access control."
            )
        return self

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def is_production(self) -> bool:
        return self.app_env.strip().lower() == "production"

    @property
    def use_database(self) -> bool:
        return self.auth_mode == "database"

    @property
    def cookie_secure(self) -> bool:
        if self.secure_cookies is not None:
            return self.secure_cookies
        return self.is_production


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
