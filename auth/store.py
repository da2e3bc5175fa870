"""
auth/store.py -- Credential lookup: one interface, two interchangeable backends.

Pattern: Repository + Data Mapper. CredentialStore is the repository
interface the verifier, token codec and tenant resolver depend on; they never
see which backend is behind it. build_credential_store() picks the backend
once at startup from AUTH_MODE.

  StaticCredentialStore   -- AUTH_USERS JSON list, parsed once (lazily) into
                             an immutable tuple. Bad entries are dropped one by
                             one; a blob that is not a list yields no users.
  DatabaseCredentialStore -- SQLAlchemy Core lookup per call on a pooled
                             engine. Any query error is logged (outside
                             production) and reported as "not found".

Both lookups exclude inactive records. If two active records share a company,
find_by_company returns the first one: list order for the static backend,
oldest created_at for the database backend.

Security:
  All queries use bound parameters. No f-strings in SQL. The operator-
  configurable table name is reduced to [A-Za-z0-9_.] before it reaches
  SQLAlchemy, which quotes it as an identifier.

  Passwords and raw AUTH_USERS content are never logged -- only entry
  indexes and field names.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

import json
import logging
import re
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from sqlalchemy import Boolean, Column, DateTime, Index, MetaData, String, Table, Text, create_engine, select, true
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from auth.models import Credential
from core.config import DEFAULT_USERS_TABLE, Settings

logger = logging.getLogger("tenantgate.auth")

_UNSAFE_IDENTIFIER_CHARS = re.compile(r"[^A-Za-z0-9_]")
_RESERVED_DASHBOARDS = frozenset({"/login"})


# ---------------------------------------------------------------------------
# Normalization helpers (shared by both backends and the CLI)
# ---------------------------------------------------------------------------


def normalize_dashboard_path(provided: str | None, company: str) -> str:
    """Return an absolute dashboard path, defaulting to /dashboard/{company}.

    The login page cannot be a landing path: a logged-in user sent there
    would just see the form again. It falls back to the default.
    """
    default = f"/dashboard/{company}"
    if provided and provided.strip():
        trimmed = provided.strip()
        path = trimmed if trimmed.startswith("/") else f"/{trimmed}"
        if path.rstrip("/") in _RESERVED_DASHBOARDS:
            logger.warning("Dashboard path %s is reserved; using %s for company %s", path, default, company)
            return default
        return path
    return default


def resolve_table_name(value: str | None) -> str:
    """Sanitize an operator-supplied table name.

    Each dot-separated part keeps only [A-Za-z0-9_]; empty parts are dropped.
    Falls back to auth_users when nothing survives.
    """
    raw = (value or "").strip()
    if not raw:
        return DEFAULT_USERS_TABLE
    parts = [_UNSAFE_IDENTIFIER_CHARS.sub("", part) for part in raw.split(".")]
    sanitized = ".".join(part for part in parts if part)
    return sanitized or DEFAULT_USERS_TABLE


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------


class CredentialStore(ABC):
    """Read-only credential lookup. Implementations never mutate records."""

    @abstractmethod
    def find_by_username(self, username: str) -> Credential | None:
        """Return the active credential for username (case-sensitive), or None."""

    @abstractmethod
    def find_by_company(self, company: str) -> Credential | None:
        """Return the active credential whose company is company, or None."""

    @abstractmethod
    def has_credentials(self) -> bool:
        """Return True if this store can authenticate anyone at all."""

    def close(self) -> None:
        """Release backend resources. No-op unless the backend holds any."""


# ---------------------------------------------------------------------------
# Static backend (AUTH_USERS)
# ---------------------------------------------------------------------------


class _CredentialEntry(BaseModel):
    """One element of the AUTH_USERS list, validated field by field.

    AUTH_USERS is operator input -- every field is checked explicitly rather
    than trusted. Text fields are trimmed (except the password). company may be
    omitted when dashboard is given: it defaults to the path's last segment.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    username: str = Field(min_length=1)
    password: str = Field(min_length=1)
    company: str | None = None
    dashboard: str | None = None
    label: str | None = None
    project_id: str | None = Field(default=None, alias="projectId")
    active: bool = True

    @field_validator("username", "company", "dashboard", "label", "project_id", mode="before")
    @classmethod
    def strip_text(cls, value):
        return value.strip() if isinstance(value, str) else value

    @model_validator(mode="after")
    def derive_company(self) -> "_CredentialEntry":
        if not self.company and self.dashboard:
            self.company = self.dashboard.rstrip("/").rsplit("/", 1)[-1]
        if not self.company:
            raise ValueError("company is required (directly or via dashboard)")
        return self

    def to_credential(self) -> Credential:
        return Credential(
            username=self.username,
            password_hash=self.password,
            company=self.company,
            dashboard=normalize_dashboard_path(self.dashboard, self.company),
            label=self.label or self.company,
            project_id=self.project_id or None,
            active=self.active,
        )


def _describe_errors(exc: ValidationError) -> str:
    # loc + msg only: the "input" key would echo the password back into the log.
    parts = []
    for error in exc.errors():
        field = ".".join(str(p) for p in error["loc"]) or "entry"
        parts.append(f"{field}: {error['msg']}")
    return "; ".join(parts)


def parse_credentials(raw_config: str) -> tuple[Credential, ...]:
    """Parse the AUTH_USERS blob into the active credential table.

    A blob that is not valid JSON, or not a list, yields () with an error log.
    Invalid entries and duplicate usernames are skipped with a warning each;
    the rest of the list still loads.
    """
    if not raw_config or not raw_config.strip():
        return ()

    try:
        parsed = json.loads(raw_config)
    except json.JSONDecodeError as exc:
        logger.error("AUTH_USERS could not be parsed as JSON (line %d, column %d)", exc.lineno, exc.colno)
        return ()

    if not isinstance(parsed, list):
        logger.error("AUTH_USERS must be a JSON list of user objects, got %s", type(parsed).__name__)
        return ()

    credentials: list[Credential] = []
    seen: set[str] = set()
    for index, entry in enumerate(parsed):
        try:
            credential = _CredentialEntry.model_validate(entry).to_credential()
        except ValidationError as exc:
            logger.warning("Skipping AUTH_USERS entry %d: %s", index, _describe_errors(exc))
            continue
        if credential.username in seen:
            logger.warning("Skipping AUTH_USERS entry %d: duplicate username", index)
            continue
        seen.add(credential.username)
        if credential.active:
            credentials.append(credential)

    return tuple(credentials)


class StaticCredentialStore(CredentialStore):
    """Credential table parsed from the AUTH_USERS configuration blob.

    The table is built on first use and published in a single assignment of
    an immutable tuple. Readers never observe a half-built table, so lookups
    need no lock; only the one-time build is serialized.
    """

    def __init__(self, raw_config: str) -> None:
        self._raw_config = raw_config
        self._table: tuple[Credential, ...] | None = None
        self._lock = threading.Lock()

    @property
    def credentials(self) -> tuple[Credential, ...]:
        table = self._table
        if table is None:
            with self._lock:
                if self._table is None:
                    self._table = parse_credentials(self._raw_config)
                    logger.info("Loaded %d credential(s) from AUTH_USERS", len(self._table))
                table = self._table
        return table

    def find_by_username(self, username: str) -> Credential | None:
        trimmed = username.strip()
        if not trimmed:
            return None
        return next((c for c in self.credentials if c.username == trimmed), None)

    def find_by_company(self, company: str) -> Credential | None:
        trimmed = company.strip()
        if not trimmed:
            return None
        return next((c for c in self.credentials if c.company == trimmed), None)

    def has_credentials(self) -> bool:
        return len(self.credentials) > 0


# ---------------------------------------------------------------------------
# Database backend (AUTH_MODE=database)
# ---------------------------------------------------------------------------


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _build_table(table_name: str, metadata: MetaData) -> Table:
    """Describe the auth users table; a "schema.table" name maps to a schema."""
    schema, _, name = table_name.rpartition(".")
    table = Table(
        name,
        metadata,
        Column("id", String(36), primary_key=True, default=lambda: str(uuid.uuid4())),
        Column("username", Text, nullable=False, unique=True),
        Column("password_hash", Text, nullable=False),
        Column("company", Text, nullable=False),
        Column("dashboard_path", Text, nullable=False, server_default=""),
        Column("label", Text, nullable=False, server_default=""),
        Column("project_id", Text),
        Column("is_active", Boolean, nullable=False, server_default=true()),
        Column("created_at", DateTime(timezone=True), nullable=False, default=_now),
        Column("updated_at", DateTime(timezone=True), nullable=False, default=_now),
        schema=schema or None,
    )
    Index(f"idx_{table_name.replace('.', '_')}_company", table.c.company)
    return table


class DatabaseCredentialStore(CredentialStore):
    """Repository over the auth users table.

    Usage:
        store = DatabaseCredentialStore("postgresql+psycopg://...", table_name="auth_users")
        credential = store.find_by_username("finance")
        store.close()

    Each lookup is one round trip on a pooled connection. There is no retry:
    a failed lookup already fails closed, and retry policy belongs to the
    caller.
    """

    def __init__(self, db_url: str, table_name: str = DEFAULT_USERS_TABLE, log_errors: bool = True) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args, pool_pre_ping=True)
        self.table_name = resolve_table_name(table_name)
        self._metadata = MetaData()
        self._table = _build_table(self.table_name, self._metadata)
        self._log_errors = log_errors

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _find_one(self, column_name: str, value: str) -> Credential | None:
        trimmed = value.strip()
        if not trimmed:
            return None
        t = self._table
        stmt = (
            select(t.c.username, t.c.password_hash, t.c.company, t.c.dashboard_path, t.c.label, t.c.project_id)
            .where(t.c[column_name] == trimmed)
            .where(t.c.is_active.is_not(False))
            .order_by(t.c.created_at)
            .limit(1)
        )
        try:
            with self.engine.connect() as conn:
                row = conn.execute(stmt).mappings().first()
        except SQLAlchemyError:
            if self._log_errors:
                logger.exception("Credential lookup by %s failed on table %s", column_name, self.table_name)
            return None
        return _row_to_credential(row) if row else None

    def find_by_username(self, username: str) -> Credential | None:
        return self._find_one("username", username)

    def find_by_company(self, company: str) -> Credential | None:
        return self._find_one("company", company)

    def has_credentials(self) -> bool:
        """Always True: rows can appear at any time, so the table counts as configured."""
        return True

    # ------------------------------------------------------------------
    # Provisioning (CLI only -- the request path never writes)
    # ------------------------------------------------------------------

    def create_schema(self) -> None:
        """Create the table and its company index if they do not exist."""
        self._metadata.create_all(self.engine)

    def upsert_credential(self, credential: Credential) -> None:
        """Insert credential, or overwrite every field of an existing username."""
        t = self._table
        values = {
            "password_hash": credential.password_hash,
            "company": credential.company,
            "dashboard_path": credential.dashboard,
            "label": credential.label,
            "project_id": credential.project_id,
            "is_active": credential.active,
        }
        with self.engine.begin() as conn:
            existing = conn.execute(select(t.c.id).where(t.c.username == credential.username)).first()
            if existing is None:
                conn.execute(t.insert().values(username=credential.username, **values))
            else:
                conn.execute(t.update().where(t.c.id == existing.id).values(updated_at=_now(), **values))

    def close(self) -> None:
        """Dispose of the connection pool."""
        self.engine.dispose()


def _row_to_credential(row) -> Credential:
    company = row["company"]
    return Credential(
        username=row["username"],
        password_hash=row["password_hash"],
        company=company,
        dashboard=normalize_dashboard_path(row["dashboard_path"], company),
        label=row["label"] or company,
        project_id=row["project_id"] or None,
    )


# ---------------------------------------------------------------------------
# Backend selection
# ---------------------------------------------------------------------------


def build_credential_store(settings: Settings) -> CredentialStore:
    """Return the backend selected by AUTH_MODE.

    Raises ValueError when AUTH_MODE=database but no database URL is set --
    a misconfiguration that should stop startup rather than fail every login.
    """
    if settings.use_database:
        if not settings.database_url:
            raise ValueError("POSTGRES_URL (or DATABASE_URL) must be set when AUTH_MODE=database.")
        return DatabaseCredentialStore(
            settings.database_url,
            table_name=settings.auth_users_table,
            log_errors=not settings.is_production,
        )
    return StaticCredentialStore(settings.auth_users)
