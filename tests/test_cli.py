"""
tests/test_cli.py -- The operator CLI in main.py.

Each test points the CLI at a fresh SQLite file under tmp_path and then
reads the result back through DatabaseCredentialStore -- the same class the
app uses in AUTH_MODE=database.
"""

from __future__ import annotations

import json

import pytest

from auth.passwords import check_password, looks_like_bcrypt
from auth.store import DatabaseCredentialStore
from core.config import get_settings
from main import main


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'credentials.db'}"


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch):
    monkeypatch.delenv("POSTGRES_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("AUTH_USERS_TABLE", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def _read(db_url: str, username: str):
    store = DatabaseCredentialStore(db_url)
    try:
        return store.find_by_username(username)
    finally:
        store.close()


def test_init_db_is_idempotent(db_url: str, capsys) -> None:
    assert main(["--database-url", db_url, "init-db"]) == 0
    assert main(["--database-url", db_url, "init-db"]) == 0
    assert "auth_users" in capsys.readouterr().out
    assert _read(db_url, "nobody") is None


def test_missing_database_url_fails(capsys) -> None:
    assert main(["init-db"]) == 1
    assert "POSTGRES_URL" in capsys.readouterr().out


def test_seed_user_stores_bcrypt_hash(db_url: str) -> None:
    main(["--database-url", db_url, "init-db"])
    code = main(
        [
            "--database-url", db_url,
            "seed-user",
            "--username", "finance",
            "--password", "s3cret",
            "--company", "finance",
            "--label", "Finance Team",
            "--project-id", "proj_9",
        ]
    )
    assert code == 0
    credential = _read(db_url, "finance")
    assert credential.dashboard == "/dashboard/finance"
    assert credential.label == "Finance Team"
    assert credential.project_id == "proj_9"
    assert looks_like_bcrypt(credential.password_hash)
    assert check_password("s3cret", credential.password_hash)


def test_seed_user_inactive(db_url: str, capsys) -> None:
    main(["--database-url", db_url, "init-db"])
    args = ["--database-url", db_url, "seed-user", "--username", "ops", "--password", "pw", "--company", "ops"]
    assert main(args + ["--dashboard", "ops/home", "--inactive"]) == 0
    assert "inactive" in capsys.readouterr().out
    assert _read(db_url, "ops") is None

    assert main(args + ["--dashboard", "ops/home"]) == 0
    assert _read(db_url, "ops").dashboard == "/ops/home"


def test_seed_user_rejects_blank_fields(db_url: str) -> None:
    args = ["--database-url", db_url, "seed-user", "--username", "  ", "--password", "pw", "--company", "c"]
    assert main(args) == 1


def test_import_env_users_hashes_plaintext(db_url: str, monkeypatch, capsys) -> None:
    monkeypatch.setenv(
        "AUTH_USERS",
        json.dumps(
            [
                {"username": "alice", "password": "pw", "company": "acme"},
                {"username": "carol", "password": "pw3", "dashboard": "/reports/initech"},
            ]
        ),
    )
    main(["--database-url", db_url, "init-db"])
    assert main(["--database-url", db_url, "import-env-users"]) == 0
    assert "Imported 2 user(s)" in capsys.readouterr().out

    alice = _read(db_url, "alice")
    assert looks_like_bcrypt(alice.password_hash)
    assert check_password("pw", alice.password_hash)
    assert _read(db_url, "carol").company == "initech"


def test_import_env_users_with_nothing_to_import(db_url: str, monkeypatch) -> None:
    monkeypatch.setenv("AUTH_USERS", "")
    assert main(["--database-url", db_url, "import-env-users"]) == 1


def test_hash_password(capsys) -> None:
    assert main(["hash-password", "hunter2"]) == 0
    hashed = capsys.readouterr().out.strip()
    assert check_password("hunter2", hashed)
