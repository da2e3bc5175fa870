#!/usr/bin/env python3
"""
TenantGate -- operator CLI for the credential database.

The web app only ever reads credentials. Creating and changing them happens
here, out of band.

Usage:
  python main.py init-db
  python main.py seed-user --username finance --password secret --company finance
  python main.py seed-user --username ops --password secret --company ops --dashboard /ops --inactive
  python main.py import-env-users
  python main.py hash-password

Environment variables:
  POSTGRES_URL / DATABASE_URL  SQLAlchemy URL of the credential database.
  AUTH_USERS_TABLE             Table name override (default: auth_users).
  AUTH_USERS                   JSON user list, read by import-env-users.
"""

import argparse
import getpass
import sys
from typing import Optional

from auth.models import Credential
from auth.passwords import hash_password, looks_like_bcrypt
from auth.store import DatabaseCredentialStore, normalize_dashboard_path, parse_credentials
from core.config import get_settings


def _open_store(database_url: Optional[str]) -> Optional[DatabaseCredentialStore]:
    settings = get_settings()
    url = database_url or settings.database_url
    if not url:
        print("  [!] POSTGRES_URL (or DATABASE_URL) is not set. Cannot connect to the database.")
        return None
    return DatabaseCredentialStore(url, table_name=settings.auth_users_table)


def _cmd_init_db(args: argparse.Namespace) -> int:
    store = _open_store(args.database_url)
    if store is None:
        return 1
    print(f"Preparing auth users table \"{store.table_name}\"...", end=" ", flush=True)
    try:
        store.create_schema()
    finally:
        store.close()
    print("done.")
    return 0


def _cmd_seed_user(args: argparse.Namespace) -> int:
    username = args.username.strip()
    company = args.company.strip()
    if not username or not args.password or not company:
        print("  [!] Provide a non-empty --username, --password and --company.")
        return 1

    store = _open_store(args.database_url)
    if store is None:
        return 1
    label = (args.label or "").strip()
    credential = Credential(
        username=username,
        password_hash=hash_password(args.password),
        company=company,
        dashboard=normalize_dashboard_path(args.dashboard, company),
        label=label or company,
        project_id=(args.project_id or "").strip() or None,
        active=not args.inactive,
    )
    try:
        store.upsert_credential(credential)
    finally:
        store.close()
    state = "stored as inactive" if args.inactive else "seeded"
    print(f"User \"{username}\" has been {state} in {store.table_name}.")
    return 0


def _cmd_import_env_users(args: argparse.Namespace) -> int:
    """Copy AUTH_USERS into the database, hashing any plaintext passwords."""
    credentials = parse_credentials(get_settings().auth_users)
    if not credentials:
        print("  [!] AUTH_USERS is empty or invalid; nothing to import.")
        return 1

    store = _open_store(args.database_url)
    if store is None:
        return 1
    try:
        for credential in credentials:
            stored = credential.password_hash
            if not looks_like_bcrypt(stored):
                stored = hash_password(stored)
            store.upsert_credential(
                Credential(
                    username=credential.username,
                    password_hash=stored,
                    company=credential.company,
                    dashboard=credential.dashboard,
                    label=credential.label,
                    project_id=credential.project_id,
                    active=credential.active,
                )
            )
            print(f"  {credential.username} -> {credential.dashboard}")
    finally:
        store.close()
    print(f"Imported {len(credentials)} user(s) into {store.table_name}.")
    return 0


def _cmd_hash_password(args: argparse.Namespace) -> int:
    password = args.password or getpass.getpass("Password: ")
    if not password:
        print("  [!] Password must not be empty.")
        return 1
    print(hash_password(password))
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="tenantgate",
        description="Manage TenantGate credentials.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--database-url",
        metavar="URL",
        help="SQLAlchemy database URL (default: POSTGRES_URL / DATABASE_URL)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create the auth users table and its company index")

    seed = sub.add_parser("seed-user", help="Insert or update one user (password stored as bcrypt)")
    seed.add_argument("--username", required=True)
    seed.add_argument("--password", required=True)
    seed.add_argument("--company", required=True)
    seed.add_argument("--dashboard", help="Dashboard path (default: /dashboard/<company>)")
    seed.add_argument("--label", help="Display name (default: company)")
    seed.add_argument("--project-id", help="External project identifier")
    seed.add_argument("--inactive", action="store_true", help="Store the user as inactive")

    sub.add_parser("import-env-users", help="Copy AUTH_USERS into the database, hashing plaintext passwords")

    hasher = sub.add_parser("hash-password", help="Print a bcrypt hash for use in AUTH_USERS")
    hasher.add_argument("password", nargs="?", help="Password to hash (prompted when omitted)")

    args = parser.parse_args(argv)
    handlers = {
        "init-db": _cmd_init_db,
        "seed-user": _cmd_seed_user,
        "import-env-users": _cmd_import_env_users,
        "hash-password": _cmd_hash_password,
    }
    return handlers[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
