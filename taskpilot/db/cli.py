from __future__ import annotations

import argparse
from collections.abc import Sequence

from sqlmodel import Session

from taskpilot.core.config import get_settings
from taskpilot.db.bootstrap import initialize_database
from taskpilot.db.engine import create_engine_from_url
from taskpilot.db.enums import RoleName
from taskpilot.db.migrations import upgrade_to_head
from taskpilot.db.repositories import RevokedTokenRepository, UserRepository
from taskpilot.security import hash_password
from taskpilot.security.passwords import PASSWORD_MAX_LENGTH, PASSWORD_MIN_LENGTH


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="taskpilot-db",
        description="TaskPilot database management commands.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser(
        "init",
        help="Create database directory, apply migrations and optionally seed data.",
    )
    init_parser.add_argument("--database-url", default=None)
    init_parser.add_argument("--skip-seed", action="store_true")

    migrate_parser = subparsers.add_parser(
        "migrate",
        help="Apply database migrations to latest revision.",
    )
    migrate_parser.add_argument("--database-url", default=None)

    restore_parser = subparsers.add_parser(
        "restore-admin-role",
        help="Grant the admin role back to an existing account.",
    )
    restore_parser.add_argument("--email", required=True)
    restore_parser.add_argument("--database-url", default=None)

    password_parser = subparsers.add_parser(
        "set-password",
        help="Replace the password of an existing account.",
    )
    password_parser.add_argument("--email", required=True)
    password_parser.add_argument("--password", required=True)
    password_parser.add_argument("--database-url", default=None)

    purge_parser = subparsers.add_parser(
        "purge-revoked-tokens",
        help="Delete revoked token records that can no longer be presented.",
    )
    purge_parser.add_argument("--database-url", default=None)

    return parser


def _restore_admin_role(database_url: str, email: str) -> int:
    engine = create_engine_from_url(database_url)
    try:
        with Session(engine) as session:
            users = UserRepository(session)
            user = users.get_by_email(email)
            if user is None:
                print(f"User ({email}) not found!")
                return 1
            if not users.assign_role(user, RoleName.ADMIN):
                print("User already has admin role.")
                return 0
            print(f"Admin role restored successfully to {user.email}!")
            return 0
    finally:
        engine.dispose()


def _set_password(database_url: str, email: str, password: str) -> int:
    if not PASSWORD_MIN_LENGTH <= len(password) <= PASSWORD_MAX_LENGTH:
        print(
            f"Password must be between {PASSWORD_MIN_LENGTH} and "
            f"{PASSWORD_MAX_LENGTH} characters."
        )
        return 1
    engine = create_engine_from_url(database_url)
    try:
        with Session(engine) as session:
            users = UserRepository(session)
            user = users.get_by_email(email)
            if user is None:
                print(f"User ({email}) not found!")
                return 1
            user.password_hash = hash_password(password)
            users.save(user)
            print("Password updated successfully!")
            return 0
    finally:
        engine.dispose()


def _purge_revoked_tokens(database_url: str) -> int:
    engine = create_engine_from_url(database_url)
    try:
        with Session(engine) as session:
            removed = RevokedTokenRepository(session).purge_expired()
    finally:
        engine.dispose()
    print(f"Removed {removed} expired token record(s).")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    database_url = args.database_url or get_settings().database_url

    if args.command == "init":
        initialize_database(database_url=database_url, seed=not args.skip_seed)
        print("Database initialized.")
        return 0

    if args.command == "migrate":
        upgrade_to_head(database_url)
        print("Database migrations applied.")
        return 0

    if args.command == "restore-admin-role":
        return _restore_admin_role(database_url, args.email)

    if args.command == "set-password":
        return _set_password(database_url, args.email, args.password)

    if args.command == "purge-revoked-tokens":
        return _purge_revoked_tokens(database_url)

    parser.error(f"Unsupported command: {args.command}")
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
