#!/usr/bin/env python3
"""
Roster -- passwordless email-code login with user and role administration.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8080 --reload
  python main.py init-db
  python main.py grant-role admin@example.com admin

Environment variables (see core/config.py for the full list):
  SECRET_KEY    JWT signing key, at least 32 characters. Required unless DEBUG=true.
  DATABASE_URL  SQLAlchemy URL of the directory database (default: SQLite roster.db).
  REDIS_URL     Redis holding verification codes (default: redis://localhost:6379/0).
  SMTP_HOST     Outbound mail server. Leave empty to only log messages.
"""

from __future__ import annotations

import argparse
import sys
from typing import Optional

from core.config import get_settings
from core.errors import Conflict, RosterError
from directory.service import DirectoryService, normalize_email
from directory.store import DirectoryStore


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "api.main:app",
        host=args.host,
        port=args.port or settings.port,
        reload=args.reload,
    )
    return 0


def _cmd_init_db(args: argparse.Namespace) -> int:
    """Create tables and seed default settings. Safe to run repeatedly."""
    store = DirectoryStore(get_settings().database_url)
    try:
        created = DirectoryService(store).seed_default_settings()
    finally:
        store.close()
    print(f"  Database ready. {created} default setting(s) created.")
    return 0


def _cmd_grant_role(args: argparse.Namespace) -> int:
    """Find-or-create the profile and the role, then assign one to the other."""
    email = normalize_email(args.email)
    store = DirectoryStore(get_settings().database_url)
    directory = DirectoryService(store)
    try:
        profile = store.get_profile_by_email(email)
        if profile is None:
            user = directory.create_user(email=email, full_name=email.split("@", 1)[0])
            profile_id = user["id"]
            print(f"  Created user {email}.")
        else:
            profile_id = profile.id

        role = store.get_role_by_name(args.role)
        if role is None:
            role_id = directory.create_role(args.role)["id"]
            print(f"  Created role '{args.role}' with no permissions.")
        else:
            role_id = role.id

        try:
            directory.assign_role(profile_id, role_id)
        except Conflict:
            print(f"  {email} already has role '{args.role}'.")
            return 0
    except RosterError as e:
        print(f"  [!] {e.message}")
        return 1
    finally:
        store.close()
    print(f"  Granted '{args.role}' to {email}.")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="roster",
        description="Passwordless email-code login with user and role administration.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py serve
  DEBUG=true python main.py serve --reload
  python main.py init-db
  python main.py grant-role admin@example.com admin
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")
    sub.required = True

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=None, help="Port (default: PORT setting, 3000)")
    serve.add_argument("--reload", action="store_true", help="Restart on code changes (development only)")
    serve.set_defaults(func=_cmd_serve)

    init_db = sub.add_parser("init-db", help="Create tables and seed default settings")
    init_db.set_defaults(func=_cmd_init_db)

    grant = sub.add_parser("grant-role", help="Assign a role to a user, creating either if missing")
    grant.add_argument("email", metavar="EMAIL", help="Identity address of the user")
    grant.add_argument("role", metavar="ROLE", help="Role name")
    grant.set_defaults(func=_cmd_grant_role)

    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
