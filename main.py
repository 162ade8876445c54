#!/usr/bin/env python3
"""
AgentDesk auth -- command-line administration.

Usage:
  python main.py create-user --name "Ada" --email ada@example.com --role admin
  python main.py create-user --name "Bo" --email bo@example.com --role agent --manager-id 1
  python main.py audit
  python main.py audit --action login --limit 20

The password is read with getpass so it never lands in shell history.

Environment variables:
  SECRET_KEY     Required unless DEBUG=true (see core/config.py).
  DATABASE_URL   Defaults to agentdesk_auth.db at the repository root.
"""

import argparse
import getpass
import json
import sys
from typing import Optional

from auth.errors import AuthError
from auth.mailer import SmtpMailer
from auth.service import AuthService
from auth.store import UserStore
from core.config import get_settings


def _create_user(service: AuthService, args: argparse.Namespace) -> int:
    password: Optional[str] = args.password
    if password is None:
        password = getpass.getpass("Password: ")
        if password != getpass.getpass("Repeat password: "):
            print("  [!] Passwords do not match.")
            return 1
    if not password:
        print("  [!] Password must not be empty.")
        return 1

    permissions = [p.strip() for p in args.permissions.split(",") if p.strip()] if args.permissions else None
    try:
        result = service.register(
            name=args.name,
            email=args.email,
            password=password,
            role=args.role,
            permissions=permissions,
            manager_id=args.manager_id,
        )
    except AuthError as exc:
        print(f"  [!] {exc.message} ({exc.code})")
        return 1
    print(f"  {result.message} id={result.user_id}")
    return 0


def _print_audit(store: UserStore, args: argparse.Namespace) -> int:
    entries = store.list_audit(actor_id=args.actor_id, action=args.action, limit=args.limit)
    if not entries:
        print("  No audit entries.")
        return 0
    for e in entries:
        actor = e.actor_id if e.actor_id is not None else "-"
        print(f"  {e.created_at}  {e.action:<26} {actor!s:>6}  {e.actor_email}  {json.dumps(e.detail)}")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="agentdesk-auth",
        description="Administer AgentDesk users and review the audit log.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-user", help="Register a user (e.g. the first admin)")
    create.add_argument("--name", required=True)
    create.add_argument("--email", required=True)
    create.add_argument("--role", required=True, help="admin, manager, agent, or another configured role")
    create.add_argument("--permissions", default=None, help="Comma-separated explicit permissions (default: role defaults)")
    create.add_argument("--manager-id", type=int, default=None, help="Required for agents")
    create.add_argument("--password", default=None, help=argparse.SUPPRESS)

    audit = sub.add_parser("audit", help="Print recent audit entries, newest first")
    audit.add_argument("--action", default=None)
    audit.add_argument("--actor-id", type=int, default=None)
    audit.add_argument("--limit", type=int, default=50)

    args = parser.parse_args(argv)

    settings = get_settings()
    store = UserStore(settings.database_url)
    try:
        if args.command == "create-user":
            service = AuthService.from_settings(settings, store=store, mailer=SmtpMailer.from_settings(settings))
            return _create_user(service, args)
        return _print_audit(store, args)
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
