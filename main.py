#!/usr/bin/env python3
"""
Cornerstone -- operator commands for the auth, authorization and audit backend.

Usage:
  python main.py create-admin --email admin@example.com --username admin
  python main.py create-admin --email admin@example.com --username admin --password '...'
  python main.py audit-summary --days 7
  python main.py audit-summary --days 7 --json
  python main.py purge-audit --older-than 365

Environment variables:
  DATABASE_URL  SQLAlchemy URL of the application database (or --database-url).
  SECRET_KEY    Required by the application settings even for CLI commands.
"""

import argparse
import getpass
import json
import sys
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from audit.models import AuditAction
from audit.sink import summarize_entries, window_start
from audit.store import AuditStore
from auth.models import Identity
from auth.store import IdentityStore
from auth.tokens import hash_password
from core.config import get_settings
from core.errors import ValidationError
from core.roles import Role
from core.schemas import REGISTER


def _database_url(args: argparse.Namespace) -> str:
    return args.database_url or get_settings().database_url


def _print_issues(issues: list[dict]) -> None:
    for issue in issues:
        path = ".".join(str(p) for p in issue["path"]) or "(payload)"
        print(f"  [!] {path}: {issue['message']}")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def create_admin(args: argparse.Namespace) -> int:
    """Bootstrap an ADMIN identity. The password is prompted when not given."""
    password = args.password
    if password is None:
        password = getpass.getpass("Password: ")
        if getpass.getpass("Confirm password: ") != password:
            print("  [!] Passwords do not match.")
            return 1

    try:
        data = REGISTER.check({"email": args.email, "username": args.username, "password": password})
    except ValidationError as exc:
        _print_issues(exc.issues)
        return 1

    store = IdentityStore(_database_url(args))
    try:
        identity_id = store.create_identity(
            Identity(
                email=data.email,
                username=data.username,
                role=Role.ADMIN.value,
                hashed_password=hash_password(data.password),
                is_verified=True,
            )
        )
    except IntegrityError:
        print("  [!] An identity with that email or username already exists.")
        return 1
    finally:
        store.close()

    print(f"  Created ADMIN identity {identity_id} ({data.email}).")
    return 0


def audit_summary(args: argparse.Namespace) -> int:
    """Print DENIED_ACCESS totals and top routes/roles for the window.

    Reads the store directly: a database error is reported and exits 1
    instead of looking like an empty audit log.
    """
    store = AuditStore(_database_url(args))
    try:
        entries = store.list_in_insertion_order(action=AuditAction.DENIED_ACCESS, since=window_start(args.days))
    except SQLAlchemyError as exc:
        print(f"  [!] Could not read the audit log: {exc}")
        return 1
    finally:
        store.close()
    summary = summarize_entries(entries)

    if args.json:
        print(
            json.dumps(
                {
                    "since_days": args.days,
                    "total_denials": summary.total_denials,
                    "counts_by_role": summary.counts_by_role,
                    "counts_by_route": summary.counts_by_route,
                    "top_routes": [{"key": r.key, "count": r.count} for r in summary.top_routes],
                    "top_roles": [{"key": r.key, "count": r.count} for r in summary.top_roles],
                },
                indent=2,
            )
        )
        return 0

    print(f"\nAccess denials, last {args.days} day(s): {summary.total_denials}")
    print("─" * 40)
    if summary.top_routes:
        print("Top routes:")
        for row in summary.top_routes:
            print(f"  {row.count:>6}  {row.key}")
    if summary.top_roles:
        print("Top roles:")
        for row in summary.top_roles:
            print(f"  {row.count:>6}  {row.key}")
    print()
    return 0


def purge_audit(args: argparse.Namespace) -> int:
    """Soft-delete audit entries older than the given number of days."""
    store = AuditStore(_database_url(args))
    try:
        marked = store.soft_delete_older_than(args.older_than)
    finally:
        store.close()
    print(f"  Marked {marked} audit entr{'y' if marked == 1 else 'ies'} older than {args.older_than} day(s) as deleted.")
    return 0


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError("must be at least 1")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cornerstone",
        description="Operator commands for the Cornerstone backend.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-admin --email admin@example.com --username admin
  python main.py audit-summary --days 7
  python main.py purge-audit --older-than 365
        """,
    )
    parser.add_argument(
        "--database-url",
        metavar="URL",
        default=None,
        help="SQLAlchemy database URL (default: DATABASE_URL from the environment)",
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p_admin = sub.add_parser("create-admin", help="Create an ADMIN identity")
    p_admin.add_argument("--email", required=True)
    p_admin.add_argument("--username", required=True)
    p_admin.add_argument("--password", default=None, help="Omit to be prompted (recommended)")
    p_admin.set_defaults(func=create_admin)

    p_summary = sub.add_parser("audit-summary", help="Print the access-denial summary")
    p_summary.add_argument("--days", type=_positive_int, default=30, help="Look-back window (default: 30)")
    p_summary.add_argument("--json", action="store_true", help="Output structured JSON")
    p_summary.set_defaults(func=audit_summary)

    p_purge = sub.add_parser("purge-audit", help="Soft-delete old audit entries")
    p_purge.add_argument("--older-than", type=_positive_int, required=True, metavar="DAYS")
    p_purge.set_defaults(func=purge_audit)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 1
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
