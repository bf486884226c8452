#!/usr/bin/env python3
"""
Campus Feedback -- administration command line.

Registration through the API always creates students, so the first admin has
to be created here. The same tool can approve role requests without going
through the HTTP API.

Usage:
  python main.py create-admin --email admin@campus.edu --first-name Ada --last-name Admin
  python main.py list-users
  python main.py list-users --pending
  python main.py set-role 7 professor
  python main.py set-role 7            (approve the requested role)

Environment variables:
  DATABASE_URL  SQLAlchemy URL of the database (default: sqlite file beside the code)
  JWT_SECRET    Required unless DEBUG=true, as for the API server
"""

import argparse
import getpass
import sys
from typing import Optional

from sqlalchemy.exc import IntegrityError

from auth.models import InvalidRoleError, LastAdminError, Role, User
from auth.store import UserStore
from auth.tokens import hash_password


def _read_password(provided: Optional[str]) -> str:
    """Use --password when given, otherwise prompt twice without echo."""
    if provided:
        return provided
    first = getpass.getpass("  Password: ")
    second = getpass.getpass("  Repeat password: ")
    if first != second:
        raise SystemExit("  [!] Passwords do not match.")
    if not first:
        raise SystemExit("  [!] Password cannot be empty.")
    return first


def create_admin(store: UserStore, args: argparse.Namespace) -> int:
    password = _read_password(args.password)
    user = User(
        first_name=args.first_name,
        last_name=args.last_name,
        email=args.email.strip().lower(),
        password_hash=hash_password(password),
        role=Role.admin,
        requested_role=Role.admin,
    )
    try:
        user_id = store.create_user(user)
    except IntegrityError:
        print(f"  [!] A user with email {user.email} already exists.")
        return 1
    print(f"  Admin {user.email} created (id {user_id}).")
    return 0


def list_users(store: UserStore, args: argparse.Namespace) -> int:
    users = store.list_users(pending_only=args.pending)
    if not users:
        print("  No pending role requests." if args.pending else "  No users.")
        return 0
    print(f"  {'ID':>4}  {'EMAIL':<32} {'ROLE':<10} {'REQUESTED':<10} NAME")
    for user in users:
        print(
            f"  {user.id:>4}  {user.email:<32} {user.role.value:<10} "
            f"{user.requested_role.value:<10} {user.first_name} {user.last_name}"
        )
    return 0


def set_role(store: UserStore, args: argparse.Namespace) -> int:
    user = store.get_by_id(args.user_id)
    if user is None:
        print(f"  [!] No user with id {args.user_id}.")
        return 1
    try:
        new_role = Role.parse(args.role) if args.role else user.requested_role
    except InvalidRoleError:
        print(f"  [!] '{args.role}' is not a role. Expected one of: student, professor, admin.")
        return 1
    try:
        store.set_role(user.id, new_role)
    except LastAdminError:
        print("  [!] Cannot demote the last admin.")
        return 1
    print(f"  {user.email}: {user.role.value} -> {new_role.value}")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="campus-feedback",
        description="Administration tasks for the Campus Feedback service.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p_admin = sub.add_parser("create-admin", help="Create an admin account")
    p_admin.add_argument("--email", required=True)
    p_admin.add_argument("--first-name", required=True)
    p_admin.add_argument("--last-name", required=True)
    p_admin.add_argument(
        "--password",
        help="Password for the account. Prompted for when omitted, which keeps it out of shell history.",
    )
    p_admin.set_defaults(handler=create_admin)

    p_list = sub.add_parser("list-users", help="List users and their roles")
    p_list.add_argument(
        "--pending",
        action="store_true",
        help="Only users whose requested role has not been approved yet",
    )
    p_list.set_defaults(handler=list_users)

    p_role = sub.add_parser("set-role", help="Set a user's role, or approve the requested one")
    p_role.add_argument("user_id", type=int)
    p_role.add_argument("role", nargs="?", help="student, professor or admin (default: the requested role)")
    p_role.set_defaults(handler=set_role)

    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 0

    store = UserStore()
    try:
        return args.handler(store, args)
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
