#!/usr/bin/env python3
"""
Pulse -- account administration CLI.

Runs the same auth services the API uses, against the database and SMTP
settings from the environment / .env file.

Usage:
  python main.py create-user --email alice@example.com --username alice --first-name Alice --last-name Liddell
  python main.py request-reset --email alice@example.com

create-user prompts for the password (never pass it on the command line).
request-reset emails a reset link exactly as POST /forgot-password does; the
token is not printed.

Environment variables: see core/config.py (DATABASE_URL, ACCESS_TOKEN_SECRET,
REFRESH_TOKEN_SECRET, SMTP_*).
"""

import argparse
import getpass
import logging
import sys
from typing import Optional

from auth.accounts import AccountService
from auth.reset import PasswordResetFlow
from auth.store import UserStore
from core.config import get_settings
from notify.mailer import SmtpMailer

logger = logging.getLogger("pulse.cli")


def _create_user(args: argparse.Namespace, store: UserStore) -> int:
    password = args.password if args.password is not None else getpass.getpass("Password: ")
    outcome = AccountService(store).register(
        first_name=args.first_name,
        last_name=args.last_name,
        email=args.email,
        username=args.username,
        password=password,
    )
    if not outcome.ok:
        print(f"  [!] {outcome.failure.message}")
        return 1
    print(f"  Created user {outcome.value.username} (id={outcome.value.id}).")
    return 0


def _request_reset(args: argparse.Namespace, store: UserStore) -> int:
    settings = get_settings()
    flow = PasswordResetFlow(
        store,
        SmtpMailer.from_settings(settings),
        window_seconds=settings.reset_token_expire_seconds,
    )
    outcome = flow.request_reset(args.email)
    if not outcome.ok:
        print(f"  [!] {outcome.failure.message}")
        return 1
    print(f"  Reset link sent to {args.email}.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pulse", description="Pulse account administration.")
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-user", help="Register a new account.")
    create.add_argument("--email", required=True)
    create.add_argument("--username", required=True)
    create.add_argument("--first-name", required=True)
    create.add_argument("--last-name", required=True)
    # Hidden: lets scripts and tests skip the interactive prompt.
    create.add_argument("--password", default=None, help=argparse.SUPPRESS)
    create.set_defaults(handler=_create_user)

    reset = sub.add_parser("request-reset", help="Email a password reset link.")
    reset.add_argument("--email", required=True)
    reset.set_defaults(handler=_request_reset)

    return parser


def main(argv: Optional[list[str]] = None, store: Optional[UserStore] = None) -> int:
    logging.basicConfig(level=logging.WARNING, format="%(levelname)-5s %(name)s %(message)s")
    args = build_parser().parse_args(argv)
    owns_store = store is None
    if store is None:
        store = UserStore(get_settings().database_url)
    try:
        return args.handler(args, store)
    finally:
        if owns_store:
            store.close()


if __name__ == "__main__":
    sys.exit(main())
