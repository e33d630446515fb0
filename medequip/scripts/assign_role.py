#!/usr/bin/env python3
from __future__ import annotations

import argparse

from dotenv import load_dotenv

load_dotenv()

from medequip.db.base import Base
from medequip.db.session import SessionLocalStore, engine_store
from medequip.services.authorization_service import KNOWN_ROLES
from medequip.services.user_access_service import (
    AuthError,
    assign_role,
    get_user_by_email,
    set_password,
    sign_up,
)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Create or update one account and its role directly from terminal.",
    )
    parser.add_argument("--email", required=True, help="Account email")
    parser.add_argument("--role", choices=list(KNOWN_ROLES), default="admin", help="Role to assign")
    parser.add_argument("--password", default=None, help="Password to set; required when the account does not exist yet.")
    parser.add_argument("--full-name", default="Administrator", help="Full name used when creating the account.")
    return parser


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()

    Base.metadata.create_all(bind=engine_store)
    db = SessionLocalStore()
    try:
        user = get_user_by_email(db, args.email)
        try:
            if user is None:
                if not args.password:
                    parser.error("--password is required to create a new account.")
                user = sign_up(db, args.email, args.password, args.full_name)
                action = "created"
            else:
                if args.password:
                    set_password(db, user, args.password)
                action = "updated"
        except AuthError as exc:
            parser.error(str(exc))
        role = assign_role(db, user.UserID, args.role)
    finally:
        db.close()

    print(f"Account {action}: {args.email} role={role}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
