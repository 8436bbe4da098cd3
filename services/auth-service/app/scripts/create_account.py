"""
Create an account directly against the credential store (e.g. the first admin).
Run from services/auth-service:
  python -m app.scripts.create_account USERNAME EMAIL PASSWORD --role admin --office-id hq
"""

from __future__ import annotations

import argparse
import sys

from psycopg_pool import ConnectionPool

from schemas import Role

from ..config import get_settings
from ..domain.contracts import RegisterInput
from ..errors import AuthError
from ..main import build_authenticator
from ..repository import AccountRepository


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Create an auth-service account.")
    parser.add_argument("username")
    parser.add_argument("email")
    parser.add_argument("password")
    parser.add_argument("--first-name", default="Admin")
    parser.add_argument("--last-name", default="User")
    parser.add_argument("--office-id", default="hq")
    parser.add_argument("--role", default=Role.employee.value, choices=[role.value for role in Role])
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    with ConnectionPool(
        settings.database_url, open=False, timeout=settings.store_timeout_seconds
    ) as pool:
        authenticator = build_authenticator(
            AccountRepository(pool, timeout_seconds=settings.store_timeout_seconds), settings
        )
        try:
            session = authenticator.register(
                RegisterInput(
                    first_name=args.first_name,
                    last_name=args.last_name,
                    username=args.username,
                    email=args.email,
                    password=args.password,
                    office_id=args.office_id,
                    role=Role(args.role),
                )
            )
        except AuthError as exc:
            print(exc.message, file=sys.stderr)
            return 1
    print(f"Created account '{session.account.username}' with role '{session.account.role.value}'.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
