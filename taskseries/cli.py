from __future__ import annotations

import argparse
import sys

from .auth import create_access_token
from .crud import reconcile_series
from .db import SessionLocal, init_db


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="taskseries")
    sub = parser.add_subparsers(dest="command", required=True)

    p_token = sub.add_parser(
        "issue-token",
        help="Sign a bearer token for a subject using the configured secret (local development).",
    )
    p_token.add_argument("subject", help="Identity-provider subject (becomes the user's auth_uid)")
    p_token.add_argument("--name", default=None)
    p_token.add_argument("--email", default=None)
    p_token.add_argument(
        "--minutes",
        type=int,
        default=None,
        help="Token lifetime. Defaults to security.token_minutes.",
    )

    p_reconcile = sub.add_parser(
        "reconcile",
        help="Recompute series bounds and delete series that have no tasks left.",
    )
    p_reconcile.add_argument("--user-id", type=int, default=None, help="Limit to one user")

    args = parser.parse_args(argv)

    if args.command == "issue-token":
        print(
            create_access_token(
                subject=args.subject,
                name=args.name,
                email=args.email,
                expires_minutes=args.minutes,
            )
        )
        return

    if args.command == "reconcile":
        init_db()
        with SessionLocal() as db:
            removed = reconcile_series(db, user_id=args.user_id)
        print(f"removed {removed} empty series")
        return

    parser.print_help()
    sys.exit(2)


if __name__ == "__main__":
    main()
