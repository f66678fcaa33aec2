"""Register a user in the configured DB.

Usage:
  python scripts/create_user.py --first-name Ada --last-name Lovelace --email ada@blog.io

The password is prompted for unless --password is given.

NOTE: This is intended for local/dev.
"""

import argparse
import sys
from getpass import getpass
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from minimal_blog.auth.crud import create_user
from minimal_blog.config import load_config
from minimal_blog.db import connect, init_db
from minimal_blog.errors import BlogError


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--first-name", required=True)
    ap.add_argument("--last-name", required=True)
    ap.add_argument("--email", required=True)
    ap.add_argument("--password", default=None)
    args = ap.parse_args()

    password = args.password
    if password is None:
        password = getpass("Password: ")
        if getpass("Repeat password: ") != password:
            raise SystemExit("Passwords do not match")

    cfg = load_config()
    init_db(cfg.DB_DSN)

    try:
        with connect(cfg.DB_DSN) as conn:
            u = create_user(
                conn,
                first_name=args.first_name,
                last_name=args.last_name,
                email=args.email,
                password=password,
                rounds=cfg.AUTH_PASSWORD_ROUNDS,
            )
    except BlogError as e:
        raise SystemExit(f"Error: {e.detail}")

    print("Created user:")
    print(u)


if __name__ == "__main__":
    main()
