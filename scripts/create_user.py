#!/usr/bin/env python3
"""Create a user account against the configured store.

Usage:
    python scripts/create_user.py --username alice --email alice@example.com \
        --full-name "Alice Liddell" --password '...'

Environment Variables:
    DATABASE_URL: PostgreSQL connection string
    USE_MEMORY_STORE: Set to "true" to use the in-memory store (with
        MEMORY_STORE_PATH to keep the result on disk)
"""
from __future__ import annotations

import argparse
import asyncio
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from userhub.config import Settings
from userhub.service.errors import ServiceError
from userhub.service.runtime import Runtime


async def create_user(
    *, full_name: str, email: str, username: str, password: str
) -> dict:
    runtime = Runtime.from_settings(Settings.from_env())
    await runtime.open()
    try:
        profile = await runtime.sessions.register(
            full_name=full_name, email=email, username=username, password=password
        )
    finally:
        await runtime.close()
    return {"user_id": profile.id, "username": profile.username, "email": profile.email}


def main():
    parser = argparse.ArgumentParser(
        description="Create a userhub account",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--username", required=True)
    parser.add_argument("--email", required=True)
    parser.add_argument("--full-name", required=True)
    parser.add_argument(
        "--password",
        default=os.environ.get("USER_PASSWORD"),
        help="Account password (or set USER_PASSWORD env var)",
    )
    args = parser.parse_args()

    if not args.password:
        print("Error: --password or USER_PASSWORD environment variable required")
        sys.exit(1)

    try:
        result = asyncio.run(
            create_user(
                full_name=args.full_name,
                email=args.email,
                username=args.username,
                password=args.password,
            )
        )
    except ServiceError as e:
        print(f"Error: {e.message}")
        sys.exit(1)

    print("Created user:")
    print(f"  Username: {result['username']}")
    print(f"  Email: {result['email']}")
    print(f"  User ID: {result['user_id']}")


if __name__ == "__main__":
    main()
