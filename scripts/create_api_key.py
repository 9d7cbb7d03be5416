#!/usr/bin/env python3
"""
Issue an API key for a user.

The raw key is printed once; only its SHA-256 hash is stored.

Usage:
    uv run python scripts/create_api_key.py <user_id> [--name NAME]
"""

import argparse
import asyncio

from copyaudit.config import settings
from copyaudit.db.engine import Database
from copyaudit.services.auth import ApiKeyVerifier


async def _create(user_id: str, name: str) -> str:
    db = Database(settings.database_url, null_pool=True)
    try:
        await db.create_schema()
        return await ApiKeyVerifier(db).create_key(user_id, name)
    finally:
        await db.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("user_id")
    parser.add_argument("--name", default="default")
    args = parser.parse_args()

    raw_key = asyncio.run(_create(args.user_id, args.name))
    print(f"API key for {args.user_id}: {raw_key}")
    print("Store it now; it cannot be shown again.")


if __name__ == "__main__":
    main()
