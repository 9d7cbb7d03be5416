# =============================================================================
# Identity — API Key Hashing & Verification
# =============================================================================
#
# The API only needs one thing from identity: a verified user id for the
# bearer token, so usage can be attributed. `IdentityVerifier` is that
# seam; `ApiKeyVerifier` implements it with hashed keys in the database.
#
# Keys are 32-byte random tokens, stored as SHA-256 hex digests. The hash
# is deterministic so it can be looked up directly.
# =============================================================================

from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import UTC, datetime
from typing import Protocol

from sqlalchemy import select

from copyaudit.db.engine import Database
from copyaudit.db.models import ApiKey

logger = logging.getLogger(__name__)


def generate_api_key() -> tuple[str, str, str]:
    """
    Generate a new API key.

    Returns:
        (raw_key, key_prefix, key_hash): the raw key is shown to the user
        once; the prefix identifies it in logs; the hash is stored.
    """
    raw_key = f"ca-{secrets.token_hex(32)}"
    return raw_key, raw_key[:8], hash_api_key(raw_key)


def hash_api_key(raw_key: str) -> str:
    """SHA-256 hex digest (64 chars)."""
    return hashlib.sha256(raw_key.encode()).hexdigest()


class IdentityVerifier(Protocol):
    async def verify(self, token: str) -> str:
        """Return the user id for `token`; raise PermissionError otherwise."""
        ...


class ApiKeyVerifier:
    def __init__(self, db: Database) -> None:
        self._db = db

    async def verify(self, token: str) -> str:
        key_hash = hash_api_key(token)
        async with self._db.session() as session:
            result = await session.execute(
                select(ApiKey).where(ApiKey.key_hash == key_hash)
            )
            api_key = result.scalar_one_or_none()

            if api_key is None:
                raise PermissionError("Invalid API key.")
            if not api_key.is_active:
                raise PermissionError("API key has been deactivated.")
            if api_key.expires_at and api_key.expires_at < datetime.now(UTC):
                raise PermissionError("API key has expired.")

            api_key.last_used_at = datetime.now(UTC)
            return api_key.user_id

    async def create_key(self, user_id: str, name: str) -> str:
        """Store a new key for `user_id` and return the raw key."""
        raw_key, prefix, key_hash = generate_api_key()
        async with self._db.session() as session:
            session.add(ApiKey(
                user_id=user_id, name=name, key_prefix=prefix, key_hash=key_hash,
            ))
        logger.info("Created API key %s for user %s", prefix, user_id)
        return raw_key
