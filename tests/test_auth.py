# =============================================================================
# Unit Tests — Identity & API Keys
# =============================================================================
#
# Test groups:
#   1. Key generation & hashing (pure functions)
#   2. ApiKeyVerifier against a mocked database session
#   3. resolve_user (the FastAPI identity dependency)
# =============================================================================

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from copyaudit.api.deps import resolve_user
from copyaudit.config import Settings
from copyaudit.services.auth import ApiKeyVerifier, generate_api_key, hash_api_key


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


# ---------------------------------------------------------------------------
# 1. Key Generation & Hashing
# ---------------------------------------------------------------------------


class TestKeyGeneration:
    def test_key_format_has_prefix(self):
        raw_key, _, _ = generate_api_key()
        assert raw_key.startswith("ca-")

    def test_key_length(self):
        raw_key, _, _ = generate_api_key()
        assert len(raw_key) == 67  # "ca-" + 64 hex chars

    def test_prefix_is_first_8_chars(self):
        raw_key, prefix, _ = generate_api_key()
        assert prefix == raw_key[:8]

    def test_hash_matches(self):
        raw_key, _, key_hash = generate_api_key()
        assert key_hash == hash_api_key(raw_key)
        assert len(key_hash) == 64

    def test_keys_are_unique(self):
        assert generate_api_key()[0] != generate_api_key()[0]

    def test_hash_deterministic(self):
        assert hash_api_key("ca-abc") == hash_api_key("ca-abc")
        assert hash_api_key("ca-abc") != hash_api_key("ca-abd")


# ---------------------------------------------------------------------------
# 2. ApiKeyVerifier
# ---------------------------------------------------------------------------


@dataclass
class FakeApiKey:
    user_id: str = "user-1"
    is_active: bool = True
    expires_at: datetime | None = None
    last_used_at: datetime | None = None


def _verifier_returning(api_key: FakeApiKey | None) -> ApiKeyVerifier:
    result = MagicMock()
    result.scalar_one_or_none.return_value = api_key
    session = MagicMock()
    session.execute = AsyncMock(return_value=result)

    class FakeDatabase:
        @asynccontextmanager
        async def session(self):
            yield session

    return ApiKeyVerifier(FakeDatabase())


class TestApiKeyVerifier:
    def test_valid_key(self):
        key = FakeApiKey()
        assert _run(_verifier_returning(key).verify("ca-raw")) == "user-1"
        assert key.last_used_at is not None

    def test_unknown_key(self):
        with pytest.raises(PermissionError, match="Invalid"):
            _run(_verifier_returning(None).verify("ca-raw"))

    def test_inactive_key(self):
        with pytest.raises(PermissionError, match="deactivated"):
            _run(_verifier_returning(FakeApiKey(is_active=False)).verify("ca-raw"))

    def test_expired_key(self):
        expired = FakeApiKey(expires_at=datetime.now(UTC) - timedelta(days=1))
        with pytest.raises(PermissionError, match="expired"):
            _run(_verifier_returning(expired).verify("ca-raw"))


# ---------------------------------------------------------------------------
# 3. resolve_user
# ---------------------------------------------------------------------------


def _bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


class TestResolveUser:
    def test_auth_disabled_is_anonymous(self):
        settings = Settings(_env_file=None, auth_enabled=False)
        assert _run(resolve_user(_bearer("anything"), settings, None)) is None

    def test_missing_credentials(self):
        settings = Settings(_env_file=None, auth_enabled=True)
        with pytest.raises(HTTPException) as exc_info:
            _run(resolve_user(None, settings, AsyncMock()))
        assert exc_info.value.status_code == 401

    def test_valid_key(self):
        settings = Settings(_env_file=None, auth_enabled=True)
        verifier = MagicMock()
        verifier.verify = AsyncMock(return_value="user-7")
        assert _run(resolve_user(_bearer(" ca-key "), settings, verifier)) == "user-7"
        verifier.verify.assert_awaited_once_with("ca-key")

    def test_rejected_key(self):
        settings = Settings(_env_file=None, auth_enabled=True)
        verifier = MagicMock()
        verifier.verify = AsyncMock(side_effect=PermissionError("Invalid API key."))
        with pytest.raises(HTTPException) as exc_info:
            _run(resolve_user(_bearer("ca-bad"), settings, verifier))
        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == "Invalid API key."

    def test_no_verifier_available(self):
        settings = Settings(_env_file=None, auth_enabled=True)
        with pytest.raises(HTTPException) as exc_info:
            _run(resolve_user(_bearer("ca-key"), settings, None))
        assert exc_info.value.status_code == 503
