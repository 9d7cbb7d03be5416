# =============================================================================
# Usage Accounting — Token Log with Monotonic Per-User Aggregates
# =============================================================================
#
# Every token-consuming action (an audit agent run, a generation, a scrape
# cleanup) is recorded twice:
#   1. an append-only UsageRecord row
#   2. atomic increments of the user's aggregates:
#        total_tokens, request_count, last_active_at
#        breakdown[action] += tokens
#
# Increments are single `INSERT ... ON CONFLICT DO UPDATE SET x = x + n`
# statements, so concurrent logs for the same user never lose updates and
# totals never decrease.
#
# Accounting is not allowed to fail the operation it accounts for:
# log() swallows and logs its own errors.
#
# Action names in use:
#   AUDIT_LOGIC_LEGAL, AUDIT_BRAND_PRODUCT, AUDIT_LANGUAGE, AUDIT_CONTENT
#   GENERATE_TEXT, SCRAPE_WEBSITE, ANALYZE_BRAND
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol

from sqlalchemy.dialects.postgresql import insert as pg_insert

from copyaudit.db.engine import Database
from copyaudit.db.models import UsageRecord, UserUsageBreakdown, UserUsageStats

logger = logging.getLogger(__name__)

GENERATE_TEXT = "GENERATE_TEXT"
SCRAPE_WEBSITE = "SCRAPE_WEBSITE"
ANALYZE_BRAND = "ANALYZE_BRAND"


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class UsageTotals:
    total_tokens: int = 0
    request_count: int = 0
    breakdown: dict[str, int] = field(default_factory=dict)
    last_active_at: datetime | None = None


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class UsageLogger(Protocol):
    async def log(
        self,
        user_id: str | None,
        action: str,
        token_count: int,
        metadata: dict | None = None,
    ) -> None:
        """Record usage. No-op without a user or with token_count <= 0."""
        ...


def _should_skip(user_id: str | None, token_count: int) -> bool:
    return not user_id or token_count <= 0


# ---------------------------------------------------------------------------
# Implementation 1: PostgreSQL
# ---------------------------------------------------------------------------


class SqlUsageLogger:
    def __init__(self, db: Database) -> None:
        self._db = db

    async def log(
        self,
        user_id: str | None,
        action: str,
        token_count: int,
        metadata: dict | None = None,
    ) -> None:
        if _should_skip(user_id, token_count):
            return

        now = datetime.now(UTC)
        stats = pg_insert(UserUsageStats).values(
            user_id=user_id,
            total_tokens=token_count,
            request_count=1,
            last_active_at=now,
        )
        stats = stats.on_conflict_do_update(
            index_elements=[UserUsageStats.user_id],
            set_={
                "total_tokens": UserUsageStats.total_tokens + stats.excluded.total_tokens,
                "request_count": UserUsageStats.request_count + 1,
                "last_active_at": stats.excluded.last_active_at,
            },
        )

        breakdown = pg_insert(UserUsageBreakdown).values(
            user_id=user_id, action=action, tokens=token_count,
        )
        breakdown = breakdown.on_conflict_do_update(
            index_elements=[UserUsageBreakdown.user_id, UserUsageBreakdown.action],
            set_={"tokens": UserUsageBreakdown.tokens + breakdown.excluded.tokens},
        )

        try:
            async with self._db.session() as session:
                session.add(UsageRecord(
                    user_id=user_id,
                    action=action,
                    token_count=token_count,
                    metadata_=metadata or {},
                ))
                await session.execute(stats)
                await session.execute(breakdown)
        except Exception:
            logger.exception(
                "Failed to log usage (user=%s, action=%s, tokens=%d)",
                user_id, action, token_count,
            )
            return

        logger.debug("Logged %d tokens for %s (%s)", token_count, user_id, action)


# ---------------------------------------------------------------------------
# Implementation 2: In-Memory
# ---------------------------------------------------------------------------


class InMemoryUsageLogger:
    """
    Process-local usage log.

    Updates happen between awaits on a single event loop, so the
    read-modify-write below cannot interleave.
    """

    def __init__(self) -> None:
        self.records: list[dict] = []
        self._totals: dict[str, UsageTotals] = {}

    async def log(
        self,
        user_id: str | None,
        action: str,
        token_count: int,
        metadata: dict | None = None,
    ) -> None:
        if _should_skip(user_id, token_count):
            return

        now = datetime.now(UTC)
        self.records.append({
            "user_id": user_id,
            "action": action,
            "tokens": token_count,
            "details": metadata or {},
            "timestamp": now,
        })

        totals = self._totals.setdefault(user_id, UsageTotals())
        totals.total_tokens += token_count
        totals.request_count += 1
        totals.breakdown[action] = totals.breakdown.get(action, 0) + token_count
        totals.last_active_at = now

    def totals(self, user_id: str) -> UsageTotals:
        return self._totals.get(user_id, UsageTotals())
