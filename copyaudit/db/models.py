# =============================================================================
# Database Models — SQLAlchemy ORM
# =============================================================================
#
# SCHEMA OVERVIEW:
#
# ┌────────────────────┐       ┌──────────────────────────────────────┐
# │  guidelines        │       │  guideline_chunks                    │
# ├────────────────────┤       ├──────────────────────────────────────┤
# │ id (PK)            │──1:N─▶│ id (PK)                              │
# │ brand_id           │       │ guideline_id (FK, cascade delete)    │
# │ file_name          │       │ chunk_index                          │
# │ status             │       │ text                                 │
# │ is_primary         │       │ embedding (vector, nullable)         │
# │ raw_text           │       │ has_embedding / is_primary           │
# │ chunk_count        │       │ token_count                          │
# │ embedded_count     │       │ metadata_ (jsonb)                    │
# │ failed_count       │       └──────────────────────────────────────┘
# │ error_message      │
# └────────────────────┘
#
# ┌────────────────────┐  ┌─────────────────────┐  ┌────────────────────────┐
# │ usage_records      │  │ user_usage_stats    │  │ user_usage_breakdown   │
# │ (append-only log)  │  │ (per-user totals)   │  │ (per-user, per-action) │
# └────────────────────┘  └─────────────────────┘  └────────────────────────┘
#
# Chunks are only written by ingestion and never mutated afterwards.
# A guideline's chunks are visible to retrieval once status = approved.
# =============================================================================

import enum
from datetime import datetime

from pgvector.sqlalchemy import Vector
from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from copyaudit.config import settings


class Base(DeclarativeBase):
    pass


class GuidelineStatus(str, enum.Enum):
    """
    Ingestion state of a guideline document.

        PENDING → APPROVED
                → FAILED   (batch commit gave up; counts show what landed)
    """

    PENDING = "pending"
    APPROVED = "approved"
    FAILED = "failed"


class Guideline(Base):
    """A brand guideline document, owned by one brand."""

    __tablename__ = "guidelines"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    brand_id: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    file_name: Mapped[str] = mapped_column(String(500), nullable=False)

    status: Mapped[GuidelineStatus] = mapped_column(
        Enum(GuidelineStatus),
        nullable=False,
        default=GuidelineStatus.PENDING,
    )

    # Chunks of a primary ("master") guideline get a ranking boost
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    raw_text: Mapped[str] = mapped_column(Text, nullable=False, default="")

    chunk_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    embedded_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    # passive_deletes: rely on the FK's ON DELETE CASCADE instead of
    # loading every chunk before deleting the guideline.
    chunks: Mapped[list["GuidelineChunk"]] = relationship(
        "GuidelineChunk",
        back_populates="guideline",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="noload",
    )

    def __repr__(self) -> str:
        return (
            f"<Guideline(id={self.id}, brand='{self.brand_id}', "
            f"file='{self.file_name}', status={self.status})>"
        )


class GuidelineChunk(Base):
    """One retrieval unit of a guideline, with an optional embedding."""

    __tablename__ = "guideline_chunks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    guideline_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("guidelines.id", ondelete="CASCADE"),
        nullable=False,
    )

    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)

    # Null when the embedding request for this chunk failed
    embedding: Mapped[list[float] | None] = mapped_column(
        Vector(settings.embedding_dimensions),
        nullable=True,
    )
    has_embedding: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Copied from the parent guideline at ingestion time
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    token_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # source_file, char_count, start, end, type
    metadata_: Mapped[dict | None] = mapped_column(
        "metadata", JSONB, nullable=True, default=dict,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    guideline: Mapped["Guideline"] = relationship("Guideline", back_populates="chunks")

    def __repr__(self) -> str:
        return (
            f"<GuidelineChunk(id={self.id}, guideline_id={self.guideline_id}, "
            f"index={self.chunk_index}, embedded={self.has_embedding})>"
        )


chunk_guideline_idx = Index(
    "idx_guideline_chunks_guideline_id",
    GuidelineChunk.guideline_id,
    GuidelineChunk.chunk_index,
)


# =============================================================================
# Usage Accounting
# =============================================================================


class UsageRecord(Base):
    """Append-only log entry: one per token-consuming action."""

    __tablename__ = "usage_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    token_count: Mapped[int] = mapped_column(Integer, nullable=False)
    metadata_: Mapped[dict | None] = mapped_column(
        "metadata", JSONB, nullable=True, default=dict,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


class UserUsageStats(Base):
    """Per-user totals. Only ever incremented, via atomic upserts."""

    __tablename__ = "user_usage_stats"

    user_id: Mapped[str] = mapped_column(String(200), primary_key=True)
    total_tokens: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    request_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_active_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )


class UserUsageBreakdown(Base):
    """Per-user, per-action token totals (e.g. AUDIT_LOGIC_LEGAL)."""

    __tablename__ = "user_usage_breakdown"

    user_id: Mapped[str] = mapped_column(String(200), primary_key=True)
    action: Mapped[str] = mapped_column(String(100), primary_key=True)
    tokens: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


# =============================================================================
# Authentication
# =============================================================================


class ApiKey(Base):
    """
    An API key mapping a hashed secret to the user it authenticates.

    The raw key is only shown once at creation time.
    """

    __tablename__ = "api_keys"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    key_prefix: Mapped[str] = mapped_column(String(20), nullable=False)
    key_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    last_used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<ApiKey(id={self.id}, prefix='{self.key_prefix}', user='{self.user_id}')>"
