# =============================================================================
# Document Store — Guidelines & Chunks Behind a Protocol
# =============================================================================
#
# Retrieval and ingestion depend only on the `DocumentStore` protocol.
#
# ARCHITECTURE:
#   DocumentStore (Protocol)
#   ├── SqlDocumentStore      : PostgreSQL + pgvector via SQLAlchemy async
#   │   └── one transaction per write_chunk_batch() call
#   └── InMemoryDocumentStore : dict-backed, for tests and local runs
#
# Storage order (what "first N chunks" means in fallback retrieval):
# guidelines by id, then chunks by chunk_index.
# =============================================================================

from __future__ import annotations

import itertools
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from typing import Protocol

from sqlalchemy import delete, select, update

from copyaudit.db.engine import Database
from copyaudit.db.models import Guideline, GuidelineChunk, GuidelineStatus

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class GuidelineRecord:
    id: int
    brand_id: str
    file_name: str
    status: GuidelineStatus
    is_primary: bool
    raw_text: str
    chunk_count: int = 0
    embedded_count: int = 0
    failed_count: int = 0
    error_message: str | None = None


@dataclass(frozen=True)
class StoredChunk:
    """A chunk as seen by retrieval: text, vector, primacy, source name."""

    text: str
    embedding: list[float] | None
    is_primary: bool
    source: str
    guideline_id: int = 0
    chunk_index: int = 0


@dataclass(frozen=True)
class ChunkWrite:
    """A chunk about to be persisted by ingestion."""

    chunk_index: int
    text: str
    embedding: list[float] | None
    token_count: int
    metadata: dict = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class DocumentStore(Protocol):
    async def create_guideline(
        self,
        brand_id: str,
        file_name: str,
        raw_text: str,
        is_primary: bool = False,
    ) -> GuidelineRecord:
        """Create a pending guideline."""
        ...

    async def get_guideline(self, guideline_id: int) -> GuidelineRecord | None:
        ...

    async def delete_guideline(self, guideline_id: int) -> bool:
        """Delete a guideline and its chunks. False if it did not exist."""
        ...

    async def list_approved_chunks(self, brand_id: str) -> list[StoredChunk]:
        """All chunks of the brand's approved guidelines, in storage order."""
        ...

    async def clear_chunks(self, guideline_id: int) -> None:
        ...

    async def write_chunk_batch(
        self,
        guideline: GuidelineRecord,
        chunks: Sequence[ChunkWrite],
    ) -> None:
        """Persist one batch atomically. Raises on commit failure."""
        ...

    async def mark_pending(self, guideline_id: int) -> None:
        """Hide the guideline from retrieval while its chunks are rebuilt."""
        ...

    async def mark_approved(
        self,
        guideline_id: int,
        chunk_count: int,
        embedded_count: int,
        failed_count: int,
    ) -> None:
        ...

    async def mark_failed(
        self,
        guideline_id: int,
        error_message: str,
        chunk_count: int,
        embedded_count: int,
        failed_count: int,
    ) -> None:
        ...


# ---------------------------------------------------------------------------
# Implementation 1: PostgreSQL (SQLAlchemy async + pgvector)
# ---------------------------------------------------------------------------


class SqlDocumentStore:
    """DocumentStore backed by the guidelines / guideline_chunks tables."""

    def __init__(self, db: Database) -> None:
        self._db = db

    async def create_guideline(
        self,
        brand_id: str,
        file_name: str,
        raw_text: str,
        is_primary: bool = False,
    ) -> GuidelineRecord:
        async with self._db.session() as session:
            row = Guideline(
                brand_id=brand_id,
                file_name=file_name,
                raw_text=raw_text,
                is_primary=is_primary,
                status=GuidelineStatus.PENDING,
            )
            session.add(row)
            await session.flush()
            record = _to_record(row)

        logger.info(
            "Created guideline %d (brand=%s, file=%s, primary=%s)",
            record.id, brand_id, file_name, is_primary,
        )
        return record

    async def get_guideline(self, guideline_id: int) -> GuidelineRecord | None:
        async with self._db.session() as session:
            row = await session.get(Guideline, guideline_id)
            return _to_record(row) if row is not None else None

    async def delete_guideline(self, guideline_id: int) -> bool:
        async with self._db.session() as session:
            result = await session.execute(
                delete(Guideline).where(Guideline.id == guideline_id)
            )
        return result.rowcount > 0

    async def list_approved_chunks(self, brand_id: str) -> list[StoredChunk]:
        stmt = (
            select(
                GuidelineChunk.text,
                GuidelineChunk.embedding,
                GuidelineChunk.is_primary,
                GuidelineChunk.guideline_id,
                GuidelineChunk.chunk_index,
                Guideline.file_name,
            )
            .join(Guideline, GuidelineChunk.guideline_id == Guideline.id)
            .where(
                Guideline.brand_id == brand_id,
                Guideline.status == GuidelineStatus.APPROVED,
            )
            .order_by(Guideline.id, GuidelineChunk.chunk_index)
        )

        async with self._db.session() as session:
            result = await session.execute(stmt)
            rows = result.all()

        return [
            StoredChunk(
                text=row.text,
                # pgvector hands back a numpy array; retrieval wants floats
                embedding=(
                    [float(x) for x in row.embedding]
                    if row.embedding is not None
                    else None
                ),
                is_primary=row.is_primary,
                source=row.file_name,
                guideline_id=row.guideline_id,
                chunk_index=row.chunk_index,
            )
            for row in rows
        ]

    async def clear_chunks(self, guideline_id: int) -> None:
        async with self._db.session() as session:
            await session.execute(
                delete(GuidelineChunk).where(
                    GuidelineChunk.guideline_id == guideline_id
                )
            )

    async def write_chunk_batch(
        self,
        guideline: GuidelineRecord,
        chunks: Sequence[ChunkWrite],
    ) -> None:
        async with self._db.session() as session:
            session.add_all([
                GuidelineChunk(
                    guideline_id=guideline.id,
                    chunk_index=chunk.chunk_index,
                    text=chunk.text,
                    embedding=chunk.embedding,
                    has_embedding=chunk.embedding is not None,
                    is_primary=guideline.is_primary,
                    token_count=chunk.token_count,
                    metadata_=chunk.metadata,
                )
                for chunk in chunks
            ])

    async def mark_pending(self, guideline_id: int) -> None:
        await self._update(
            guideline_id,
            status=GuidelineStatus.PENDING,
            error_message=None,
        )

    async def mark_approved(
        self,
        guideline_id: int,
        chunk_count: int,
        embedded_count: int,
        failed_count: int,
    ) -> None:
        await self._update(
            guideline_id,
            status=GuidelineStatus.APPROVED,
            chunk_count=chunk_count,
            embedded_count=embedded_count,
            failed_count=failed_count,
            error_message=None,
        )

    async def mark_failed(
        self,
        guideline_id: int,
        error_message: str,
        chunk_count: int,
        embedded_count: int,
        failed_count: int,
    ) -> None:
        await self._update(
            guideline_id,
            status=GuidelineStatus.FAILED,
            chunk_count=chunk_count,
            embedded_count=embedded_count,
            failed_count=failed_count,
            error_message=error_message[:2000],
        )

    async def _update(self, guideline_id: int, **values) -> None:
        async with self._db.session() as session:
            await session.execute(
                update(Guideline)
                .where(Guideline.id == guideline_id)
                .values(**values)
            )


# ---------------------------------------------------------------------------
# Implementation 2: In-Memory
# ---------------------------------------------------------------------------


class InMemoryDocumentStore:
    """
    Dict-backed DocumentStore.

    Same ordering and visibility rules as the SQL store: only approved
    guidelines are retrievable, chunks come back in (guideline id,
    chunk_index) order.
    """

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self.guidelines: dict[int, GuidelineRecord] = {}
        self.chunks: dict[int, list[ChunkWrite]] = {}

    async def create_guideline(
        self,
        brand_id: str,
        file_name: str,
        raw_text: str,
        is_primary: bool = False,
    ) -> GuidelineRecord:
        record = GuidelineRecord(
            id=next(self._ids),
            brand_id=brand_id,
            file_name=file_name,
            status=GuidelineStatus.PENDING,
            is_primary=is_primary,
            raw_text=raw_text,
        )
        self.guidelines[record.id] = record
        return replace(record)

    async def get_guideline(self, guideline_id: int) -> GuidelineRecord | None:
        record = self.guidelines.get(guideline_id)
        return replace(record) if record is not None else None

    async def delete_guideline(self, guideline_id: int) -> bool:
        self.chunks.pop(guideline_id, None)
        return self.guidelines.pop(guideline_id, None) is not None

    async def list_approved_chunks(self, brand_id: str) -> list[StoredChunk]:
        out: list[StoredChunk] = []
        for gid in sorted(self.guidelines):
            record = self.guidelines[gid]
            if record.brand_id != brand_id or record.status != GuidelineStatus.APPROVED:
                continue
            for chunk in sorted(self.chunks.get(gid, []), key=lambda c: c.chunk_index):
                out.append(StoredChunk(
                    text=chunk.text,
                    embedding=chunk.embedding,
                    is_primary=record.is_primary,
                    source=record.file_name,
                    guideline_id=gid,
                    chunk_index=chunk.chunk_index,
                ))
        return out

    async def clear_chunks(self, guideline_id: int) -> None:
        self.chunks.pop(guideline_id, None)

    async def write_chunk_batch(
        self,
        guideline: GuidelineRecord,
        chunks: Sequence[ChunkWrite],
    ) -> None:
        self.chunks.setdefault(guideline.id, []).extend(chunks)

    async def mark_pending(self, guideline_id: int) -> None:
        record = self.guidelines[guideline_id]
        record.status = GuidelineStatus.PENDING
        record.error_message = None

    async def mark_approved(
        self,
        guideline_id: int,
        chunk_count: int,
        embedded_count: int,
        failed_count: int,
    ) -> None:
        record = self.guidelines[guideline_id]
        record.status = GuidelineStatus.APPROVED
        record.chunk_count = chunk_count
        record.embedded_count = embedded_count
        record.failed_count = failed_count
        record.error_message = None

    async def mark_failed(
        self,
        guideline_id: int,
        error_message: str,
        chunk_count: int,
        embedded_count: int,
        failed_count: int,
    ) -> None:
        record = self.guidelines[guideline_id]
        record.status = GuidelineStatus.FAILED
        record.chunk_count = chunk_count
        record.embedded_count = embedded_count
        record.failed_count = failed_count
        record.error_message = error_message


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _to_record(row: Guideline) -> GuidelineRecord:
    return GuidelineRecord(
        id=row.id,
        brand_id=row.brand_id,
        file_name=row.file_name,
        status=row.status,
        is_primary=row.is_primary,
        raw_text=row.raw_text,
        chunk_count=row.chunk_count or 0,
        embedded_count=row.embedded_count or 0,
        failed_count=row.failed_count or 0,
        error_message=row.error_message,
    )
