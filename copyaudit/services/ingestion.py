# =============================================================================
# Guideline Ingestion — Chunk → Embed → Batched Persist → Approve
# =============================================================================
#
# PIPELINE:
#   1. Validate: guideline exists and has text (fatal otherwise)
#   2. Chunk the raw text (paragraph-aware, character sizes)
#   3. Embed all chunks, best-effort: failed chunks are stored without a
#      vector and counted in failed_count
#   4. Drop any chunks from a previous ingestion of the same guideline
#   5. Write chunks in batches; each batch is its own transaction.
#      A failed commit is retried `commit_retries` times after a backoff,
#      then ingestion aborts with BatchCommitError. The guideline is
#      marked FAILED with the number of chunks that did land.
#   6. Mark the guideline APPROVED with its counts. Only now do its
#      chunks become visible to retrieval.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass

from copyaudit.services.chunker import count_tokens, semantic_chunking
from copyaudit.services.embedder import Embedder
from copyaudit.services.errors import (
    BatchCommitError,
    EmptyGuidelineError,
    GuidelineNotFoundError,
)
from copyaudit.services.store import ChunkWrite, DocumentStore, GuidelineRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IngestionReport:
    guideline_id: int
    chunk_count: int
    embedded_count: int
    failed_count: int

    def to_dict(self) -> dict:
        return asdict(self)


async def ingest_guideline(
    guideline_id: int,
    *,
    store: DocumentStore,
    embedder: Embedder,
    max_chunk_size: int = 1000,
    min_chunk_size: int = 100,
    batch_size: int = 400,
    commit_retries: int = 1,
    retry_backoff_seconds: float = 0.5,
) -> IngestionReport:
    """
    Ingest one guideline document into the chunk store.

    Raises:
        GuidelineNotFoundError: No guideline with this id.
        EmptyGuidelineError: The guideline has no text.
        BatchCommitError: A batch failed to commit after its retries.
    """
    guideline = await store.get_guideline(guideline_id)
    if guideline is None:
        raise GuidelineNotFoundError(guideline_id)
    if not guideline.raw_text or not guideline.raw_text.strip():
        raise EmptyGuidelineError(guideline_id)

    chunks = semantic_chunking(guideline.raw_text, max_chunk_size, min_chunk_size)
    logger.info(
        "Ingesting guideline %d (%s): %d chars → %d chunks",
        guideline_id, guideline.file_name, len(guideline.raw_text), len(chunks),
    )

    vectors = await embedder.embed_texts([c.text for c in chunks])
    writes = [
        ChunkWrite(
            chunk_index=index,
            text=chunk.text,
            embedding=vector,
            token_count=count_tokens(chunk.text),
            metadata={
                "source_file": guideline.file_name,
                "char_count": len(chunk.text),
                "start": chunk.start,
                "end": chunk.end,
                "type": "semantic_chunk",
            },
        )
        for index, (chunk, vector) in enumerate(zip(chunks, vectors))
    ]
    embedded_count = sum(1 for w in writes if w.embedding is not None)
    failed_count = len(writes) - embedded_count
    if failed_count:
        logger.warning(
            "Guideline %d: %d/%d chunks have no embedding",
            guideline_id, failed_count, len(writes),
        )

    # Re-ingesting an approved guideline must not expose a half-written chunk set
    await store.mark_pending(guideline_id)
    await store.clear_chunks(guideline_id)

    committed = 0
    step = max(batch_size, 1)
    for batch_index, start in enumerate(range(0, len(writes), step)):
        batch = writes[start:start + step]
        try:
            await _commit_with_retry(
                store, guideline, batch, batch_index,
                commit_retries, retry_backoff_seconds,
            )
        except Exception as e:
            error = BatchCommitError(guideline_id, batch_index, committed, e)
            logger.error("%s", error)
            await store.mark_failed(
                guideline_id,
                str(error),
                chunk_count=committed,
                embedded_count=sum(1 for w in writes[:committed] if w.embedding is not None),
                failed_count=sum(1 for w in writes[:committed] if w.embedding is None),
            )
            raise error from e
        committed += len(batch)

    await store.mark_approved(
        guideline_id,
        chunk_count=len(writes),
        embedded_count=embedded_count,
        failed_count=failed_count,
    )

    report = IngestionReport(
        guideline_id=guideline_id,
        chunk_count=len(writes),
        embedded_count=embedded_count,
        failed_count=failed_count,
    )
    logger.info(
        "Guideline %d approved: %d chunks (%d embedded, %d without embedding)",
        guideline_id, report.chunk_count, report.embedded_count, report.failed_count,
    )
    return report


async def _commit_with_retry(
    store: DocumentStore,
    guideline: GuidelineRecord,
    batch: list[ChunkWrite],
    batch_index: int,
    retries: int,
    backoff: float,
) -> None:
    """Write one batch, retrying exactly `retries` times; re-raise the last error."""
    attempt = 0
    while True:
        try:
            await store.write_chunk_batch(guideline, batch)
            return
        except Exception as e:
            if attempt >= retries:
                raise
            attempt += 1
            logger.warning(
                "Guideline %d batch %d commit failed (%s); retry %d/%d in %.1fs",
                guideline.id, batch_index, e, attempt, retries, backoff,
            )
            await asyncio.sleep(backoff)
