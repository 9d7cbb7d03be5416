# =============================================================================
# Celery Tasks — Background Guideline Ingestion
# =============================================================================
#
# Celery task bodies are synchronous. The ingestion pipeline is async, so
# each run drives it with asyncio.run() against a fresh NullPool engine:
# pooled asyncpg connections are bound to the event loop that opened them
# and cannot be reused across runs.
#
# No task-level retry. Batch commits already get their one retry inside
# the pipeline; a task failure leaves the guideline FAILED with the
# number of chunks that landed, and the error is reported to the poller.
# =============================================================================

import asyncio
import logging

from copyaudit.config import settings
from copyaudit.db.engine import Database
from copyaudit.services.embedder import OpenAIEmbedder
from copyaudit.services.ingestion import IngestionReport, ingest_guideline
from copyaudit.services.store import SqlDocumentStore
from copyaudit.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


async def _run_ingestion(guideline_id: int) -> IngestionReport:
    db = Database(settings.database_url, null_pool=True)
    try:
        return await ingest_guideline(
            guideline_id,
            store=SqlDocumentStore(db),
            embedder=OpenAIEmbedder(settings),
            max_chunk_size=settings.chunk_max_size,
            min_chunk_size=settings.chunk_min_size,
            batch_size=settings.ingest_batch_size,
            commit_retries=settings.ingest_commit_retries,
            retry_backoff_seconds=settings.ingest_retry_backoff_seconds,
        )
    finally:
        await db.dispose()


@celery_app.task(bind=True, name="ingest_guideline")
def ingest_guideline_task(self, guideline_id: int) -> dict:
    """
    Chunk, embed and store one guideline.

    Returns:
        dict with guideline_id, chunk_count, embedded_count, failed_count.
    """
    task_id = self.request.id
    logger.info("[%s] Starting ingestion of guideline %d", task_id, guideline_id)
    try:
        report = asyncio.run(_run_ingestion(guideline_id))
    except Exception:
        logger.exception("[%s] Ingestion of guideline %d failed", task_id, guideline_id)
        raise

    logger.info("[%s] Ingestion complete: %s", task_id, report)
    return report.to_dict()
