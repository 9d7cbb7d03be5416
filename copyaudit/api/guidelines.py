# =============================================================================
# Guidelines API — Register, Ingest and Track Brand Guidelines
# =============================================================================
#
# ENDPOINTS:
#   POST   /guidelines                  store guideline text (PENDING)
#   POST   /guidelines/analyze          infer a brand profile from a website
#   GET    /guidelines/{id}             guideline status and counts
#   POST   /guidelines/{id}/ingest      ingest now, or ?background=true
#                                       to dispatch to Celery (202)
#   GET    /guidelines/tasks/{task_id}  poll a background ingestion
#   DELETE /guidelines/{id}             remove guideline and its chunks
#
# A guideline's chunks are only visible to retrieval once ingestion has
# marked it APPROVED.
# =============================================================================

from __future__ import annotations

import logging
from datetime import UTC, datetime

from celery.result import AsyncResult
from fastapi import APIRouter, Depends, HTTPException, Query, Response

from copyaudit.api.deps import (
    get_current_user,
    get_embedder,
    get_registry,
    get_store,
    get_usage_logger,
)
from copyaudit.config import Settings, get_settings
from copyaudit.models.requests import AnalyzeBrandRequest, GuidelineCreateRequest
from copyaudit.models.responses import (
    BrandAnalysisResponse,
    BrandProfileModel,
    GuidelineResponse,
    IngestResponse,
    TaskStatusResponse,
)
from copyaudit.services.brand_analyzer import analyze_brand
from copyaudit.services.embedder import Embedder
from copyaudit.services.errors import (
    BatchCommitError,
    BrandAnalysisError,
    EmptyGuidelineError,
    GuidelineNotFoundError,
    ScrapeError,
)
from copyaudit.services.ingestion import IngestionReport, ingest_guideline
from copyaudit.services.llm import ProviderRegistry
from copyaudit.services.store import DocumentStore, GuidelineRecord
from copyaudit.services.usage import UsageLogger
from copyaudit.workers.tasks import ingest_guideline_task

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/guidelines", tags=["Guidelines"])


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _guideline_response(
    record: GuidelineRecord,
    report: IngestionReport | None = None,
) -> GuidelineResponse:
    return GuidelineResponse(
        id=record.id,
        brand_id=record.brand_id,
        file_name=record.file_name,
        status=str(record.status.value),
        is_primary=record.is_primary,
        chunk_count=record.chunk_count,
        embedded_count=record.embedded_count,
        failed_count=record.failed_count,
        error_message=record.error_message,
        ingestion=IngestResponse(**report.to_dict()) if report else None,
    )


async def _ingest_now(
    guideline_id: int,
    store: DocumentStore,
    embedder: Embedder,
    settings: Settings,
) -> IngestionReport:
    """Run ingestion in-process, mapping pipeline errors to HTTP errors."""
    try:
        return await ingest_guideline(
            guideline_id,
            store=store,
            embedder=embedder,
            max_chunk_size=settings.chunk_max_size,
            min_chunk_size=settings.chunk_min_size,
            batch_size=settings.ingest_batch_size,
            commit_retries=settings.ingest_commit_retries,
            retry_backoff_seconds=settings.ingest_retry_backoff_seconds,
        )
    except GuidelineNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except EmptyGuidelineError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except BatchCommitError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e


async def _require_guideline(store: DocumentStore, guideline_id: int) -> GuidelineRecord:
    record = await store.get_guideline(guideline_id)
    if record is None:
        raise HTTPException(
            status_code=404, detail=f"Guideline {guideline_id} not found",
        )
    return record


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=GuidelineResponse,
    status_code=201,
    summary="Register a brand guideline document",
)
async def create_guideline_endpoint(
    request: GuidelineCreateRequest,
    store: DocumentStore = Depends(get_store),
    embedder: Embedder = Depends(get_embedder),
    settings: Settings = Depends(get_settings),
    user_id: str | None = Depends(get_current_user),
) -> GuidelineResponse:
    record = await store.create_guideline(
        brand_id=request.brand_id,
        file_name=request.file_name,
        raw_text=request.text,
        is_primary=request.is_primary,
    )
    logger.info(
        "Registered guideline %d for brand %s (%s, primary=%s)",
        record.id, record.brand_id, record.file_name, record.is_primary,
    )

    report = None
    if request.ingest:
        report = await _ingest_now(record.id, store, embedder, settings)
        record = await _require_guideline(store, record.id)

    return _guideline_response(record, report)


@router.post(
    "/analyze",
    response_model=BrandAnalysisResponse,
    summary="Infer a brand profile (tone, values, dos and don'ts) from a website",
)
async def analyze_brand_endpoint(
    request: AnalyzeBrandRequest,
    registry: ProviderRegistry = Depends(get_registry),
    usage_logger: UsageLogger = Depends(get_usage_logger),
    settings: Settings = Depends(get_settings),
    user_id: str | None = Depends(get_current_user),
) -> BrandAnalysisResponse:
    try:
        analysis = await analyze_brand(
            request.url,
            registry=registry,
            usage_logger=usage_logger,
            user_id=user_id,
            provider=settings.brand_analysis_provider,
            timeout=settings.scrape_timeout_seconds,
            max_bytes=settings.scrape_max_bytes,
            input_chars=settings.brand_analysis_input_chars,
        )
    except ScrapeError as e:
        logger.warning("Brand analysis fetch of %s failed: %s", request.url, e)
        raise HTTPException(status_code=400, detail=str(e)) from e
    except BrandAnalysisError as e:
        logger.error("Brand analysis of %s failed: %s", request.url, e)
        raise HTTPException(status_code=502, detail=str(e)) from e

    return BrandAnalysisResponse(
        url=analysis.url,
        profile=BrandProfileModel(**analysis.profile.to_dict()),
        model=analysis.model,
    )


@router.get(
    "/tasks/{task_id}",
    response_model=TaskStatusResponse,
    summary="Check background ingestion status",
)
async def get_task_status(
    task_id: str,
    user_id: str | None = Depends(get_current_user),
) -> TaskStatusResponse:
    """
    Celery states: PENDING (not picked up yet), STARTED, SUCCESS (result
    holds the ingestion counts), FAILURE (error holds the message).
    """
    result = AsyncResult(task_id, app=ingest_guideline_task.app)
    status = result.status

    task_result: dict | None = None
    error: str | None = None
    if status == "SUCCESS":
        task_result = result.result or {}
    elif status == "FAILURE":
        error = str(result.result) if result.result else "Unknown error"

    return TaskStatusResponse(
        task_id=task_id,
        status=status,
        result=task_result,
        error=error,
        checked_at=datetime.now(UTC),
    )


@router.get(
    "/{guideline_id}",
    response_model=GuidelineResponse,
    summary="Get guideline status and chunk counts",
)
async def get_guideline_endpoint(
    guideline_id: int,
    store: DocumentStore = Depends(get_store),
    user_id: str | None = Depends(get_current_user),
) -> GuidelineResponse:
    return _guideline_response(await _require_guideline(store, guideline_id))


@router.post(
    "/{guideline_id}/ingest",
    summary="Chunk, embed and store a guideline",
    responses={202: {"model": TaskStatusResponse}},
)
async def ingest_guideline_endpoint(
    guideline_id: int,
    response: Response,
    background: bool = Query(
        default=False,
        description="Dispatch to a Celery worker and return a task id",
    ),
    store: DocumentStore = Depends(get_store),
    embedder: Embedder = Depends(get_embedder),
    settings: Settings = Depends(get_settings),
    user_id: str | None = Depends(get_current_user),
) -> GuidelineResponse | TaskStatusResponse:
    await _require_guideline(store, guideline_id)

    if background:
        task = ingest_guideline_task.delay(guideline_id)
        logger.info(
            "Dispatched ingestion: guideline_id=%d, task_id=%s",
            guideline_id, task.id,
        )
        response.status_code = 202
        return TaskStatusResponse(task_id=task.id, status="PENDING")

    report = await _ingest_now(guideline_id, store, embedder, settings)
    record = await _require_guideline(store, guideline_id)
    return _guideline_response(record, report)


@router.delete(
    "/{guideline_id}",
    status_code=204,
    summary="Delete a guideline and its chunks",
)
async def delete_guideline_endpoint(
    guideline_id: int,
    store: DocumentStore = Depends(get_store),
    user_id: str | None = Depends(get_current_user),
) -> Response:
    if not await store.delete_guideline(guideline_id):
        raise HTTPException(
            status_code=404, detail=f"Guideline {guideline_id} not found",
        )
    logger.info("Deleted guideline %d", guideline_id)
    return Response(status_code=204)
