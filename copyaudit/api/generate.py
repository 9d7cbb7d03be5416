# =============================================================================
# Generate API — RAG Content Generation
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from copyaudit.agents.generator import GenerationDeps, generate_content
from copyaudit.api.deps import (
    get_current_user,
    get_embedder,
    get_registry,
    get_store,
    get_usage_logger,
)
from copyaudit.config import Settings, get_settings
from copyaudit.models.requests import GenerateRequest
from copyaudit.models.responses import GenerateResponse
from copyaudit.services.embedder import Embedder
from copyaudit.services.errors import GenerationError
from copyaudit.services.llm import ProviderRegistry
from copyaudit.services.store import DocumentStore
from copyaudit.services.usage import UsageLogger

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Generation"])


@router.post(
    "/generate",
    response_model=GenerateResponse,
    summary="Generate brand-compliant content from retrieved guidelines",
)
async def generate_endpoint(
    request: GenerateRequest,
    store: DocumentStore = Depends(get_store),
    embedder: Embedder = Depends(get_embedder),
    registry: ProviderRegistry = Depends(get_registry),
    usage_logger: UsageLogger = Depends(get_usage_logger),
    settings: Settings = Depends(get_settings),
    user_id: str | None = Depends(get_current_user),
) -> GenerateResponse:
    """
    Error handling:
    - Generation provider missing or failing → 502 Bad Gateway
    - Retrieval problems are not errors; generation proceeds without context
    """
    deps = GenerationDeps(
        store=store,
        embedder=embedder,
        registry=registry,
        usage_logger=usage_logger,
        provider=settings.generation_provider,
        temperature=settings.generation_temperature,
        top_k=settings.retrieval_top_k,
        fallback_limit=settings.retrieval_fallback_limit,
        primary_boost=settings.primary_source_boost,
    )

    try:
        state = await generate_content(
            deps=deps,
            brand_id=request.brand_id,
            brand_name=request.brand_name,
            topic=request.topic,
            platform=request.platform,
            language=request.language or settings.audit_default_language,
            user_note=request.user_text,
            system_prompt=request.system_prompt,
            client_context=request.context,
            user_id=user_id,
        )
    except GenerationError as e:
        logger.error("Generation failed: %s", e)
        raise HTTPException(status_code=502, detail=str(e)) from e

    return GenerateResponse(
        success=True,
        result=state.get("content", ""),
        citations=state.get("citations", []),
        model=state.get("model"),
    )
