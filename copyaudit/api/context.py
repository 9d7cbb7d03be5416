# =============================================================================
# Context API — Ranked Brand Guideline Context
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from copyaudit.api.deps import get_current_user, get_embedder, get_store
from copyaudit.config import Settings, get_settings
from copyaudit.models.requests import ContextRequest
from copyaudit.models.responses import ContextResponse
from copyaudit.services.embedder import Embedder
from copyaudit.services.retrieval import retrieve_context
from copyaudit.services.store import DocumentStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Context"])


@router.post(
    "/context",
    response_model=ContextResponse,
    summary="Retrieve ranked brand context for a query",
)
async def context_endpoint(
    request: ContextRequest,
    store: DocumentStore = Depends(get_store),
    embedder: Embedder = Depends(get_embedder),
    settings: Settings = Depends(get_settings),
    user_id: str | None = Depends(get_current_user),
) -> ContextResponse:
    """
    Top-K chunks of the brand's approved guidelines, ranked by cosine
    similarity with a boost for primary sources, rendered with citations.
    Without a query, the first chunks in storage order are returned.
    """
    assembled = await retrieve_context(
        request.brand_id,
        request.query,
        store=store,
        embedder=embedder,
        top_k=request.top_k or settings.retrieval_top_k,
        fallback_limit=settings.retrieval_fallback_limit,
        primary_boost=settings.primary_source_boost,
    )
    return ContextResponse(text=assembled.text, sources=assembled.sources)
