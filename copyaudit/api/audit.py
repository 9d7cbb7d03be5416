# =============================================================================
# Audit API — Multi-Agent Content Audit
# =============================================================================
#
# POST /audit always answers 200 with {success: true, result: {...}}.
# Provider and agent failures show up inside the result as a diagnostic
# issue; an unexpected failure of the whole audit becomes a single
# High-severity "API Error" issue. Only request validation (422) and
# authentication (401) produce non-200 responses.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from copyaudit.agents.auditor import AuditOrchestrator, api_error_issue
from copyaudit.agents.prompts import audit_user_prompt
from copyaudit.api.deps import (
    get_current_user,
    get_embedder,
    get_orchestrator,
    get_store,
)
from copyaudit.config import Settings, get_settings
from copyaudit.models.requests import AuditRequest
from copyaudit.models.responses import AuditResponse, AuditResult
from copyaudit.services.embedder import Embedder
from copyaudit.services.retrieval import retrieve_context
from copyaudit.services.store import DocumentStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Audit"])


@router.post(
    "/audit",
    response_model=AuditResponse,
    summary="Audit marketing content with concurrent LLM agents",
)
async def audit_endpoint(
    request: AuditRequest,
    orchestrator: AuditOrchestrator = Depends(get_orchestrator),
    store: DocumentStore = Depends(get_store),
    embedder: Embedder = Depends(get_embedder),
    settings: Settings = Depends(get_settings),
    user_id: str | None = Depends(get_current_user),
) -> AuditResponse:
    try:
        constructed_prompt = request.constructed_prompt
        if not constructed_prompt and request.brand_id:
            context = await retrieve_context(
                request.brand_id,
                request.text,
                store=store,
                embedder=embedder,
                top_k=settings.retrieval_top_k,
                fallback_limit=settings.retrieval_fallback_limit,
                primary_boost=settings.primary_source_boost,
            )
            constructed_prompt = audit_user_prompt(request.text, context.text)

        outcome = await orchestrator.audit(
            request.text,
            constructed_prompt=constructed_prompt,
            language=request.language,
            user_id=user_id,
        )
        audit_result = AuditResult.model_validate(outcome.to_result())
    except Exception as e:
        logger.exception("Audit failed unexpectedly")
        audit_result = AuditResult(
            summary="", identified_issues=[api_error_issue(e)],
        )

    return AuditResponse(success=True, result=audit_result)
