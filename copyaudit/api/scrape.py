# =============================================================================
# Scrape API — Extract Page Content from a URL
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from copyaudit.api.deps import get_current_user, get_registry, get_usage_logger
from copyaudit.config import Settings, get_settings
from copyaudit.models.requests import ScrapeRequest
from copyaudit.models.responses import ScrapeMetadata, ScrapeResponse
from copyaudit.services.errors import ScrapeError
from copyaudit.services.llm import ProviderRegistry
from copyaudit.services.scraper import scrape_url
from copyaudit.services.usage import UsageLogger

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Scraping"])


@router.post(
    "/scrape",
    response_model=ScrapeResponse,
    summary="Fetch a web page and extract its main content",
)
async def scrape_endpoint(
    request: ScrapeRequest,
    registry: ProviderRegistry = Depends(get_registry),
    usage_logger: UsageLogger = Depends(get_usage_logger),
    settings: Settings = Depends(get_settings),
    user_id: str | None = Depends(get_current_user),
) -> ScrapeResponse:
    try:
        result = await scrape_url(
            request.url,
            request.cleaning_level,
            registry=registry,
            usage_logger=usage_logger,
            user_id=user_id,
            cleaning_provider=settings.scrape_cleaning_provider,
            timeout=settings.scrape_timeout_seconds,
            max_bytes=settings.scrape_max_bytes,
            clean_input_chars=settings.scrape_clean_input_chars,
        )
    except ScrapeError as e:
        logger.warning("Scrape of %s failed: %s", request.url, e)
        raise HTTPException(status_code=400, detail=str(e)) from e

    return ScrapeResponse(
        url=result.url,
        content=result.content,
        metadata=ScrapeMetadata(
            title=result.metadata.title,
            description=result.metadata.description,
            keywords=result.metadata.keywords,
        ),
        cleaned=result.cleaned,
    )
