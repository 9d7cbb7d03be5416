# =============================================================================
# API Request Models — Pydantic V2 Schemas
# =============================================================================
#
# Validation happens here, before any work: FastAPI answers 422 for a
# missing brand id, empty audit text, or an unknown cleaning level.
# =============================================================================

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ContextRequest(BaseModel):
    """Request body for POST /context: ranked brand context."""

    brand_id: str = Field(..., min_length=1, max_length=200)
    query: str | None = Field(
        default=None,
        max_length=5000,
        description="Free-text query. Omit for the first chunks in storage order.",
    )
    top_k: int | None = Field(default=None, ge=1, le=100)


class AuditRequest(BaseModel):
    """
    Request body for POST /audit.

    `constructed_prompt` is the caller-built prompt (content plus brand
    rules). When omitted and `brand_id` is given, the server retrieves the
    brand context and builds the prompt itself.
    """

    text: str = Field(..., min_length=1, max_length=50_000)
    constructed_prompt: str | None = Field(default=None, max_length=200_000)
    language: str | None = Field(default=None, max_length=50)
    brand_id: str | None = Field(default=None, max_length=200)

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "text": "Our serum is the No.1 cure for acne, guaranteed in 3 days!",
                    "language": "English",
                    "brand_id": "acme-skincare",
                }
            ]
        }
    )


class GenerateRequest(BaseModel):
    """Request body for POST /generate: RAG content generation."""

    brand_id: str = Field(..., min_length=1, max_length=200)
    brand_name: str | None = Field(default=None, max_length=200)
    topic: str = Field(..., min_length=1, max_length=2000)
    platform: str = Field(default="Facebook", min_length=1, max_length=100)
    language: str | None = Field(default=None, max_length=50)
    user_text: str | None = Field(
        default=None, max_length=10_000, description="Optional note from the user",
    )
    system_prompt: str | None = Field(default=None, max_length=20_000)
    context: str | None = Field(
        default=None,
        max_length=200_000,
        description="Client-provided context; skips retrieval when present",
    )


class ScrapeRequest(BaseModel):
    """Request body for POST /scrape."""

    url: str = Field(..., min_length=8, max_length=2048)
    cleaning_level: Literal["aggressive", "minimal"] = "aggressive"


class GuidelineCreateRequest(BaseModel):
    """Request body for POST /guidelines: register guideline text."""

    brand_id: str = Field(..., min_length=1, max_length=200)
    file_name: str = Field(..., min_length=1, max_length=500)
    text: str = Field(..., min_length=1, max_length=2_000_000)
    is_primary: bool = False
    ingest: bool = Field(
        default=False,
        description="Run ingestion immediately and return its counts",
    )


class AnalyzeBrandRequest(BaseModel):
    """Request body for POST /guidelines/analyze: infer a brand profile."""

    url: str = Field(..., min_length=8, max_length=2048)
