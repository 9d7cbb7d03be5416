# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class HealthResponse(BaseModel):
    status: str
    version: str
    database: bool


class ContextResponse(BaseModel):
    text: str
    sources: list[str] = Field(default_factory=list)


class AuditIssue(BaseModel):
    """One audit finding. Extra keys produced by a model are kept."""

    category: str = ""
    severity: str = ""
    problematic_text: str = ""
    citation: str = ""
    reason: str = ""
    suggestion: str = ""

    model_config = ConfigDict(extra="allow")


class AuditResult(BaseModel):
    summary: str
    identified_issues: list[AuditIssue] = Field(default_factory=list)


class AuditResponse(BaseModel):
    """Always success-shaped; failures appear as diagnostic issues."""

    success: bool = True
    result: AuditResult


class GenerateResponse(BaseModel):
    success: bool = True
    result: str
    citations: list[str] = Field(default_factory=list)
    model: str | None = None


class ScrapeMetadata(BaseModel):
    title: str = ""
    description: str = ""
    keywords: str = ""


class ScrapeResponse(BaseModel):
    success: bool = True
    url: str
    content: str
    metadata: ScrapeMetadata
    cleaned: bool = False


class IngestResponse(BaseModel):
    guideline_id: int
    chunk_count: int
    embedded_count: int
    failed_count: int


class GuidelineResponse(BaseModel):
    id: int
    brand_id: str
    file_name: str
    status: str
    is_primary: bool
    chunk_count: int = 0
    embedded_count: int = 0
    failed_count: int = 0
    error_message: str | None = None
    ingestion: IngestResponse | None = None


class TaskStatusResponse(BaseModel):
    task_id: str
    status: str = Field(description="Celery state: PENDING, STARTED, SUCCESS, FAILURE")
    result: dict | None = None
    error: str | None = None
    checked_at: datetime | None = None


class BrandProfileModel(BaseModel):
    brand_name: str
    tone: str
    summary: str
    industry: str = ""
    target_audience: str = ""
    visual_style: str = ""
    core_values: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    dos: list[str] = Field(default_factory=list)
    donts: list[str] = Field(default_factory=list)


class BrandAnalysisResponse(BaseModel):
    success: bool = True
    url: str
    profile: BrandProfileModel
    model: str | None = None
