# =============================================================================
# FastAPI Application — Entry Point
# =============================================================================
#
# STARTUP (lifespan):
#   1. Configure logging
#   2. Create the Database handle (engine is created lazily on first use)
#   3. Optionally ensure the pgvector extension and tables exist
#   4. Build the long-lived services into app.state.services
#
# SHUTDOWN: dispose the engine's connection pool.
#
# RUN:
#   uvicorn copyaudit.main:app --reload
#   celery -A copyaudit.workers.celery_app worker --loglevel=info
# =============================================================================

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request

from copyaudit.api import audit, context, generate, guidelines, scrape
from copyaudit.api.deps import build_services
from copyaudit.config import get_settings
from copyaudit.db.engine import Database
from copyaudit.logging_config import setup_logging
from copyaudit.models.responses import HealthResponse

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging(settings.log_level, json_output=settings.log_json)

    db = Database(settings.database_url, echo=settings.debug)
    if settings.db_auto_create:
        try:
            await db.create_schema()
        except Exception:
            # The API still serves audits and scrapes without a database.
            logger.exception("Could not ensure database schema")

    app.state.db = db
    app.state.services = build_services(settings, db)
    logger.info(
        "%s %s started (audit profile=%s, providers=%s)",
        settings.app_name,
        settings.app_version,
        settings.audit_profile,
        ", ".join(app.state.services.registry.names()),
    )

    yield

    await db.dispose()
    logger.info("Shutdown complete")


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        title=settings.app_name,
        description=(
            "Brand-guideline retrieval, multi-agent content audit and "
            "guideline-grounded content generation."
        ),
        version=settings.app_version,
        lifespan=lifespan,
    )

    app.include_router(context.router)
    app.include_router(audit.router)
    app.include_router(generate.router)
    app.include_router(scrape.router)
    app.include_router(guidelines.router)

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health(request: Request) -> HealthResponse:
        db = getattr(request.app.state, "db", None)
        return HealthResponse(
            status="ok",
            version=settings.app_version,
            database=bool(db is not None and db.is_ready),
        )

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("copyaudit.main:app", host="0.0.0.0", port=8000)
