# =============================================================================
# API Dependencies — Services & Identity via FastAPI Injection
# =============================================================================
#
# The long-lived collaborators (document store, embedder, provider
# registry, usage logger, audit orchestrator, identity verifier) are
# built once in the lifespan and stored on app.state.services. Route
# handlers receive them through the getters below, which tests replace
# with `app.dependency_overrides`.
#
# Identity: when auth is disabled every request is anonymous (user None,
# usage not attributed). When enabled, a Bearer API key is required and
# resolves to the user id that owns it.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from copyaudit.agents.auditor import AuditOrchestrator, build_orchestrator
from copyaudit.config import Settings, get_settings
from copyaudit.db.engine import Database
from copyaudit.services.auth import ApiKeyVerifier, IdentityVerifier
from copyaudit.services.embedder import Embedder, OpenAIEmbedder
from copyaudit.services.llm import ProviderRegistry
from copyaudit.services.store import DocumentStore, SqlDocumentStore
from copyaudit.services.usage import SqlUsageLogger, UsageLogger

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


# ---------------------------------------------------------------------------
# Service Container
# ---------------------------------------------------------------------------


@dataclass
class AppServices:
    db: Database
    store: DocumentStore
    embedder: Embedder
    registry: ProviderRegistry
    usage_logger: UsageLogger
    orchestrator: AuditOrchestrator
    verifier: IdentityVerifier


def build_services(settings: Settings, db: Database) -> AppServices:
    registry = ProviderRegistry.from_settings(settings)
    usage_logger = SqlUsageLogger(db)
    return AppServices(
        db=db,
        store=SqlDocumentStore(db),
        embedder=OpenAIEmbedder(settings),
        registry=registry,
        usage_logger=usage_logger,
        orchestrator=build_orchestrator(
            settings.audit_profile,
            registry,
            usage_logger,
            temperature=settings.llm_temperature,
            default_language=settings.audit_default_language,
        ),
        verifier=ApiKeyVerifier(db),
    )


def _services(request: Request) -> AppServices:
    return request.app.state.services


def get_store(request: Request) -> DocumentStore:
    return _services(request).store


def get_embedder(request: Request) -> Embedder:
    return _services(request).embedder


def get_registry(request: Request) -> ProviderRegistry:
    return _services(request).registry


def get_usage_logger(request: Request) -> UsageLogger:
    return _services(request).usage_logger


def get_orchestrator(request: Request) -> AuditOrchestrator:
    return _services(request).orchestrator


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


async def resolve_user(
    credentials: HTTPAuthorizationCredentials | None,
    settings: Settings,
    verifier: IdentityVerifier | None,
) -> str | None:
    """
    Map request credentials to a user id.

    Raises:
        HTTPException 401: Auth is enabled and the key is missing or invalid.
    """
    if not settings.auth_enabled:
        return None

    if credentials is None or not credentials.credentials.strip():
        raise HTTPException(
            status_code=401,
            detail="Missing API key. Provide 'Authorization: Bearer <key>' header.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if verifier is None:
        raise HTTPException(status_code=503, detail="Identity service unavailable.")

    try:
        return await verifier.verify(credentials.credentials.strip())
    except PermissionError as e:
        logger.info("Rejected API key: %s", e)
        raise HTTPException(
            status_code=401,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> str | None:
    """FastAPI dependency: the verified user id, or None when auth is off."""
    services = getattr(request.app.state, "services", None)
    verifier = services.verifier if services is not None else None
    return await resolve_user(credentials, settings, verifier)
