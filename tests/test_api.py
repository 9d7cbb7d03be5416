# =============================================================================
# Integration Tests — HTTP Surface
# =============================================================================
#
# Drives the FastAPI app with TestClient. The lifespan is not entered
# (no `with TestClient(...)`), so no database is needed: every service
# dependency is replaced through app.dependency_overrides.
# =============================================================================

from __future__ import annotations

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from copyaudit.agents.auditor import AUDIT_PROFILES, AuditOrchestrator, AuditOutcome
from copyaudit.api.deps import (
    get_embedder,
    get_orchestrator,
    get_registry,
    get_store,
    get_usage_logger,
)
from copyaudit.config import Settings, get_settings
from copyaudit.main import app
from copyaudit.services.errors import ScrapeError
from copyaudit.services.llm import LLMResponse, ProviderRegistry
from copyaudit.services.store import ChunkWrite, InMemoryDocumentStore
from copyaudit.services.usage import InMemoryUsageLogger

GUIDELINE_TEXT = "\n\n".join([
    "Tone of voice: warm, direct, never pushy. " * 15,
    "Forbidden words: cheap, guaranteed, miracle. " * 15,
])


class ConstantEmbedder:
    async def embed_texts(self, texts):
        return [[1.0, 0.0] for _ in texts]

    async def embed_query(self, text):
        return [1.0, 0.0]


class JsonProvider:
    def __init__(self, content: str):
        self.content = content
        self.calls: list[list[dict]] = []

    async def complete(self, messages, system=None, temperature=None,
                       max_tokens=None, json_mode=False):
        self.calls.append(messages)
        return LLMResponse(self.content, "fake", input_tokens=10, output_tokens=5)


def _audit_json(summary: str, category: str) -> str:
    return json.dumps({
        "summary": summary,
        "identified_issues": [{
            "category": category,
            "severity": "High",
            "problematic_text": "No.1",
            "citation": "Rule 3",
            "reason": "Unsupported superlative",
            "suggestion": "One of the best",
        }],
    })


@pytest.fixture
def services():
    registry = ProviderRegistry({})
    registry.register("deepseek", JsonProvider(_audit_json("logic", "legal")))
    registry.register("gemini", JsonProvider(_audit_json("brand", "brand")))
    usage = InMemoryUsageLogger()
    return SimpleNamespace(
        store=InMemoryDocumentStore(),
        embedder=ConstantEmbedder(),
        registry=registry,
        usage=usage,
        orchestrator=AuditOrchestrator(AUDIT_PROFILES["triple"], registry, usage),
        settings=Settings(_env_file=None, ingest_retry_backoff_seconds=0),
    )


@pytest.fixture
def client(services):
    app.dependency_overrides[get_store] = lambda: services.store
    app.dependency_overrides[get_embedder] = lambda: services.embedder
    app.dependency_overrides[get_registry] = lambda: services.registry
    app.dependency_overrides[get_usage_logger] = lambda: services.usage
    app.dependency_overrides[get_orchestrator] = lambda: services.orchestrator
    app.dependency_overrides[get_settings] = lambda: services.settings
    yield TestClient(app)
    app.dependency_overrides.clear()


def _create_guideline(client, text=GUIDELINE_TEXT, ingest=True, is_primary=True):
    response = client.post("/guidelines", json={
        "brand_id": "acme",
        "file_name": "brand_book.pdf",
        "text": text,
        "is_primary": is_primary,
        "ingest": ingest,
    })
    assert response.status_code == 201, response.text
    return response.json()


# ---------------------------------------------------------------------------
# Health & Context
# ---------------------------------------------------------------------------


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert response.json()["database"] is False


class TestContextEndpoint:
    def test_ranked_context(self, client):
        _create_guideline(client)
        response = client.post("/context", json={"brand_id": "acme", "query": "tone"})
        assert response.status_code == 200
        body = response.json()
        assert body["sources"] == ["brand_book.pdf"]
        assert body["text"].startswith("[Source: brand_book.pdf - MASTER]")

    def test_unknown_brand_is_empty(self, client):
        response = client.post("/context", json={"brand_id": "nobody", "query": "tone"})
        assert response.json() == {"text": "", "sources": []}

    def test_brand_id_required(self, client):
        assert client.post("/context", json={"query": "tone"}).status_code == 422


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------


class TestAuditEndpoint:
    def test_partial_failure_still_200(self, client):
        # huggingface is not registered, so the language agent's chain
        # ends on gemini
        response = client.post("/audit", json={"text": "We are the No.1 brand!"})
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["result"]["summary"] == "logic | brand | brand"
        categories = [i["category"] for i in body["result"]["identified_issues"]]
        assert categories == ["legal", "brand", "brand"]

    def test_all_providers_down(self, client, services):
        services.orchestrator = AuditOrchestrator(
            AUDIT_PROFILES["triple"], ProviderRegistry({}), services.usage,
        )
        response = client.post("/audit", json={"text": "hello"})
        assert response.status_code == 200
        issues = response.json()["result"]["identified_issues"]
        assert len(issues) == 1
        assert issues[0]["problematic_text"] == "System Warning"

    def test_unexpected_error_becomes_api_error_issue(self, client, services):
        services.orchestrator = MagicMock()
        services.orchestrator.audit = AsyncMock(side_effect=RuntimeError("kaboom"))
        response = client.post("/audit", json={"text": "hello"})
        assert response.status_code == 200
        issue = response.json()["result"]["identified_issues"][0]
        assert issue["problematic_text"] == "API Error"
        assert issue["severity"] == "High"

    def test_non_string_issue_fields_still_200(self, client, services):
        content = json.dumps({
            "summary": "s",
            "identified_issues": [{
                "category": "legal",
                "severity": 2,
                "problematic_text": "No.1",
                "citation": ["Rule 1", "Rule 2"],
                "reason": "Unsupported superlative",
                "suggestion": None,
            }],
        })
        for name in ("deepseek", "gemini", "huggingface"):
            services.registry.register(name, JsonProvider(content))

        response = client.post("/audit", json={"text": "hello"})

        assert response.status_code == 200
        issue = response.json()["result"]["identified_issues"][0]
        assert issue["citation"] == "Rule 1, Rule 2"
        assert issue["severity"] == "2"
        assert issue["suggestion"] == ""

    def test_unrenderable_result_becomes_api_error_issue(self, client, services):
        services.orchestrator = MagicMock()
        services.orchestrator.audit = AsyncMock(return_value=AuditOutcome(
            summary="ok",
            identified_issues=[{"citation": {"rule": 1}}],
        ))
        response = client.post("/audit", json={"text": "hello"})
        assert response.status_code == 200
        issues = response.json()["result"]["identified_issues"]
        assert len(issues) == 1
        assert issues[0]["problematic_text"] == "API Error"

    def test_brand_context_added_to_prompt(self, client, services):
        _create_guideline(client)
        services.orchestrator = MagicMock()
        services.orchestrator.audit = AsyncMock(
            return_value=AuditOutcome(summary="ok", identified_issues=[]),
        )
        response = client.post("/audit", json={"text": "Buy now!", "brand_id": "acme"})
        assert response.status_code == 200
        prompt = services.orchestrator.audit.call_args.kwargs["constructed_prompt"]
        assert "[Source: brand_book.pdf - MASTER]" in prompt
        assert "Buy now!" in prompt

    def test_caller_prompt_kept(self, client, services):
        services.orchestrator = MagicMock()
        services.orchestrator.audit = AsyncMock(
            return_value=AuditOutcome(summary="ok", identified_issues=[]),
        )
        client.post("/audit", json={
            "text": "Buy now!", "brand_id": "acme", "constructed_prompt": "MY PROMPT",
        })
        assert services.orchestrator.audit.call_args.kwargs["constructed_prompt"] == "MY PROMPT"

    def test_empty_text_rejected(self, client):
        assert client.post("/audit", json={"text": ""}).status_code == 422


# ---------------------------------------------------------------------------
# Generate & Scrape
# ---------------------------------------------------------------------------


class TestGenerateEndpoint:
    def test_generate(self, client):
        _create_guideline(client)
        response = client.post("/generate", json={
            "brand_id": "acme", "topic": "Summer sale", "platform": "Instagram",
        })
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["citations"] == ["brand_book.pdf"]
        assert body["model"] == "fake"

    def test_provider_missing_is_502(self, client, services):
        services.settings = Settings(_env_file=None, generation_provider="qwen")
        response = client.post("/generate", json={"brand_id": "acme", "topic": "t"})
        assert response.status_code == 502


class TestScrapeEndpoint:
    def test_scrape_error_is_400(self, client):
        with patch(
            "copyaudit.services.scraper.fetch_html",
            side_effect=ScrapeError("Unsupported URL scheme 'file'"),
        ):
            response = client.post("/scrape", json={"url": "file:///etc/passwd"})
        assert response.status_code == 400
        assert "scheme" in response.json()["detail"]

    def test_invalid_cleaning_level(self, client):
        response = client.post("/scrape", json={
            "url": "https://example.com", "cleaning_level": "extreme",
        })
        assert response.status_code == 422

    def test_minimal_scrape(self, client):
        html = (
            "<html><head><title>T</title></head><body><article><p>"
            + "Plenty of readable article text here. " * 3
            + "</p></article></body></html>"
        )
        with patch("copyaudit.services.scraper.fetch_html", return_value=html):
            response = client.post("/scrape", json={
                "url": "https://example.com", "cleaning_level": "minimal",
            })
        assert response.status_code == 200
        body = response.json()
        assert body["metadata"]["title"] == "T"
        assert body["content"].startswith("Title: T\n")
        assert body["cleaned"] is False


# ---------------------------------------------------------------------------
# Guidelines
# ---------------------------------------------------------------------------


class TestGuidelinesEndpoints:
    def test_create_without_ingest_is_pending(self, client):
        body = _create_guideline(client, ingest=False)
        assert body["status"] == "pending"
        assert body["ingestion"] is None

    def test_create_with_ingest(self, client):
        body = _create_guideline(client)
        assert body["status"] == "approved"
        assert body["ingestion"]["chunk_count"] == 2
        assert body["ingestion"]["embedded_count"] == 2
        assert body["chunk_count"] == 2

    def test_get_and_delete(self, client):
        guideline_id = _create_guideline(client)["id"]
        assert client.get(f"/guidelines/{guideline_id}").status_code == 200
        assert client.delete(f"/guidelines/{guideline_id}").status_code == 204
        assert client.get(f"/guidelines/{guideline_id}").status_code == 404
        assert client.delete(f"/guidelines/{guideline_id}").status_code == 404

    def test_ingest_existing(self, client):
        guideline_id = _create_guideline(client, ingest=False)["id"]
        response = client.post(f"/guidelines/{guideline_id}/ingest")
        assert response.status_code == 200
        assert response.json()["status"] == "approved"

    def test_ingest_missing_is_404(self, client):
        assert client.post("/guidelines/999/ingest").status_code == 404

    def test_ingest_blank_text_is_400(self, client):
        guideline_id = _create_guideline(client, text="   ", ingest=False)["id"]
        assert client.post(f"/guidelines/{guideline_id}/ingest").status_code == 400

    def test_commit_failure_is_500(self, client, services):
        guideline_id = _create_guideline(client, ingest=False)["id"]
        services.store.write_chunk_batch = AsyncMock(side_effect=ConnectionError("db down"))
        response = client.post(f"/guidelines/{guideline_id}/ingest")
        assert response.status_code == 500
        assert client.get(f"/guidelines/{guideline_id}").json()["status"] == "failed"

    def test_background_ingest_dispatches_task(self, client):
        guideline_id = _create_guideline(client, ingest=False)["id"]
        with patch(
            "copyaudit.api.guidelines.ingest_guideline_task.delay",
            return_value=SimpleNamespace(id="task-123"),
        ) as delay:
            response = client.post(f"/guidelines/{guideline_id}/ingest?background=true")
        assert response.status_code == 202
        assert response.json()["task_id"] == "task-123"
        delay.assert_called_once_with(guideline_id)

    def test_task_status_success(self, client):
        fake = SimpleNamespace(status="SUCCESS", result={"guideline_id": 1, "chunk_count": 4})
        with patch("copyaudit.api.guidelines.AsyncResult", return_value=fake):
            response = client.get("/guidelines/tasks/task-123")
        body = response.json()
        assert body["status"] == "SUCCESS"
        assert body["result"]["chunk_count"] == 4
        assert body["error"] is None

    def test_task_status_failure(self, client):
        fake = SimpleNamespace(status="FAILURE", result=RuntimeError("batch 0 failed"))
        with patch("copyaudit.api.guidelines.AsyncResult", return_value=fake):
            response = client.get("/guidelines/tasks/task-123")
        assert response.json()["error"] == "batch 0 failed"


class TestAnalyzeBrandEndpoint:
    SITE = (
        "<html><head><title>Acme</title></head><body>"
        "<h1>Gentle by nature</h1>"
        "<p>We make skincare that is honest, gentle and kind to skin.</p>"
        "</body></html>"
    )

    def _post(self, client, html=None, error=None):
        kwargs = {"side_effect": error} if error else {"return_value": html or self.SITE}
        with patch("copyaudit.services.brand_analyzer.fetch_html", **kwargs):
            return client.post("/guidelines/analyze", json={"url": "https://acme.example"})

    def test_profile_returned(self, client, services):
        services.registry.register("gemini", JsonProvider(json.dumps({
            "brandName": "Acme",
            "tone": "Warm",
            "dos": ["Explain ingredients"],
            "donts": ["Slang"],
            "summary": "Gentle skincare.",
        })))
        response = self._post(client)
        assert response.status_code == 200
        profile = response.json()["profile"]
        assert profile["brand_name"] == "Acme"
        assert profile["donts"] == ["Slang"]
        assert profile["core_values"] == []

    def test_incomplete_profile_is_502(self, client):
        # the fixture's gemini answers with audit JSON, not a profile
        response = self._post(client)
        assert response.status_code == 502
        assert "brand_name" in response.json()["detail"]

    def test_fetch_error_is_400(self, client):
        response = self._post(client, error=ScrapeError("Website returned status 403"))
        assert response.status_code == 400
        assert "403" in response.json()["detail"]


# ---------------------------------------------------------------------------
# Authorisation
# ---------------------------------------------------------------------------


class TestAuth:
    def test_missing_key_rejected_when_enabled(self, client, services):
        services.settings = Settings(_env_file=None, auth_enabled=True)
        response = client.post("/context", json={"brand_id": "acme"})
        assert response.status_code == 401

    def test_anonymous_when_disabled(self, client):
        response = client.post("/context", json={"brand_id": "acme"})
        assert response.status_code == 200
