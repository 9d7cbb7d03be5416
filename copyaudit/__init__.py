# =============================================================================
# Copy Audit — Brand-Guideline RAG & Multi-Provider Content Auditor
# =============================================================================
# Ingests brand guideline documents into an embedding-indexed chunk store,
# retrieves ranked context for a brand (primary "master" sources boosted),
# and audits marketing copy with several LLM agents running concurrently,
# each with its own provider fallback chain.
#
# Package structure:
#   copyaudit/
#   ├── api/          → FastAPI route handlers (context, audit, generate,
#   │                    scrape, guidelines)
#   ├── agents/       → Audit orchestrator, RAG generation graph, prompts
#   ├── db/           → Database handle and ORM models
#   ├── models/       → Pydantic V2 request/response schemas
#   ├── services/     → Chunking, ranking, embedding, providers, stores,
#   │                    ingestion, usage accounting, scraping
#   └── workers/      → Celery app and background ingestion task
# =============================================================================
