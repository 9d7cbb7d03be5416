# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
# Each module defines a FastAPI APIRouter for a specific feature:
#   - context.py: ranked brand context retrieval
#   - audit.py: multi-agent content audit
#   - generate.py: RAG content generation
#   - scrape.py: web page extraction with optional LLM cleaning
#   - guidelines.py: guideline creation, ingestion, deletion, brand analysis
#   - deps.py: shared dependencies (identity, stores, providers)
# =============================================================================
