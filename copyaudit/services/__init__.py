# =============================================================================
# Services Package — Business Logic
# =============================================================================
#   - chunker.py: paragraph-aware character chunking
#   - embedder.py: OpenAI-compatible embeddings (best-effort)
#   - ranker.py / assembler.py: cosine ranking with primary boost, context
#     rendering with citations
#   - retrieval.py / ingestion.py: the two document-store operations
#   - store.py: DocumentStore protocol (SQL + in-memory)
#   - llm.py / result.py / errors.py: chat providers, registry, Result type
#   - output_parser.py: lenient JSON recovery from model output
#   - usage.py: token usage log with monotonic per-user aggregates
#   - scraper.py: HTML fetch and main-content extraction
#   - brand_analyzer.py: brand profile inference from a website
#   - auth.py: API key hashing and identity verification
# =============================================================================
