# =============================================================================
# Agents Package — LLM Orchestration
# =============================================================================
#   - auditor.py: concurrent multi-agent content audit; each agent has a
#     category scope and a provider fallback chain
#   - generator.py: LangGraph RAG generation graph (retrieve → compose →
#     generate)
#   - prompts.py: system prompt templates
# =============================================================================
