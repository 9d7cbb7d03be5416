# =============================================================================
# Context Retrieval — Brand Chunks → Ranked, Cited Context
# =============================================================================
#
# FLOW:
#   1. Embed the query text if there is one (soft-fail → no vector)
#   2. Load every chunk of the brand's approved guidelines
#   3. With a vector:    rank (cosine + primary boost), take top K,
#                        render with citation tags
#      Without a vector: first N chunks in storage order, plain join,
#                        no sources
#
# An empty or unreadable store gives an empty context; callers (audit,
# generation) carry on without brand context.
# =============================================================================

from __future__ import annotations

import logging

from copyaudit.services.assembler import AssembledContext, assemble_context, join_plain
from copyaudit.services.embedder import Embedder
from copyaudit.services.ranker import DEFAULT_PRIMARY_BOOST, first_chunks, rank_chunks
from copyaudit.services.store import DocumentStore

logger = logging.getLogger(__name__)


async def retrieve_context(
    brand_id: str,
    query_text: str | None,
    *,
    store: DocumentStore,
    embedder: Embedder,
    top_k: int = 12,
    fallback_limit: int = 10,
    primary_boost: float = DEFAULT_PRIMARY_BOOST,
) -> AssembledContext:
    """
    Build the brand context for a query.

    Args:
        brand_id: Brand whose approved guidelines are searched.
        query_text: Free-text query; None or blank skips semantic ranking.
        store: Document store to read chunks from.
        embedder: Used for the query embedding only.
        top_k: Chunks kept after ranking.
        fallback_limit: Chunks kept in non-semantic mode.
        primary_boost: Score bonus for primary-source chunks.

    Returns:
        AssembledContext; empty when the brand has no approved chunks.
    """
    query_vector = None
    if query_text and query_text.strip():
        query_vector = await embedder.embed_query(query_text)
        if query_vector is None:
            logger.warning(
                "Query embedding unavailable for brand %s; using fallback order",
                brand_id,
            )

    try:
        chunks = await store.list_approved_chunks(brand_id)
    except Exception:
        logger.exception("Failed to load chunks for brand %s", brand_id)
        return AssembledContext()

    if not chunks:
        logger.info("No approved guideline chunks for brand %s", brand_id)
        return AssembledContext()

    if query_vector is None:
        return join_plain(first_chunks(chunks, fallback_limit))

    ranking = rank_chunks(chunks, query_vector, top_k=top_k, primary_boost=primary_boost)
    logger.info(
        "Ranked %d chunks for brand %s: kept %d from %d sources (top score %.3f)",
        len(chunks), brand_id, len(ranking.chunks), len(ranking.sources),
        ranking.chunks[0].score if ranking.chunks else 0.0,
    )
    return assemble_context(ranking.chunks)
