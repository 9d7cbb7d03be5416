# =============================================================================
# Similarity Ranker — Cosine Score + Primary-Source Boost
# =============================================================================
#
# Ranks a brand's chunks against a query embedding in process:
#
#   final_score = cosine(query, chunk) + (primary_boost if chunk.is_primary)
#
# then sorts descending (stable: equal scores keep storage order) and keeps
# the top K. Chunks without an embedding score 0 (plus the boost if they
# are primary) rather than being excluded.
#
# The boost is an absolute additive constant, independent of the
# similarity magnitude, so a primary chunk can outrank a non-primary chunk
# up to `primary_boost` more similar.
# =============================================================================

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from copyaudit.services.store import StoredChunk

DEFAULT_PRIMARY_BOOST = 0.15


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RankedChunk:
    chunk: StoredChunk
    similarity: float
    score: float  # similarity + boost


@dataclass(frozen=True)
class RankingResult:
    chunks: list[RankedChunk]
    sources: list[str]  # deduplicated, first-seen order


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def cosine_similarity(
    a: Sequence[float] | None,
    b: Sequence[float] | None,
) -> float:
    """
    Cosine similarity of two vectors.

    Returns 0.0 instead of raising when either vector is missing, the
    lengths differ, or either vector has zero norm.
    """
    if a is None or b is None or len(a) != len(b) or len(a) == 0:
        return 0.0

    dot = norm_a = norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y

    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (math.sqrt(norm_a) * math.sqrt(norm_b))


def rank_chunks(
    chunks: Sequence[StoredChunk],
    query_vector: Sequence[float],
    top_k: int = 12,
    primary_boost: float = DEFAULT_PRIMARY_BOOST,
) -> RankingResult:
    """
    Score, sort and truncate chunks against a query vector.

    Args:
        chunks: Candidate chunks in storage order.
        query_vector: Embedding of the query text.
        top_k: Maximum number of chunks returned.
        primary_boost: Added to the similarity of primary-source chunks.

    Returns:
        RankingResult whose chunks are in non-increasing score order.
    """
    scored = []
    for chunk in chunks:
        similarity = cosine_similarity(query_vector, chunk.embedding)
        score = similarity + (primary_boost if chunk.is_primary else 0.0)
        scored.append(RankedChunk(chunk=chunk, similarity=similarity, score=score))

    # list.sort is stable, so ties keep their storage order
    scored.sort(key=lambda r: r.score, reverse=True)
    top = scored[:max(top_k, 0)]

    return RankingResult(
        chunks=top,
        sources=unique_sources(r.chunk for r in top),
    )


def first_chunks(chunks: Sequence[StoredChunk], limit: int) -> list[StoredChunk]:
    """Non-semantic fallback: the first `limit` chunks in storage order."""
    return list(chunks[:max(limit, 0)])


def unique_sources(chunks: Iterable[StoredChunk]) -> list[str]:
    seen: dict[str, None] = {}
    for chunk in chunks:
        seen.setdefault(chunk.source, None)
    return list(seen)
