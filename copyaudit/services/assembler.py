# =============================================================================
# Context Assembler — Ranked Chunks → Prompt Context with Citations
# =============================================================================
#
# Renders each ranked chunk as
#
#   [Source: brand_book.pdf - MASTER] <chunk text>
#
# and joins them with a horizontal-rule separator, in ranker order.
# The "- MASTER" marker appears only for primary-source chunks.
# =============================================================================

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from copyaudit.services.ranker import RankedChunk, unique_sources
from copyaudit.services.store import StoredChunk

CHUNK_SEPARATOR = "\n\n---\n\n"
PLAIN_SEPARATOR = "\n\n"


@dataclass(frozen=True)
class AssembledContext:
    text: str = ""
    sources: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.text


def citation_tag(chunk: StoredChunk) -> str:
    marker = " - MASTER" if chunk.is_primary else ""
    return f"[Source: {chunk.source}{marker}]"


def assemble_context(ranked: Sequence[RankedChunk]) -> AssembledContext:
    """Render ranked chunks with citation tags. Order is preserved."""
    if not ranked:
        return AssembledContext()

    text = CHUNK_SEPARATOR.join(
        f"{citation_tag(r.chunk)} {r.chunk.text}" for r in ranked
    )
    return AssembledContext(
        text=text,
        sources=unique_sources(r.chunk for r in ranked),
    )


def join_plain(chunks: Sequence[StoredChunk]) -> AssembledContext:
    """Fallback rendering: texts only, no citations or sources."""
    return AssembledContext(text=PLAIN_SEPARATOR.join(c.text for c in chunks))
