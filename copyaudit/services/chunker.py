# =============================================================================
# Paragraph-Aware Text Chunker
# =============================================================================
#
# Splits guideline text into retrieval units along paragraph boundaries,
# falling back to sentence boundaries for paragraphs that are too long.
# Sizes are in characters.
#
# ALGORITHM:
# 1. Normalise line endings, split on blank lines, trim paragraphs
# 2. Greedily append paragraphs to a running buffer (joined by "\n\n")
#    while len(buffer) + len(paragraph) + 2 <= max_size
# 3. On overflow, emit the buffer only if len(buffer) >= min_size;
#    a shorter buffer is dropped
# 4. A paragraph longer than max_size is split into sentences and packed
#    greedily; the last partial pack becomes the new buffer
# 5. At end of input the buffer is emitted regardless of min_size
# 6. Chunks of 20 characters or fewer are discarded as noise
#
# Offsets are synthetic identifiers (index * 100), not character positions.
# =============================================================================

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

import tiktoken

logger = logging.getLogger(__name__)

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
_SENTENCE = re.compile(r"[^.!?]+[.!?]+(?:\s+|$)")

_SEPARATOR = "\n\n"
_NOISE_FLOOR = 20
_OFFSET_STRIDE = 100


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TextChunk:
    """A chunk of guideline text with its synthetic offsets."""

    text: str
    start: int
    end: int


# ---------------------------------------------------------------------------
# Tiktoken Encoder — Cached Singleton
# ---------------------------------------------------------------------------
# cl100k_base matches the text-embedding-3 family, so stored token counts
# reflect what the embedding model sees.
# ---------------------------------------------------------------------------

_encoder: tiktoken.Encoding | None = None


def _get_encoder() -> tiktoken.Encoding:
    """Lazily initialize and cache the tiktoken encoder."""
    global _encoder
    if _encoder is None:
        _encoder = tiktoken.get_encoding("cl100k_base")
    return _encoder


def count_tokens(text: str) -> int:
    """Exact token count under cl100k_base."""
    return len(_get_encoder().encode(text))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def semantic_chunking(
    text: str,
    max_size: int = 1000,
    min_size: int = 100,
) -> list[TextChunk]:
    """
    Split text into paragraph-aligned chunks.

    Args:
        text: Raw guideline text.
        max_size: Target maximum chunk length in characters. A single
            sentence longer than this becomes its own oversized chunk.
        min_size: Buffers shorter than this are dropped when a paragraph
            overflows them. The final buffer is always kept.

    Returns:
        Chunks in document order. Deterministic for identical arguments.
    """
    if not text:
        return []

    normalised = text.replace("\r\n", "\n").replace("\r", "\n")
    pieces: list[str] = []
    current = ""

    for raw_para in _PARAGRAPH_BREAK.split(normalised):
        para = raw_para.strip()
        if not para:
            continue

        if len(current) + len(para) + len(_SEPARATOR) <= max_size:
            current = f"{current}{_SEPARATOR}{para}" if current else para
            continue

        if len(current) >= min_size:
            pieces.append(current)
            current = ""

        if len(para) > max_size:
            sub_chunk = ""
            for sentence in _split_sentences(para):
                if len(sub_chunk) + len(sentence) <= max_size:
                    sub_chunk += sentence
                else:
                    if sub_chunk:
                        pieces.append(sub_chunk.strip())
                    sub_chunk = sentence
            if sub_chunk:
                current = sub_chunk.strip()
        else:
            current = para

    if current:
        pieces.append(current)

    kept = [p for p in pieces if len(p) > _NOISE_FLOOR]
    chunks = [
        TextChunk(
            text=piece,
            start=index * _OFFSET_STRIDE,
            end=index * _OFFSET_STRIDE + len(piece),
        )
        for index, piece in enumerate(kept)
    ]

    logger.debug(
        "Chunked %d chars into %d chunks (max=%d, min=%d, dropped=%d)",
        len(text), len(chunks), max_size, min_size, len(pieces) - len(kept),
    )
    return chunks


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _split_sentences(paragraph: str) -> list[str]:
    """
    Split a paragraph into sentences, keeping trailing whitespace.

    Text after the last terminator is kept as a final sentence. A paragraph
    with no terminator at all is a single sentence.
    """
    sentences: list[str] = []
    consumed = 0
    for match in _SENTENCE.finditer(paragraph):
        sentences.append(match.group(0))
        consumed = match.end()

    remainder = paragraph[consumed:]
    if remainder.strip():
        sentences.append(remainder)

    return sentences or [paragraph]
