# =============================================================================
# Unit Tests — Context Retrieval
# =============================================================================
#
# Runs retrieval against the in-memory document store with a keyword
# embedder, so ranking outcomes are predictable without any API calls.
# =============================================================================

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

from copyaudit.services.retrieval import retrieve_context
from copyaudit.services.store import ChunkWrite, InMemoryDocumentStore


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


class KeywordEmbedder:
    """Embeds text as [mentions tone, mentions price]."""

    def __init__(self, available: bool = True):
        self.available = available

    @staticmethod
    def _vector(text: str) -> list[float]:
        lowered = text.lower()
        return [float("tone" in lowered), float("price" in lowered)]

    async def embed_texts(self, texts):
        return [self._vector(t) for t in texts]

    async def embed_query(self, text):
        if not self.available or not text.strip():
            return None
        return self._vector(text)


async def _seed(store, brand_id, file_name, texts, is_primary=False, approve=True):
    record = await store.create_guideline(brand_id, file_name, "\n\n".join(texts), is_primary)
    writes = [
        ChunkWrite(
            chunk_index=i,
            text=text,
            embedding=KeywordEmbedder._vector(text),
            token_count=len(text.split()),
        )
        for i, text in enumerate(texts)
    ]
    await store.write_chunk_batch(record, writes)
    if approve:
        await store.mark_approved(record.id, len(writes), len(writes), 0)
    return record


def _store_with_guidelines() -> InMemoryDocumentStore:
    store = InMemoryDocumentStore()

    async def seed():
        await _seed(store, "acme", "brand_book.pdf", [
            "Tone of voice: warm and direct.",
            "Price claims need a disclaimer.",
        ], is_primary=True)
        await _seed(store, "acme", "faq.pdf", [
            "Tone examples for social posts.",
            "Shipping is free above 50 EUR.",
        ])
        await _seed(store, "acme", "draft.pdf", ["Tone draft, not approved."], approve=False)
        await _seed(store, "other", "other.pdf", ["Tone of another brand."])

    _run(seed())
    return store


class TestRetrieveContext:
    def test_semantic_ranking_with_citations(self):
        store = _store_with_guidelines()
        context = _run(retrieve_context(
            "acme", "what tone should we use?",
            store=store, embedder=KeywordEmbedder(), top_k=2,
        ))
        blocks = context.text.split("\n\n---\n\n")
        assert blocks[0] == "[Source: brand_book.pdf - MASTER] Tone of voice: warm and direct."
        assert blocks[1] == "[Source: faq.pdf] Tone examples for social posts."
        assert context.sources == ["brand_book.pdf", "faq.pdf"]

    def test_unapproved_and_foreign_chunks_excluded(self):
        store = _store_with_guidelines()
        context = _run(retrieve_context(
            "acme", "tone", store=store, embedder=KeywordEmbedder(),
        ))
        assert "draft" not in context.text
        assert "another brand" not in context.text
        assert "draft.pdf" not in context.sources

    def test_top_k_limits_chunks(self):
        store = _store_with_guidelines()
        context = _run(retrieve_context(
            "acme", "price", store=store, embedder=KeywordEmbedder(), top_k=1,
        ))
        assert context.text == "[Source: brand_book.pdf - MASTER] Price claims need a disclaimer."
        assert context.sources == ["brand_book.pdf"]

    def test_blank_query_uses_storage_order(self):
        store = _store_with_guidelines()
        context = _run(retrieve_context(
            "acme", "   ", store=store, embedder=KeywordEmbedder(), fallback_limit=3,
        ))
        assert context.text == (
            "Tone of voice: warm and direct.\n\n"
            "Price claims need a disclaimer.\n\n"
            "Tone examples for social posts."
        )
        assert context.sources == []

    def test_no_query_uses_storage_order(self):
        store = _store_with_guidelines()
        embedder = KeywordEmbedder()
        embedder.embed_query = AsyncMock()
        context = _run(retrieve_context("acme", None, store=store, embedder=embedder))
        embedder.embed_query.assert_not_called()
        assert "[Source:" not in context.text
        assert context.text.count("\n\n") == 3

    def test_embedding_failure_falls_back(self):
        store = _store_with_guidelines()
        context = _run(retrieve_context(
            "acme", "tone", store=store, embedder=KeywordEmbedder(available=False),
        ))
        assert context.text.startswith("Tone of voice: warm and direct.")
        assert context.sources == []

    def test_unknown_brand_is_empty(self):
        store = _store_with_guidelines()
        context = _run(retrieve_context(
            "nobody", "tone", store=store, embedder=KeywordEmbedder(),
        ))
        assert context.is_empty
        assert context.sources == []

    def test_store_error_degrades_to_empty(self):
        store = InMemoryDocumentStore()
        store.list_approved_chunks = AsyncMock(side_effect=ConnectionError("db down"))
        context = _run(retrieve_context(
            "acme", "tone", store=store, embedder=KeywordEmbedder(),
        ))
        assert context.is_empty
