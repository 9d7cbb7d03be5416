# =============================================================================
# Unit Tests — Embedding Service
# =============================================================================
#
# The AsyncOpenAI client is replaced with a mock; no API calls are made.
# =============================================================================

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from copyaudit.config import Settings
from copyaudit.services.embedder import OpenAIEmbedder


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _embedding_response(batch, reverse=False):
    data = [
        SimpleNamespace(index=i, embedding=[float(len(text)), 1.0])
        for i, text in enumerate(batch)
    ]
    return SimpleNamespace(data=list(reversed(data)) if reverse else data)


def _embedder(batch_size=2, **overrides) -> OpenAIEmbedder:
    settings = Settings(
        _env_file=None,
        openai_api_key="sk-test",
        embedding_batch_size=batch_size,
        **overrides,
    )
    return OpenAIEmbedder(settings)


def _with_client(embedder: OpenAIEmbedder, create: AsyncMock) -> OpenAIEmbedder:
    client = MagicMock()
    client.embeddings.create = create
    embedder._client = client
    return embedder


class TestEmbedTexts:
    def test_no_key_soft_fails(self):
        embedder = OpenAIEmbedder(Settings(_env_file=None))
        assert _run(embedder.embed_texts(["a", "b"])) == [None, None]

    def test_empty_input(self):
        assert _run(_embedder().embed_texts([])) == []

    def test_order_preserved_across_batches(self):
        create = AsyncMock(side_effect=lambda **kw: _embedding_response(kw["input"], reverse=True))
        embedder = _with_client(_embedder(batch_size=2), create)

        vectors = _run(embedder.embed_texts(["a", "bb", "ccc"]))

        assert vectors == [[1.0, 1.0], [2.0, 1.0], [3.0, 1.0]]
        assert create.await_count == 2
        assert create.call_args_list[0].kwargs["input"] == ["a", "bb"]
        assert create.call_args_list[0].kwargs["dimensions"] == 1536

    def test_failed_batch_leaves_none(self):
        calls = {"n": 0}

        async def create(**kwargs):
            calls["n"] += 1
            if calls["n"] == 1:
                raise ConnectionError("rate limited")
            return _embedding_response(kwargs["input"])

        embedder = _with_client(_embedder(batch_size=2), AsyncMock(side_effect=create))
        vectors = _run(embedder.embed_texts(["a", "bb", "ccc"]))
        assert vectors == [None, None, [3.0, 1.0]]

    def test_embedding_key_preferred(self):
        embedder = OpenAIEmbedder(Settings(
            _env_file=None, openai_api_key="sk-openai", embedding_api_key="sk-embed",
        ))
        assert embedder._api_key == "sk-embed"


class TestEmbedQuery:
    def test_blank_query_skipped(self):
        create = AsyncMock()
        embedder = _with_client(_embedder(), create)
        assert _run(embedder.embed_query("   ")) is None
        create.assert_not_called()

    def test_query_vector(self):
        create = AsyncMock(side_effect=lambda **kw: _embedding_response(kw["input"]))
        embedder = _with_client(_embedder(), create)
        assert _run(embedder.embed_query("tone")) == [4.0, 1.0]
