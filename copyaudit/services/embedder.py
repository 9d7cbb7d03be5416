# =============================================================================
# Embedding Service — Best-Effort Vector Generation (Provider-Agnostic)
# =============================================================================
#
# Generates embeddings through any OpenAI-compatible embeddings endpoint
# (OpenAI, DashScope, a local gateway) via a configurable base_url.
#
# Embedding is best-effort everywhere it is used:
#   - ingestion stores a chunk without a vector when its batch fails
#   - retrieval falls back to non-semantic mode when the query fails
# so nothing here raises. Failures are logged and come back as None.
#
# ARCHITECTURE:
#   Embedder (Protocol)
#   └── OpenAIEmbedder
#       ├── embed_texts()  : sub-batched, order-preserving, None per failure
#       └── embed_query()  : single text, None on failure
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Protocol

from openai import AsyncOpenAI

from copyaudit.config import Settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class Embedder(Protocol):
    async def embed_texts(self, texts: Sequence[str]) -> list[list[float] | None]:
        """One entry per input text, None where embedding failed."""
        ...

    async def embed_query(self, text: str) -> list[float] | None:
        ...


# ---------------------------------------------------------------------------
# Implementation: OpenAI-compatible embeddings API
# ---------------------------------------------------------------------------


class OpenAIEmbedder:
    """
    Embedder over the OpenAI SDK.

    Key resolution: EMBEDDING_API_KEY, then OPENAI_API_KEY. Without a key
    every call soft-fails to None.
    """

    def __init__(self, settings: Settings) -> None:
        self._api_key = settings.embedding_api_key or settings.openai_api_key
        self._base_url = settings.embedding_base_url
        self._model = settings.embedding_model
        self._dimensions = settings.embedding_dimensions
        self._batch_size = settings.embedding_batch_size
        self._client: AsyncOpenAI | None = None

    def _get_client(self) -> AsyncOpenAI | None:
        """Lazily create the client; None when no key is configured."""
        if self._client is None and self._api_key:
            client_kwargs: dict = {"api_key": self._api_key}
            if self._base_url:
                client_kwargs["base_url"] = self._base_url
            self._client = AsyncOpenAI(**client_kwargs)
            logger.info(
                "Initialized embedding client (model=%s, base_url=%s)",
                self._model,
                self._base_url or "https://api.openai.com/v1",
            )
        return self._client

    async def embed_texts(self, texts: Sequence[str]) -> list[list[float] | None]:
        results: list[list[float] | None] = [None] * len(texts)
        if not texts:
            return results

        client = self._get_client()
        if client is None:
            logger.warning(
                "No embedding API key configured; %d texts left unembedded",
                len(texts),
            )
            return results

        for start in range(0, len(texts), self._batch_size):
            batch = list(texts[start:start + self._batch_size])
            try:
                create_kwargs: dict = {"model": self._model, "input": batch}
                if self._dimensions:
                    create_kwargs["dimensions"] = self._dimensions
                response = await client.embeddings.create(**create_kwargs)
            except Exception as e:
                logger.warning(
                    "Embedding batch %d-%d failed, storing without vectors: %s",
                    start, start + len(batch) - 1, e,
                )
                continue

            # item.index is relative to the batch
            for item in sorted(response.data, key=lambda x: x.index):
                results[start + item.index] = list(item.embedding)

        embedded = sum(1 for r in results if r is not None)
        logger.info(
            "Embedded %d/%d texts (model=%s)", embedded, len(texts), self._model,
        )
        return results

    async def embed_query(self, text: str) -> list[float] | None:
        if not text or not text.strip():
            return None
        vectors = await self.embed_texts([text])
        return vectors[0]
