# =============================================================================
# Embedding Service — Batch Vector Generation (Provider-Agnostic)
# =============================================================================
#
# Generates vector embeddings through any OpenAI-compatible embeddings API
# (OpenAI, DashScope, local gateways) by pointing base_url elsewhere.
#
# Vector stores depend on the `Embedder` protocol, not on this client, so
# tests plug in a deterministic fake without network access.
#
# TOKEN LIMITS:
# - Each text: max 8,191 tokens
# - Texts are sent in batches of settings.embedding_batch_size (100)
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Protocol

from openai import OpenAI

from ragqueue.config import settings

logger = logging.getLogger(__name__)


class Embedder(Protocol):
    """Anything that turns texts into vectors of a fixed dimension."""

    def embed_documents(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed texts for storage, preserving input order."""
        ...

    def embed_query(self, text: str) -> list[float]:
        """Embed a single search query."""
        ...


class OpenAIEmbedder:
    """
    Embedder backed by the OpenAI SDK.

    The client is created on first use so constructing the embedder (at
    application start) never fails for a missing API key; the first job
    that needs embeddings fails instead, with the reason in its error.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        dimensions: int | None = None,
        batch_size: int | None = None,
    ) -> None:
        self._api_key = api_key if api_key is not None else settings.openai_api_key
        self._model = model or settings.embedding_model
        self._base_url = base_url if base_url is not None else settings.embedding_base_url
        self._dimensions = dimensions if dimensions is not None else settings.embedding_dimensions
        self._batch_size = batch_size or settings.embedding_batch_size
        self._client: OpenAI | None = None

    def _get_client(self) -> OpenAI:
        if self._client is None:
            if not self._api_key:
                raise ValueError(
                    "No API key configured for embeddings. "
                    "Set OPENAI_API_KEY in .env"
                )
            client_kwargs: dict = {"api_key": self._api_key}
            if self._base_url:
                client_kwargs["base_url"] = self._base_url
            self._client = OpenAI(**client_kwargs)

            logger.info(
                "Initialized embedding client (model=%s, base_url=%s)",
                self._model,
                self._base_url or "https://api.openai.com/v1",
            )
        return self._client

    def embed_documents(self, texts: Sequence[str]) -> list[list[float]]:
        """
        Generate embeddings for texts, in sub-batches.

        Returns embeddings in the SAME ORDER as the input texts.

        Raises:
            ValueError: If no API key is configured.
            openai.APIError: If the API call fails.
        """
        if not texts:
            return []

        client = self._get_client()
        all_embeddings: list[list[float]] = [[] for _ in texts]

        for i in range(0, len(texts), self._batch_size):
            batch = list(texts[i : i + self._batch_size])
            logger.info(
                "Embedding batch %d–%d of %d texts (model=%s)",
                i + 1,
                min(i + self._batch_size, len(texts)),
                len(texts),
                self._model,
            )

            create_kwargs: dict = {"model": self._model, "input": batch}
            if self._dimensions:
                create_kwargs["dimensions"] = self._dimensions

            response = client.embeddings.create(**create_kwargs)

            # Place by response index; order of response.data is not relied on
            for item in response.data:
                all_embeddings[i + item.index] = item.embedding

        return all_embeddings

    def embed_query(self, text: str) -> list[float]:
        return self.embed_documents([text])[0]
