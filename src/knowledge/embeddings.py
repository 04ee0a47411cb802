"""Embedding providers for the knowledge store.

OpenAIEmbeddingProvider calls the hosted embedding model; HashEmbeddingProvider
is a deterministic, offline bag-of-words hash used for local seeding and tests.
"""
from __future__ import annotations

import asyncio
import hashlib
import logging
import re
from abc import ABC, abstractmethod

import numpy as np

from core.config import cfg
from core.errors import EmbeddingError

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"[a-z0-9]+")


class EmbeddingProvider(ABC):
    """Abstract interface for embedding providers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Identifier stored next to persisted vectors."""

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Generate an embedding vector for the given text."""


class HashEmbeddingProvider(EmbeddingProvider):
    """Deterministic hash-based embeddings.

    Each lowercase token is hashed into one of ``dimension`` buckets with a
    signed weight, so texts sharing words land close together under cosine
    similarity. No network access is needed.
    """

    def __init__(self, dimension: int = 256):
        if dimension <= 0:
            raise ValueError("dimension must be positive")
        self.dimension = dimension

    @property
    def name(self) -> str:
        return f"hash-{self.dimension}"

    def embed_sync(self, text: str) -> list[float]:
        vector = np.zeros(self.dimension, dtype=np.float64)
        for token in _TOKEN_RE.findall(text.lower()):
            digest = hashlib.md5(token.encode("utf-8")).digest()
            bucket = int.from_bytes(digest[:4], "big") % self.dimension
            sign = 1.0 if digest[4] & 1 else -1.0
            vector[bucket] += sign
        return vector.tolist()

    async def embed(self, text: str) -> list[float]:
        return self.embed_sync(text)


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """Embeddings from the OpenAI embeddings endpoint."""

    def __init__(self, *, api_key: str | None = None, model: str | None = None):
        self._api_key = api_key
        self._model = model

    @property
    def model(self) -> str:
        return self._model or cfg.embedding_model

    @property
    def name(self) -> str:
        return f"openai:{self.model}"

    async def embed(self, text: str) -> list[float]:
        api_key = self._api_key or cfg.openai_api_key
        if not api_key:
            raise EmbeddingError("OPENAI_API_KEY is not configured")
        model = self.model

        def _sync_call() -> list[float]:
            from openai import OpenAI
            client = OpenAI(api_key=api_key, timeout=cfg.service_timeout)
            response = client.embeddings.create(model=model, input=text)
            return list(response.data[0].embedding)

        try:
            return await asyncio.to_thread(_sync_call)
        except Exception as exc:
            logger.warning("Embedding call failed (model=%s): %s", model, exc)
            raise EmbeddingError(f"Embedding service unavailable: {exc}", model=model) from exc


def build_embedding_provider(kind: str | None = None) -> EmbeddingProvider:
    """Create the provider named by ``kind`` (or ``cfg.embedding_provider``)."""
    resolved = (kind or cfg.embedding_provider).strip().lower()
    if resolved == "hash":
        return HashEmbeddingProvider()
    if resolved == "openai":
        return OpenAIEmbeddingProvider()
    raise ValueError(f"Unknown embedding provider: {kind!r}")
