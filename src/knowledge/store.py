"""Vector knowledge store for UI navigation patterns and material presets.

Entries are (text, embedding, tags) triples kept per collection in insertion
order. When a storage directory is given each collection is persisted as a
JSON file; otherwise the store lives in memory only.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import numpy as np

from .embeddings import EmbeddingProvider

logger = logging.getLogger(__name__)


class Collection(str, Enum):
    UI_PATTERNS = "ui_patterns"
    MATERIALS = "materials"


@dataclass
class KnowledgeEntry:
    id: str
    text: str
    tags: dict[str, str] = field(default_factory=dict)
    embedding: list[float] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "text": self.text, "tags": dict(self.tags), "embedding": self.embedding}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "KnowledgeEntry":
        return cls(
            id=str(data["id"]),
            text=str(data.get("text", "")),
            tags={str(k): str(v) for k, v in (data.get("tags") or {}).items()},
            embedding=[float(x) for x in data["embedding"]] if data.get("embedding") is not None else None,
        )


@dataclass(frozen=True)
class SearchHit:
    entry: KnowledgeEntry
    similarity: float

    @property
    def distance(self) -> float:
        return float(min(2.0, max(0.0, 1.0 - self.similarity)))


def cosine_similarity(a: Iterable[float], b: Iterable[float]) -> float:
    """Cosine similarity in [-1, 1]; 0.0 when either vector has zero norm."""
    va = np.asarray(list(a), dtype=np.float64)
    vb = np.asarray(list(b), dtype=np.float64)
    if va.shape != vb.shape:
        raise ValueError(f"Vector dimensions differ: {va.shape[0]} vs {vb.shape[0]}")
    na = np.linalg.norm(va)
    nb = np.linalg.norm(vb)
    if na == 0 or nb == 0:
        return 0.0
    return float(np.clip(np.dot(va, vb) / (na * nb), -1.0, 1.0))


TagFilter = Mapping[str, "str | Iterable[str]"]


def _matches(entry: KnowledgeEntry, where: TagFilter | None) -> bool:
    if not where:
        return True
    for key, allowed in where.items():
        value = entry.tags.get(key)
        if isinstance(allowed, str):
            if value != allowed:
                return False
        elif value not in set(allowed):
            return False
    return True


class KnowledgeStore:
    """Two-collection embedding store with cosine nearest-neighbour search."""

    def __init__(self, embedder: EmbeddingProvider, storage_dir: Path | str | None = None):
        self._embedder = embedder
        self._storage_dir = Path(storage_dir) if storage_dir is not None else None
        self._collections: dict[Collection, list[KnowledgeEntry]] = {c: [] for c in Collection}
        self._dimension: int | None = None
        self._lock = asyncio.Lock()
        if self._storage_dir is not None:
            self._load()

    @property
    def dimension(self) -> int | None:
        return self._dimension

    @property
    def storage_dir(self) -> Path | None:
        return self._storage_dir

    # ── Persistence ──────────────────────────────────────────────────

    def _collection_path(self, collection: Collection) -> Path:
        assert self._storage_dir is not None
        return self._storage_dir / f"{collection.value}.json"

    def _load(self) -> None:
        for collection in Collection:
            path = self._collection_path(collection)
            if not path.is_file():
                continue
            try:
                payload = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as exc:
                logger.warning("Ignoring unreadable knowledge file %s: %s", path, exc)
                continue
            entries = [KnowledgeEntry.from_dict(item) for item in payload.get("entries", [])]
            stored_provider = payload.get("provider")
            if stored_provider and stored_provider != self._embedder.name:
                logger.warning(
                    "Knowledge file %s was built with %s, current provider is %s",
                    path, stored_provider, self._embedder.name,
                )
            for entry in entries:
                if entry.embedding is not None and self._dimension is None:
                    self._dimension = len(entry.embedding)
            self._collections[collection] = entries
            logger.debug("Loaded %d entries into %s", len(entries), collection.value)

    def _persist(self, collection: Collection) -> None:
        if self._storage_dir is None:
            return
        self._storage_dir.mkdir(parents=True, exist_ok=True)
        path = self._collection_path(collection)
        payload = {
            "collection": collection.value,
            "provider": self._embedder.name,
            "dimension": self._dimension,
            "entries": [entry.to_dict() for entry in self._collections[collection]],
        }
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(payload), encoding="utf-8")
        os.replace(tmp, path)

    # ── Writes ───────────────────────────────────────────────────────

    async def add(self, collection: Collection | str, entry: KnowledgeEntry) -> KnowledgeEntry:
        """Upsert ``entry`` by id, embedding its text unless a vector is supplied.

        Raises EmbeddingError when the embedding service cannot be reached and
        ValueError when the vector dimension does not match the store.
        """
        collection = Collection(collection)
        embedding = entry.embedding
        if embedding is None:
            embedding = await self._embedder.embed(entry.text)
        embedding = [float(x) for x in embedding]

        async with self._lock:
            if self._dimension is None:
                self._dimension = len(embedding)
            elif len(embedding) != self._dimension:
                raise ValueError(
                    f"Embedding dimension {len(embedding)} does not match store dimension {self._dimension}"
                )
            stored = KnowledgeEntry(id=entry.id, text=entry.text, tags=dict(entry.tags), embedding=embedding)
            entries = self._collections[collection]
            for index, existing in enumerate(entries):
                if existing.id == stored.id:
                    entries[index] = stored
                    break
            else:
                entries.append(stored)
            self._persist(collection)
        return stored

    async def clear(self, collection: Collection | str | None = None) -> None:
        """Remove all entries from one collection (or all of them). Idempotent."""
        targets = list(Collection) if collection is None else [Collection(collection)]
        async with self._lock:
            for target in targets:
                self._collections[target] = []
                self._persist(target)
            if all(not entries for entries in self._collections.values()):
                self._dimension = None

    # ── Reads ────────────────────────────────────────────────────────

    def entries(self, collection: Collection | str) -> list[KnowledgeEntry]:
        return list(self._collections[Collection(collection)])

    async def search(
        self,
        collection: Collection | str,
        query: str,
        k: int,
        where: TagFilter | None = None,
    ) -> list[SearchHit]:
        """Return up to ``k`` hits ordered by descending cosine similarity.

        Ties keep insertion order. An empty (or fully filtered) collection
        returns [] without calling the embedding service.
        """
        if k <= 0:
            return []
        candidates = [e for e in self._collections[Collection(collection)] if _matches(e, where)]
        candidates = [e for e in candidates if e.embedding is not None]
        if not candidates:
            return []

        query_vec = np.asarray(await self._embedder.embed(query), dtype=np.float64)
        matrix = np.asarray([e.embedding for e in candidates], dtype=np.float64)
        if matrix.shape[1] != query_vec.shape[0]:
            raise ValueError(
                f"Query embedding dimension {query_vec.shape[0]} does not match store dimension {matrix.shape[1]}"
            )

        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query_vec)
        dots = matrix @ query_vec
        safe = np.where(norms == 0, 1.0, norms)
        sims = np.where(norms == 0, 0.0, dots / safe)
        sims = np.clip(sims, -1.0, 1.0)

        order = np.argsort(-sims, kind="stable")[:k]
        return [SearchHit(entry=candidates[i], similarity=float(sims[i])) for i in order]

    def stats(self) -> dict[str, Any]:
        counts = {c.value: len(entries) for c, entries in self._collections.items()}
        return {
            "collections": counts,
            "total": sum(counts.values()),
            "dimension": self._dimension,
            "provider": self._embedder.name,
            "storage_dir": str(self._storage_dir) if self._storage_dir else None,
        }
