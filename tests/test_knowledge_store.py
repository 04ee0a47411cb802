"""Tests for the vector knowledge store and cosine similarity."""
from __future__ import annotations

import json
import math

import pytest

from core.errors import EmbeddingError
from knowledge.embeddings import HashEmbeddingProvider, build_embedding_provider
from knowledge.store import Collection, KnowledgeEntry, KnowledgeStore, SearchHit, cosine_similarity
from tests.test_helpers import FakeEmbeddingProvider


class TestCosineSimilarity:
    def test_identical_vectors(self):
        assert cosine_similarity([1, 2, 3], [1, 2, 3]) == pytest.approx(1.0)

    def test_opposite_vectors(self):
        assert cosine_similarity([1, 0], [-1, 0]) == pytest.approx(-1.0)

    def test_orthogonal_vectors(self):
        assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)

    def test_symmetric(self):
        a, b = [0.3, -1.2, 4.0], [2.0, 0.5, -0.7]
        assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))

    def test_zero_vector_is_zero_not_nan(self):
        result = cosine_similarity([0, 0, 0], [1, 2, 3])
        assert result == 0.0
        assert not math.isnan(result)

    def test_bounded(self):
        for a, b in ([3.0, 4.0], [6.0, 8.0]), ([1, 1e-12], [1, -1e-12]), ([0.1] * 50, [0.1] * 50):
            assert -1.0 <= cosine_similarity(a, b) <= 1.0

    def test_dimension_mismatch(self):
        with pytest.raises(ValueError):
            cosine_similarity([1, 0], [1, 0, 0])


def test_search_hit_distance_bounds():
    entry = KnowledgeEntry(id="a", text="a")
    assert SearchHit(entry, 1.0).distance == pytest.approx(0.0)
    assert SearchHit(entry, -1.0).distance == pytest.approx(2.0)
    assert SearchHit(entry, 0.25).distance == pytest.approx(0.75)


@pytest.mark.asyncio
async def test_search_empty_collection_skips_embedding():
    embedder = FakeEmbeddingProvider()
    store = KnowledgeStore(embedder)

    assert await store.search(Collection.UI_PATTERNS, "anything", 3) == []
    assert embedder.calls == []


@pytest.mark.asyncio
async def test_search_non_positive_k_returns_empty():
    embedder = FakeEmbeddingProvider()
    store = KnowledgeStore(embedder)
    await store.add(Collection.MATERIALS, KnowledgeEntry(id="m", text="glass", embedding=[1.0, 0.0, 0.0]))

    assert await store.search(Collection.MATERIALS, "glass", 0) == []
    assert await store.search(Collection.MATERIALS, "glass", -2) == []
    assert embedder.calls == []


@pytest.mark.asyncio
async def test_search_orders_by_similarity_and_limits_k():
    embedder = FakeEmbeddingProvider(vectors={"query": [1.0, 0.0, 0.0]})
    store = KnowledgeStore(embedder)
    await store.add("ui_patterns", KnowledgeEntry(id="far", text="far", embedding=[0.0, 1.0, 0.0]))
    await store.add("ui_patterns", KnowledgeEntry(id="near", text="near", embedding=[0.9, 0.1, 0.0]))
    await store.add("ui_patterns", KnowledgeEntry(id="exact", text="exact", embedding=[2.0, 0.0, 0.0]))

    hits = await store.search(Collection.UI_PATTERNS, "query", 2)

    assert [h.entry.id for h in hits] == ["exact", "near"]
    sims = [h.similarity for h in hits]
    assert sims == sorted(sims, reverse=True)


@pytest.mark.asyncio
async def test_search_ties_keep_insertion_order():
    embedder = FakeEmbeddingProvider(default=[1.0, 1.0])
    store = KnowledgeStore(embedder)
    for pid in ("first", "second", "third"):
        await store.add(Collection.UI_PATTERNS, KnowledgeEntry(id=pid, text=pid, embedding=[1.0, 1.0]))

    hits = await store.search(Collection.UI_PATTERNS, "q", 3)

    assert [h.entry.id for h in hits] == ["first", "second", "third"]


@pytest.mark.asyncio
async def test_search_filter_with_no_candidates_skips_embedding():
    embedder = FakeEmbeddingProvider()
    store = KnowledgeStore(embedder)
    await store.add(Collection.UI_PATTERNS, KnowledgeEntry(
        id="lib", text="library", tags={"page": "library"}, embedding=[1.0, 0.0, 0.0]))

    hits = await store.search(Collection.UI_PATTERNS, "q", 3, where={"page": "homepage"})

    assert hits == []
    assert embedder.calls == []


@pytest.mark.asyncio
async def test_search_filter_accepts_multiple_values():
    store = KnowledgeStore(FakeEmbeddingProvider())
    for pid, page in (("a", "homepage"), ("b", "all"), ("c", "library")):
        await store.add(Collection.UI_PATTERNS, KnowledgeEntry(
            id=pid, text=pid, tags={"page": page}, embedding=[1.0, 0.0, 0.0]))

    hits = await store.search(Collection.UI_PATTERNS, "q", 5, where={"page": ("homepage", "all")})

    assert sorted(h.entry.id for h in hits) == ["a", "b"]


@pytest.mark.asyncio
async def test_add_upserts_by_id_in_place():
    store = KnowledgeStore(FakeEmbeddingProvider())
    await store.add(Collection.MATERIALS, KnowledgeEntry(id="a", text="one", embedding=[1.0, 0.0, 0.0]))
    await store.add(Collection.MATERIALS, KnowledgeEntry(id="b", text="two", embedding=[0.0, 1.0, 0.0]))
    await store.add(Collection.MATERIALS, KnowledgeEntry(id="a", text="updated", embedding=[0.0, 0.0, 1.0]))

    entries = store.entries(Collection.MATERIALS)
    assert [e.id for e in entries] == ["a", "b"]
    assert entries[0].text == "updated"


@pytest.mark.asyncio
async def test_add_embeds_text_when_no_vector_given():
    embedder = FakeEmbeddingProvider(vectors={"hello": [0.0, 1.0, 0.0]})
    store = KnowledgeStore(embedder)

    stored = await store.add(Collection.UI_PATTERNS, KnowledgeEntry(id="x", text="hello"))

    assert embedder.calls == ["hello"]
    assert stored.embedding == [0.0, 1.0, 0.0]


@pytest.mark.asyncio
async def test_add_rejects_dimension_mismatch():
    store = KnowledgeStore(FakeEmbeddingProvider())
    await store.add(Collection.UI_PATTERNS, KnowledgeEntry(id="a", text="a", embedding=[1.0, 0.0, 0.0]))

    with pytest.raises(ValueError):
        await store.add(Collection.MATERIALS, KnowledgeEntry(id="b", text="b", embedding=[1.0, 0.0]))


@pytest.mark.asyncio
async def test_add_propagates_embedding_error():
    embedder = FakeEmbeddingProvider()
    embedder.error = EmbeddingError("offline")
    store = KnowledgeStore(embedder)

    with pytest.raises(EmbeddingError):
        await store.add(Collection.UI_PATTERNS, KnowledgeEntry(id="a", text="a"))
    assert store.stats()["total"] == 0


@pytest.mark.asyncio
async def test_clear_is_idempotent_and_stats_track_counts():
    store = KnowledgeStore(FakeEmbeddingProvider())
    await store.add(Collection.UI_PATTERNS, KnowledgeEntry(id="a", text="a", embedding=[1.0, 0.0, 0.0]))
    await store.add(Collection.MATERIALS, KnowledgeEntry(id="m", text="m", embedding=[1.0, 0.0, 0.0]))
    assert store.stats()["collections"] == {"ui_patterns": 1, "materials": 1}

    await store.clear(Collection.MATERIALS)
    await store.clear(Collection.MATERIALS)
    assert store.stats()["collections"] == {"ui_patterns": 1, "materials": 0}

    await store.clear()
    assert store.stats()["total"] == 0
    assert store.dimension is None


@pytest.mark.asyncio
async def test_persists_collections_to_disk(tmp_path):
    embedder = FakeEmbeddingProvider()
    store = KnowledgeStore(embedder, tmp_path)
    await store.add(Collection.MATERIALS, KnowledgeEntry(
        id="glass", text="Glass", tags={"type": "glass"}, embedding=[0.5, 0.5, 0.0]))

    payload = json.loads((tmp_path / "materials.json").read_text(encoding="utf-8"))
    assert payload["entries"][0]["id"] == "glass"

    reloaded = KnowledgeStore(embedder, tmp_path)
    assert [e.id for e in reloaded.entries(Collection.MATERIALS)] == ["glass"]
    assert reloaded.dimension == 3


@pytest.mark.asyncio
async def test_hash_embeddings_rank_shared_words_higher():
    store = KnowledgeStore(HashEmbeddingProvider())
    await store.add(Collection.UI_PATTERNS, KnowledgeEntry(id="export", text="Open export menu to export scene"))
    await store.add(Collection.UI_PATTERNS, KnowledgeEntry(id="remix", text="Remix a community project"))

    hits = await store.search(Collection.UI_PATTERNS, "export the scene", 1)

    assert hits[0].entry.id == "export"


def test_hash_embedding_is_deterministic():
    provider = HashEmbeddingProvider(dimension=64)
    assert provider.embed_sync("Glass Material") == provider.embed_sync("glass material")
    assert len(provider.embed_sync("anything")) == 64


def test_build_embedding_provider_rejects_unknown():
    assert build_embedding_provider("hash").name.startswith("hash")
    with pytest.raises(ValueError):
        build_embedding_provider("nope")
