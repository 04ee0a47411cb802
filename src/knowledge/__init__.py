"""Embedding-backed knowledge store and retrieval enrichment.

The store keeps two collections (UI navigation patterns and material
presets) and the enricher turns nearest-neighbour hits into a compact
summary for the planner.
"""

from .embeddings import EmbeddingProvider, HashEmbeddingProvider, OpenAIEmbeddingProvider, build_embedding_provider
from .enricher import EnrichmentResult, RetrievalEnricher
from .store import Collection, KnowledgeEntry, KnowledgeStore, SearchHit, cosine_similarity

__all__ = [
    "Collection",
    "EmbeddingProvider",
    "EnrichmentResult",
    "HashEmbeddingProvider",
    "KnowledgeEntry",
    "KnowledgeStore",
    "OpenAIEmbeddingProvider",
    "RetrievalEnricher",
    "SearchHit",
    "build_embedding_provider",
    "cosine_similarity",
]
