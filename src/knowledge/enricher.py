"""Retrieval enrichment: turn a command into knowledge context for the planner."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

from core.errors import EmbeddingError

from .store import Collection, KnowledgeStore, SearchHit

logger = logging.getLogger(__name__)

UI_PATTERN_K = 3
MATERIAL_K = 2

MATERIAL_KEYWORDS = frozenset({
    "material", "color", "glass", "metal", "texture", "appearance", "style",
})

NO_CONTEXT_SUMMARY = "No relevant context found in knowledge base."


@dataclass
class EnrichmentResult:
    ui_patterns: list[SearchHit] = field(default_factory=list)
    materials: list[SearchHit] = field(default_factory=list)
    summary: str = NO_CONTEXT_SUMMARY

    @property
    def is_empty(self) -> bool:
        return not self.ui_patterns and not self.materials


def wants_materials(command: str) -> bool:
    lowered = command.lower()
    return any(keyword in lowered for keyword in MATERIAL_KEYWORDS)


def build_summary(ui_patterns: list[SearchHit], materials: list[SearchHit]) -> str:
    if not ui_patterns and not materials:
        return NO_CONTEXT_SUMMARY

    parts: list[str] = []
    if ui_patterns:
        parts.append("UI Patterns:")
        for i, hit in enumerate(ui_patterns, 1):
            selector = hit.entry.tags.get("selector", "n/a")
            parts.append(f"  {i}. {hit.entry.text} (selector: {selector})")

    if materials:
        if parts:
            parts.append("")
        parts.append("Saved Materials:")
        for i, hit in enumerate(materials, 1):
            tags = hit.entry.tags
            name = tags.get("name", hit.entry.id)
            mtype = tags.get("type", "unknown")
            color = tags.get("color") or "n/a"
            parts.append(f"  {i}. {name}: {mtype} material (color: {color})")

    return "\n".join(parts)


class RetrievalEnricher:
    """Queries the knowledge store and builds a deterministic context summary."""

    def __init__(self, store: KnowledgeStore):
        self.store = store

    async def _search(self, collection: Collection, command: str, k: int, where=None) -> list[SearchHit]:
        try:
            return await self.store.search(collection, command, k, where=where)
        except (EmbeddingError, ValueError) as exc:
            # ValueError: store vectors came from a different embedding provider.
            logger.warning("Knowledge lookup in %s skipped: %s", collection.value, exc)
            return []

    async def enrich(self, command: str, page_hint: str | None = None) -> EnrichmentResult:
        """Never raises on an empty store; embedding outages and provider mismatches degrade to no context."""
        where = {"page": (page_hint, "all")} if page_hint else None
        ui_hits = await self._search(Collection.UI_PATTERNS, command, UI_PATTERN_K, where)

        material_hits: list[SearchHit] = []
        if wants_materials(command):
            material_hits = await self._search(Collection.MATERIALS, command, MATERIAL_K)

        summary = build_summary(ui_hits, material_hits)
        logger.debug(
            "Enriched command with %d UI patterns and %d materials", len(ui_hits), len(material_hits)
        )
        return EnrichmentResult(ui_patterns=ui_hits, materials=material_hits, summary=summary)
