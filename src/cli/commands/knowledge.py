"""Knowledge base CLI commands."""
from __future__ import annotations

import asyncio
from typing import Optional

import click

from cli.utils.config import get_config
from cli.utils.errors import handle_command_errors
from cli.utils.output import format_output, print_info, print_success
from core.config import cfg
from knowledge.embeddings import build_embedding_provider
from knowledge.enricher import RetrievalEnricher
from knowledge.seed_data import seed_knowledge_store
from knowledge.store import Collection, KnowledgeStore

COLLECTION_CHOICES = click.Choice([c.value for c in Collection])


def _open_store() -> KnowledgeStore:
    ctx = click.get_current_context()
    provider = ctx.meta.get("scene_pilot.embeddings")
    return KnowledgeStore(build_embedding_provider(provider), cfg.knowledge_dir)


@click.group()
@click.option(
    "--embeddings",
    type=click.Choice(["openai", "hash"]),
    default=None,
    help="Embedding provider (defaults to SCENE_PILOT_EMBEDDINGS or openai).",
)
@click.pass_context
def kb(ctx: click.Context, embeddings: Optional[str]):
    """Knowledge base - seed, search, inspect UI patterns and materials."""
    ctx.meta["scene_pilot.embeddings"] = embeddings


@kb.command("seed")
@click.option("--clear", is_flag=True, help="Clear existing entries before seeding.")
@handle_command_errors
def seed(clear: bool):
    """Load the built-in UI patterns and material presets.

    \b
    Examples:
        scene-pilot kb seed
        scene-pilot kb --embeddings hash seed --clear
    """
    config = get_config()
    store = _open_store()
    result = asyncio.run(seed_knowledge_store(store, clear=clear))
    click.echo(format_output(result, config.format))
    if result["seeded"]:
        print_success(f"Seeded {result['ui_patterns']} UI patterns and {result['materials']} materials")
    else:
        print_info("Knowledge base already populated; use --clear to reseed")


@kb.command("stats")
@handle_command_errors
def stats():
    """Show entry counts per collection."""
    config = get_config()
    click.echo(format_output(_open_store().stats(), config.format))


@kb.command("search")
@click.argument("query")
@click.option("--collection", "-c", type=COLLECTION_CHOICES, default=None,
              help="Search one collection; omit to run the planner enrichment.")
@click.option("--k", "-k", "k", default=3, type=int, help="Number of results.")
@click.option("--page", "-p", default=None, help="Current page hint (e.g. scene-editor).")
@handle_command_errors
def search(query: str, collection: Optional[str], k: int, page: Optional[str]):
    """Search the knowledge base.

    \b
    Examples:
        scene-pilot kb search "make it look like glass"
        scene-pilot kb search "open a project" --collection ui_patterns --k 5
    """
    config = get_config()
    store = _open_store()
    if collection is None:
        result = asyncio.run(RetrievalEnricher(store).enrich(query, page))
        if config.format == "json":
            click.echo(format_output({
                "summary": result.summary,
                "ui_patterns": [h.entry.id for h in result.ui_patterns],
                "materials": [h.entry.id for h in result.materials],
            }, "json"))
        else:
            click.echo(result.summary)
        return

    where = {"page": (page, "all")} if page else None
    hits = asyncio.run(store.search(collection, query, k, where=where))
    rows = [
        {"id": h.entry.id, "text": h.entry.text, "similarity": round(h.similarity, 4),
         "distance": round(h.distance, 4), "tags": h.entry.tags}
        for h in hits
    ]
    click.echo(format_output({"collection": collection, "results": rows}, config.format))


@kb.command("clear")
@click.option("--collection", "-c", type=COLLECTION_CHOICES, default=None, help="Collection to clear (default: all).")
@click.confirmation_option(prompt="Remove knowledge base entries?")
@handle_command_errors
def clear(collection: Optional[str]):
    """Remove entries from the knowledge base."""
    asyncio.run(_open_store().clear(collection))
    print_success(f"Cleared {collection or 'all collections'}")
