#!/usr/bin/env python3
"""
Memory Bank MCP Server - per-project semantic memory on LanceDB

Provides persistent, project-scoped memory using:
- FastMCP for clean, idiomatic MCP server patterns
- LanceDB for cosine similarity search, one table per project
- Ollama or Google Gemini embeddings with a deterministic local fallback
- Optional Gemini/Ollama summarization of oversized text and search results
"""

from __future__ import annotations

import asyncio
import json
import sys
import threading
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, is_dataclass
from typing import Any

from mcp.server.fastmcp import FastMCP

from . import records
from . import summarizer as summarizer_module
from .batch import BatchCoordinator
from .cache import CacheRegistry
from .config import CONFIG, Config
from .embeddings import build_embedding_gateway
from .errors import MemoryBankError
from .links import KnowledgeLinkIndex
from .memory_store import MemoryStore
from .summarizer import Summarizer, build_summarizer
from .vector_store import VectorStore

# =============================================================================
# Services
# =============================================================================


@dataclass(slots=True)
class Services:
    config: Config
    store: MemoryStore
    links: KnowledgeLinkIndex
    batch: BatchCoordinator
    summarizer: Summarizer | None


def build_services(config: Config = CONFIG) -> Services:
    """Wire the store, providers and caches for one process."""
    summarizer = build_summarizer(config)
    gateway = build_embedding_gateway(config, summarizer)
    store = MemoryStore(VectorStore.from_config(config), gateway, CacheRegistry(config), config)
    print(
        f"[memory-bank] Embeddings: {gateway.provider_name}, summarizer: "
        f"{summarizer.name if summarizer else 'none'}, db: {config.db_path}",
        file=sys.stderr,
    )
    return Services(config, store, KnowledgeLinkIndex(store), BatchCoordinator(store), summarizer)


_services: Services | None = None
_services_lock = threading.Lock()


def get_services() -> Services:
    global _services
    if _services is None:
        with _services_lock:
            if _services is None:  # Double-check after acquiring lock
                _services = build_services()
    return _services


def set_services(services: Services | None) -> None:
    """Replace the process-wide services (tests, embedding in another app)."""
    global _services
    with _services_lock:
        _services = services


def _default(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    return str(value)


async def _respond(operation: Callable[[Services], Awaitable[Any]]) -> str:
    """Run one operation and render its result (or its error) as tool text."""
    try:
        result = await operation(get_services())
    except MemoryBankError as e:
        return f"Error: {e}"
    return json.dumps(result, indent=2, default=_default)


READ_ONLY = {"readOnlyHint": True, "destructiveHint": False, "idempotentHint": True}
WRITE = {"readOnlyHint": False, "destructiveHint": False, "idempotentHint": False}

# =============================================================================
# FastMCP Server
# =============================================================================

mcp = FastMCP(
    "memory-bank",
    instructions="Per-project memory bank: contexts, decisions, progress, patterns, links and custom data",
)


@mcp.tool(annotations=WRITE)
async def memory_write(project: str, kind: str, content: str, entry_id: str | None = None) -> str:
    """Store one memory entry and return its id.

    Args:
        project: Project name (letters, digits, '_', '-', '.')
        kind: productContext, activeContext, decisionLog, progress, systemPatterns,
              contextHistory, customData or knowledgeLink
        content: Text to store
        entry_id: Optional id; an existing entry with this id is replaced
    """
    return await _respond(lambda s: s.store.write(project, kind, content, entry_id))


@mcp.tool(annotations=READ_ONLY)
async def memory_query(
    project: str,
    query: str,
    kind: str | None = None,
    top_k: int = 5,
    summarize: bool = False,
) -> str:
    """Semantic search in one project, optionally limited to one kind.

    Args:
        project: Project name
        query: Natural language query
        kind: Optional memory kind filter
        top_k: Max results (default 5)
        summarize: Also return an LLM digest of the results
    """
    return await _respond(
        lambda s: records.search_memory(s.store, project, query, kind, top_k, summarize, s.summarizer)
    )


@mcp.tool(annotations=READ_ONLY)
async def summarize_text(text: str) -> str:
    """Condense text with the configured summarizer (returned unchanged if none)."""
    return await _respond(lambda s: summarizer_module.summarize_text(s.summarizer, text))


@mcp.tool(annotations=READ_ONLY)
async def memory_semantic_search(project: str, query: str, limit: int = 10, kinds: list[str] | None = None) -> str:
    """Semantic search across several memory kinds at once (all kinds if omitted)."""
    return await _respond(lambda s: s.store.semantic_search(project, query, limit, kinds))


# -- Structured context ------------------------------------------------------


@mcp.tool(annotations=READ_ONLY)
async def get_context(project: str, context_kind: str) -> str:
    """Current productContext or activeContext as a JSON object ({} if unset)."""
    return await _respond(lambda s: s.store.read_structured_context(project, context_kind))


@mcp.tool(annotations=WRITE)
async def update_context(project: str, context_kind: str, patch: dict[str, Any]) -> str:
    """Merge `patch` into a structured context. A value of "__DELETE__" removes that key."""
    return await _respond(lambda s: s.store.patch_structured_context(project, context_kind, patch))


@mcp.tool(annotations=READ_ONLY)
async def get_context_history(project: str, context_kind: str, limit: int = 10) -> str:
    """Recent changes to a structured context, oldest first."""
    return await _respond(lambda s: s.store.get_context_history(project, context_kind, limit))


# -- Decisions, progress, patterns ---------------------------------------------


@mcp.tool(annotations=WRITE)
async def log_decision(project: str, decision: str) -> str:
    """Record an architectural or product decision."""
    return await _respond(lambda s: records.log_decision(s.store, project, decision))


@mcp.tool(annotations=READ_ONLY)
async def get_decisions(project: str, limit: int = 10, query: str | None = None) -> str:
    """Recent decisions, or the closest matches to `query` when given."""
    if query:
        return await _respond(lambda s: records.search_decisions(s.store, project, query, limit))
    return await _respond(lambda s: records.get_decisions(s.store, project, limit))


@mcp.tool(annotations=WRITE)
async def log_progress(
    project: str,
    content: str,
    status: str = "in_progress",
    category: str = "general",
    priority: str = "medium",
) -> str:
    """Record a progress item.

    Args:
        status: pending, in_progress, completed or blocked
        priority: low, medium, high or critical
    """
    return await _respond(lambda s: records.log_progress(s.store, project, content, status, category, priority))


@mcp.tool(annotations=READ_ONLY)
async def get_progress(project: str, status: str | None = None, query: str | None = None, limit: int = 50) -> str:
    """Progress items, optionally by status; semantic match when `query` is given."""
    if query:
        return await _respond(lambda s: records.search_progress(s.store, project, query, status, limit))
    return await _respond(lambda s: records.get_progress(s.store, project, status, limit))


@mcp.tool(annotations=WRITE)
async def add_system_patterns(project: str, patterns: list[str]) -> str:
    """Record recurring system or code patterns."""
    return await _respond(lambda s: records.add_system_patterns(s.store, project, patterns))


@mcp.tool(annotations=READ_ONLY)
async def get_system_patterns(project: str, limit: int = 50, query: str | None = None) -> str:
    if query:
        return await _respond(lambda s: records.search_system_patterns(s.store, project, query, limit))
    return await _respond(lambda s: records.get_system_patterns(s.store, project, limit))


# -- Knowledge links -----------------------------------------------------------


@mcp.tool(annotations=WRITE)
async def create_knowledge_link(
    project: str, source_id: str, target_id: str, link_type: str, description: str = ""
) -> str:
    """Link two memory entries with a typed edge (e.g. implements, depends_on)."""
    return await _respond(
        lambda s: s.links.create_link(project, source_id, target_id, link_type, description)
    )


@mcp.tool(annotations=READ_ONLY)
async def get_knowledge_links(
    project: str, entity_id: str, link_type: str | None = None, direction: str = "both"
) -> str:
    """Links touching an entry. direction: incoming, outgoing or both."""
    return await _respond(lambda s: s.links.get_links(project, entity_id, link_type, direction))


# -- Custom data ---------------------------------------------------------------


@mcp.tool(annotations=WRITE)
async def store_custom_data(
    project: str, data: Any, data_type: str, metadata: dict[str, Any] | None = None
) -> str:
    """Store arbitrary JSON data under a type; returns its id."""
    return await _respond(lambda s: records.store_custom_data(s.store, project, data, data_type, metadata))


@mcp.tool(annotations=READ_ONLY)
async def get_custom_data(project: str, data_id: str) -> str:
    """Newest version of one custom data record (null if absent)."""
    return await _respond(lambda s: records.get_custom_data(s.store, project, data_id))


@mcp.tool(annotations=READ_ONLY)
async def query_custom_data(
    project: str, data_type: str | None = None, query: str | None = None, limit: int = 50
) -> str:
    """Custom data by type; semantic match when `query` is given."""
    if query:
        return await _respond(lambda s: records.search_custom_data(s.store, project, query, data_type, limit))
    return await _respond(lambda s: records.query_custom_data(s.store, project, data_type, limit))


@mcp.tool(annotations=WRITE)
async def update_custom_data(
    project: str, data_id: str, data: Any, metadata: dict[str, Any] | None = None
) -> str:
    """Write a new version of an existing custom data record."""
    return await _respond(lambda s: records.update_custom_data(s.store, project, data_id, data, metadata))


# -- Batches -------------------------------------------------------------------


@mcp.tool(annotations=WRITE)
async def batch_write(project: str, entries: list[dict[str, Any]]) -> str:
    """Store many entries at once. Each entry: {"kind", "content", optional "id"}."""
    return await _respond(lambda s: s.batch.batch_write(project, entries))


@mcp.tool(annotations=READ_ONLY)
async def batch_query(project: str, queries: list[dict[str, Any]]) -> str:
    """Run many queries at once. Each query: {"query", optional "kind", "top_k"}."""
    return await _respond(lambda s: s.batch.batch_query(project, queries))


@mcp.tool(annotations=WRITE)
async def batch_update_context(project: str, updates: list[dict[str, Any]]) -> str:
    """Apply context patches in order. Each update: {"type", "content"}."""
    return await _respond(lambda s: s.batch.batch_update_structured_context(project, updates))


@mcp.tool(annotations=READ_ONLY)
async def memory_health() -> str:
    """Provider and cache status."""

    async def health(s: Services) -> dict[str, Any]:
        return {
            "db_path": str(s.config.db_path),
            "embedding_provider": s.store.embedder.provider_name,
            "embedding_dim": s.config.embedding_dim,
            "summarizer": s.summarizer.name if s.summarizer else "none",
            "caches": s.store.caches.stats(),
        }

    return await _respond(health)


# =============================================================================
# Server Entry Point
# =============================================================================


async def run_server():
    """Run the MCP server with services built up front."""
    get_services()
    await mcp.run_stdio_async()


def main():
    """Entry point."""
    asyncio.run(run_server())


if __name__ == "__main__":
    main()
