"""Project memory: write/query entries and keep versioned structured contexts."""

from __future__ import annotations

import copy
import json
import sys
from typing import Any

from .cache import CacheRegistry, context_key, embedding_key, query_key
from .config import CONFIG, Config
from .embeddings import EmbeddingGateway, LocalEmbeddingBackend
from .errors import ValidationError
from .models import (
    CONTEXT_HISTORY,
    DELETE_SENTINEL,
    PAYLOAD_FIELDS,
    STRUCTURED_CONTEXT_KINDS,
    VALID_KINDS,
    ContextHistoryEntry,
    MemoryEntry,
    SearchHit,
)
from .utils import build_filter, generate_id, now_iso
from .vector_store import VectorStore


def validate_kind(kind: str) -> str:
    if kind not in VALID_KINDS:
        raise ValidationError(f"Invalid memory type '{kind}'. Valid: {sorted(VALID_KINDS)}")
    return kind


def validate_context_kind(context_kind: str) -> str:
    if context_kind not in STRUCTURED_CONTEXT_KINDS:
        raise ValidationError(
            f"Invalid structured context type '{context_kind}'. Valid: {sorted(STRUCTURED_CONTEXT_KINDS)}"
        )
    return context_kind


class MemoryStore:
    """Owns the project -> collection mapping and every read/write on it.

    Entries are never updated in place: a structured context "changes" by
    writing a newer structured entry of the same kind plus one history entry.
    Reads of a structured context always take the newest one.
    """

    def __init__(
        self,
        vectors: VectorStore,
        embedder: EmbeddingGateway,
        caches: CacheRegistry | None = None,
        config: Config = CONFIG,
    ) -> None:
        self.vectors = vectors
        self.embedder = embedder
        self.config = config
        self.caches = caches or CacheRegistry(config)
        self._placeholder_embedder = LocalEmbeddingBackend(vectors.dimension)

    # =========================================================================
    # Collections
    # =========================================================================

    def _seed_rows(self, project: str) -> list[dict[str, Any]]:
        timestamp = now_iso()
        rows = []
        for kind in sorted(VALID_KINDS):
            content = f"Initial placeholder for {kind}"
            rows.append(
                {
                    "id": generate_id(),
                    "vector": self._placeholder_embedder.vector(content),
                    "kind": kind,
                    "content": content,
                    "timestamp": timestamp,
                    "project": project,
                    "placeholder": True,
                }
            )
        return rows

    async def ensure_project(self, project: str) -> str:
        """Create the project's collection on first touch; returns its name."""
        created = await self.vectors.ensure_collection(project, lambda: self._seed_rows(project))
        if created:
            print(f"[memory-bank] Created collection {self.vectors.collection_name(project)}", file=sys.stderr)
        return self.vectors.collection_name(project)

    # =========================================================================
    # Embedding
    # =========================================================================

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        """Cache-checked embeddings; only distinct uncached texts reach the gateway."""
        results: dict[str, list[float]] = {}
        missing: list[str] = []
        for text in texts:
            if text in results or text in missing:
                continue
            cached = self.caches.embeddings.get(embedding_key(text))
            if cached is not None:
                results[text] = cached
            else:
                missing.append(text)
        if missing:
            for text, vector in zip(missing, await self.embedder.embed_texts(missing)):
                self.caches.embeddings.set(embedding_key(text), vector)
                results[text] = vector
        return [results[text] for text in texts]

    async def embed(self, text: str) -> list[float]:
        return (await self.embed_many([text]))[0]

    # =========================================================================
    # Writes
    # =========================================================================

    def build_row(
        self,
        project: str,
        kind: str,
        content: str,
        vector: list[float],
        entry_id: str | None = None,
        **fields: Any,
    ) -> dict[str, Any]:
        unknown = set(fields) - set(PAYLOAD_FIELDS) - {"structured"}
        if unknown:
            raise ValidationError(f"Unknown payload fields: {sorted(unknown)}")
        return {
            "id": entry_id or generate_id(),
            "vector": vector,
            "kind": kind,
            "content": content,
            "timestamp": now_iso(),
            "project": project,
            **{name: value for name, value in fields.items() if value is not None},
        }

    async def upsert_entries(self, project: str, rows: list[dict[str, Any]]) -> None:
        """Bulk upsert of prepared rows, then drop the project's cached reads."""
        await self.ensure_project(project)
        await self.vectors.upsert(project, rows)
        self.caches.invalidate_project(project)

    async def write(
        self,
        project: str,
        kind: str,
        content: str,
        entry_id: str | None = None,
        **fields: Any,
    ) -> str:
        """Store one entry and return its id (generated unless given)."""
        validate_kind(kind)
        row = self.build_row(project, kind, content, await self.embed(content), entry_id, **fields)
        await self.upsert_entries(project, [row])
        return row["id"]

    # =========================================================================
    # Reads
    # =========================================================================

    async def search(
        self,
        project: str,
        vector: list[float],
        limit: int,
        **match: Any,
    ) -> list[SearchHit]:
        """Project-scoped similarity search with extra conjunctive matches."""
        await self.ensure_project(project)
        where = build_filter(project=project, placeholder=False, **match)
        rows = await self.vectors.search(project, vector, where, limit)
        return [SearchHit.from_row(row) for row in rows]

    async def query(
        self,
        project: str,
        text: str,
        kind: str | None = None,
        top_k: int | None = None,
    ) -> list[SearchHit]:
        """Ranked entries most similar to `text`, optionally of one kind."""
        top_k = top_k or self.config.default_top_k
        if kind is not None:
            validate_kind(kind)
        key = query_key(project, text, kind, top_k)
        cached = self.caches.queries.get(key)
        if cached is not None:
            return list(cached)
        hits = await self.search(project, await self.embed(text), top_k, kind=kind)
        self.caches.queries.set(key, hits)
        return list(hits)

    async def semantic_search(
        self,
        project: str,
        text: str,
        limit: int = 10,
        kinds: list[str] | None = None,
    ) -> list[SearchHit]:
        """Similarity search across several kinds at once (all kinds if None)."""
        for kind in kinds or ():
            validate_kind(kind)
        return await self.search(project, await self.embed(text), limit, kind=list(kinds) if kinds else None)

    async def scan(self, project: str, limit: int | None = None, **match: Any) -> list[MemoryEntry]:
        """Filtered entries without similarity ranking, newest first."""
        await self.ensure_project(project)
        where = build_filter(project=project, placeholder=False, **match)
        rows = await self.vectors.scan(project, where, limit or self.config.scan_limit)
        return [MemoryEntry.from_row(row) for row in rows]

    # =========================================================================
    # Structured context
    # =========================================================================

    async def write_structured_context(
        self,
        project: str,
        context_kind: str,
        content: dict[str, Any],
        entry_id: str | None = None,
    ) -> str:
        """Replace the whole structured context with `content`."""
        validate_context_kind(context_kind)
        if not isinstance(content, dict):
            raise ValidationError("Structured context content must be a JSON object")
        return await self.write(project, context_kind, json.dumps(content), entry_id, structured=True)

    async def read_structured_context(self, project: str, context_kind: str) -> dict[str, Any]:
        """Current value of the context; {} if it was never written."""
        validate_context_kind(context_kind)
        key = context_key(project, context_kind)
        cached = self.caches.contexts.get(key)
        if cached is not None:
            return copy.deepcopy(cached)

        latest = await self.scan(project, kind=context_kind, structured=True)
        value: dict[str, Any] = {}
        if latest:
            try:
                parsed = json.loads(latest[0].content)
            except json.JSONDecodeError:
                print(f"[memory-bank] Unparseable {context_kind} for {project}, treating as text", file=sys.stderr)
                parsed = {"content": latest[0].content}
            value = parsed if isinstance(parsed, dict) else {"content": parsed}

        self.caches.contexts.set(key, value)
        return copy.deepcopy(value)

    async def patch_structured_context(
        self,
        project: str,
        context_kind: str,
        patch: dict[str, Any],
    ) -> str:
        """Shallow-merge `patch` into the context and record the change.

        A key whose patch value is "__DELETE__" is removed. Returns the id of
        the new structured entry. Two concurrent patches of the same context
        can interleave between read and write; the later write wins.
        """
        validate_context_kind(context_kind)
        if not isinstance(patch, dict):
            raise ValidationError("Patch content must be a JSON object")

        current = await self.read_structured_context(project, context_kind)
        updated = {**current, **patch}
        for key, value in patch.items():
            if value == DELETE_SENTINEL:
                updated.pop(key, None)

        entry_id = await self.write_structured_context(project, context_kind, updated)
        history = {
            "context_kind": context_kind,
            "previous_version": current,
            "new_version": updated,
            "changes": patch,
            "timestamp": now_iso(),
            "entry_id": entry_id,
        }
        await self.write(project, CONTEXT_HISTORY, json.dumps(history), context_kind=context_kind)
        self.caches.contexts.delete(context_key(project, context_kind))
        return entry_id

    async def get_context_history(
        self,
        project: str,
        context_kind: str,
        limit: int = 10,
    ) -> list[ContextHistoryEntry]:
        """The `limit` most recent history entries, oldest first."""
        validate_context_kind(context_kind)
        rows = await self.scan(project, kind=CONTEXT_HISTORY, context_kind=context_kind)
        entries = []
        for row in rows[:limit]:
            try:
                entries.append(ContextHistoryEntry.from_row({"id": row.id, "content": row.content}))
            except (json.JSONDecodeError, KeyError) as e:
                print(f"[memory-bank] Skipping malformed history entry {row.id}: {e}", file=sys.stderr)
        entries.reverse()
        return entries
