"""Batch writes, queries and structured-context updates."""

from __future__ import annotations

import asyncio
import sys
from dataclasses import dataclass, field
from typing import Any

from .errors import StoreUnavailableError, ValidationError
from .memory_store import MemoryStore, validate_context_kind, validate_kind
from .models import SearchHit


@dataclass(frozen=True, slots=True)
class BatchEntry:
    kind: str
    content: str
    entry_id: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BatchEntry:
        content = data.get("content")
        if not isinstance(content, str) or not content:
            raise ValidationError("Each batch entry needs non-empty string 'content'")
        return cls(kind=validate_kind(data.get("kind", "")), content=content, entry_id=data.get("id"))


@dataclass(frozen=True, slots=True)
class BatchQuery:
    text: str
    kind: str | None = None
    top_k: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BatchQuery:
        text = data.get("query", data.get("text"))
        if not isinstance(text, str) or not text:
            raise ValidationError("Each batch query needs a non-empty 'query'")
        kind = data.get("kind")
        if kind is not None:
            validate_kind(kind)
        return cls(text=text, kind=kind, top_k=data.get("top_k"))


@dataclass(frozen=True, slots=True)
class ContextUpdate:
    context_kind: str
    patch: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ContextUpdate:
        patch = data.get("content", data.get("patch"))
        if not isinstance(patch, dict):
            raise ValidationError("Each context update needs an object 'content'")
        return cls(context_kind=validate_context_kind(data.get("type", data.get("context_kind", ""))), patch=patch)


def _coerce(items: list[Any], kind: type) -> list[Any]:
    if not isinstance(items, list):
        raise ValidationError("Batch input must be a list")
    return [item if isinstance(item, kind) else kind.from_dict(item) for item in items]


class BatchCoordinator:
    """Fan-out over MemoryStore.

    Every batch is validated as a whole before any work starts. Writes and
    context updates propagate store failures; queries degrade to one empty
    result list per query.
    """

    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    async def batch_write(self, project: str, entries: list[BatchEntry | dict[str, Any]]) -> list[str]:
        """Embed each distinct content once, then upsert everything in one call."""
        batch = _coerce(entries, BatchEntry)
        if not batch:
            return []
        vectors = await self.store.embed_many([entry.content for entry in batch])
        rows = [
            self.store.build_row(project, entry.kind, entry.content, vector, entry.entry_id)
            for entry, vector in zip(batch, vectors)
        ]
        await self.store.upsert_entries(project, rows)
        return [row["id"] for row in rows]

    async def batch_query(
        self, project: str, queries: list[BatchQuery | dict[str, Any]]
    ) -> list[list[SearchHit]]:
        """Results in input order; all empty if the store is unavailable."""
        batch = _coerce(queries, BatchQuery)
        try:
            return list(
                await asyncio.gather(*(self.store.query(project, q.text, q.kind, q.top_k) for q in batch))
            )
        except StoreUnavailableError as e:
            print(f"[memory-bank] batch_query degraded to empty results: {e}", file=sys.stderr)
            return [[] for _ in batch]

    async def batch_update_structured_context(
        self, project: str, updates: list[ContextUpdate | dict[str, Any]]
    ) -> list[str]:
        """Apply patches one after another; each sees the previous one's result."""
        batch = _coerce(updates, ContextUpdate)
        ids = []
        for update in batch:
            ids.append(await self.store.patch_structured_context(project, update.context_kind, update.patch))
        return ids
