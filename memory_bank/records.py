"""Typed record helpers on top of MemoryStore: decisions, progress, patterns, custom data."""

from __future__ import annotations

import json
import sys
from typing import Any

from .cache import patterns_key
from .errors import StoreUnavailableError, ValidationError
from .memory_store import MemoryStore
from .models import CUSTOM_DATA, DECISION, PRIORITIES, PROGRESS, PROGRESS_STATUSES, SYSTEM_PATTERN, SearchHit
from .summarizer import Summarizer, summarize_text
from .utils import generate_id


def _check_status(status: str | None) -> None:
    if status is not None and status not in PROGRESS_STATUSES:
        raise ValidationError(f"Invalid status '{status}'. Valid: {sorted(PROGRESS_STATUSES)}")


def _check_priority(priority: str) -> None:
    if priority not in PRIORITIES:
        raise ValidationError(f"Invalid priority '{priority}'. Valid: {sorted(PRIORITIES)}")


def _hit_dict(hit: SearchHit, **renames: str) -> dict[str, Any]:
    data = {"id": hit.id, "score": hit.score, "content": hit.content, "timestamp": hit.timestamp}
    for old, new in renames.items():
        data[new] = data.pop(old)
    return data


# =============================================================================
# Search with optional digest
# =============================================================================


async def search_memory(
    store: MemoryStore,
    project: str,
    text: str,
    kind: str | None = None,
    top_k: int | None = None,
    summarize: bool = False,
    summarizer: Summarizer | None = None,
) -> dict[str, Any]:
    """Query plus, on request, one summary of all hit contents."""
    hits = await store.query(project, text, kind, top_k)
    result: dict[str, Any] = {"results": hits}
    if summarize and hits:
        joined = "\n\n".join(hit.content for hit in hits)
        result["summary"] = await summarize_text(summarizer, joined)
    return result


# =============================================================================
# Decisions
# =============================================================================


async def log_decision(store: MemoryStore, project: str, text: str, entry_id: str | None = None) -> str:
    return await store.write(project, DECISION, text, entry_id)


async def get_decisions(store: MemoryStore, project: str, limit: int = 10) -> list[dict[str, Any]]:
    """Most recent decisions first."""
    entries = await store.scan(project, limit=None, kind=DECISION)
    return [{"id": e.id, "summary": e.content, "timestamp": e.timestamp} for e in entries[:limit]]


async def search_decisions(store: MemoryStore, project: str, text: str, limit: int = 10) -> list[dict[str, Any]]:
    hits = await store.search(project, await store.embed(text), limit, kind=DECISION)
    return [_hit_dict(hit, content="summary") for hit in hits]


# =============================================================================
# Progress with status
# =============================================================================


async def log_progress(
    store: MemoryStore,
    project: str,
    content: str,
    status: str = "in_progress",
    category: str = "general",
    priority: str = "medium",
    entry_id: str | None = None,
) -> str:
    _check_status(status)
    _check_priority(priority)
    return await store.write(project, PROGRESS, content, entry_id, status=status, category=category, priority=priority)


def _progress_dict(entry_id: str, content: str, timestamp: str, payload: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": entry_id,
        "content": content,
        "status": payload.get("status", "unknown"),
        "category": payload.get("category", "general"),
        "priority": payload.get("priority", "medium"),
        "timestamp": timestamp,
    }


async def get_progress(
    store: MemoryStore, project: str, status: str | None = None, limit: int = 50
) -> list[dict[str, Any]]:
    _check_status(status)
    entries = await store.scan(project, kind=PROGRESS, status=status)
    return [_progress_dict(e.id, e.content, e.timestamp, e.payload) for e in entries[:limit]]


async def search_progress(
    store: MemoryStore, project: str, text: str, status: str | None = None, limit: int = 10
) -> list[dict[str, Any]]:
    _check_status(status)
    hits = await store.search(project, await store.embed(text), limit, kind=PROGRESS, status=status)
    return [
        {**_progress_dict(hit.id, hit.content, hit.timestamp, hit.payload), "score": hit.score}
        for hit in hits
    ]


# =============================================================================
# System patterns
# =============================================================================


async def add_system_patterns(store: MemoryStore, project: str, patterns: list[str]) -> list[str]:
    if not isinstance(patterns, list) or not patterns:
        raise ValidationError("Patterns must be a non-empty list")
    ids = [await store.write(project, SYSTEM_PATTERN, pattern) for pattern in patterns]
    store.caches.patterns.delete(patterns_key(project))
    return ids


async def get_system_patterns(store: MemoryStore, project: str, limit: int = 50) -> list[dict[str, Any]]:
    """Newest patterns first, served from the pattern cache when warm."""
    key = patterns_key(project)
    cached = store.caches.patterns.get(key)
    if cached is None:
        entries = await store.scan(project, kind=SYSTEM_PATTERN)
        cached = [{"id": e.id, "pattern": e.content, "timestamp": e.timestamp} for e in entries]
        store.caches.patterns.set(key, cached)
    return [dict(item) for item in cached[:limit]]


async def search_system_patterns(store: MemoryStore, project: str, text: str, limit: int = 10) -> list[dict[str, Any]]:
    hits = await store.search(project, await store.embed(text), limit, kind=SYSTEM_PATTERN)
    return [_hit_dict(hit, content="pattern") for hit in hits]


# =============================================================================
# Custom data
# =============================================================================


def _encode(data: Any) -> str:
    return data if isinstance(data, str) else json.dumps(data)


def _decode(raw: str | None) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def _custom_dict(entry_id: str, content: str, timestamp: str, payload: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": payload.get("custom_data_id", entry_id),
        "data_type": payload.get("data_type"),
        "data": _decode(content),
        "metadata": _decode(payload.get("metadata")) or {},
        "timestamp": timestamp,
    }


def _latest_per_id(items: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Keep the newest version of each custom data id (input is newest first)."""
    seen: set[str] = set()
    latest = []
    for item in items:
        if item["id"] not in seen:
            seen.add(item["id"])
            latest.append(item)
    return latest


async def store_custom_data(
    store: MemoryStore,
    project: str,
    data: Any,
    data_type: str,
    metadata: dict[str, Any] | None = None,
) -> str:
    """Store an arbitrary JSON-serializable record; metadata["id"] pins its id."""
    metadata = metadata or {}
    # The custom data id is the id of its first version.
    data_id = str(metadata.get("id") or "") or generate_id()
    return await store.write(
        project,
        CUSTOM_DATA,
        _encode(data),
        data_id,
        data_type=data_type,
        metadata=json.dumps(metadata),
        custom_data_id=data_id,
    )


async def update_custom_data(
    store: MemoryStore,
    project: str,
    data_id: str,
    data: Any,
    metadata: dict[str, Any] | None = None,
) -> bool:
    """Write a newer version of `data_id`; reads return the newest version.

    False if no such record exists. Store failures propagate.
    """
    existing = await _find_custom_data(store, project, data_id)
    if existing is None:
        return False
    await store.write(
        project,
        CUSTOM_DATA,
        _encode(data),
        data_type=existing["data_type"],
        metadata=json.dumps(metadata if metadata is not None else existing["metadata"]),
        custom_data_id=data_id,
    )
    return True


async def query_custom_data(
    store: MemoryStore, project: str, data_type: str | None = None, limit: int = 50
) -> list[dict[str, Any]]:
    entries = await store.scan(project, kind=CUSTOM_DATA, data_type=data_type)
    items = _latest_per_id([_custom_dict(e.id, e.content, e.timestamp, e.payload) for e in entries])
    return items[:limit]


async def get_custom_data(store: MemoryStore, project: str, data_id: str) -> dict[str, Any] | None:
    """Newest version of one record, or None if absent or the store is down."""
    try:
        return await _find_custom_data(store, project, data_id)
    except StoreUnavailableError as e:
        print(f"[memory-bank] get_custom_data degraded to None: {e}", file=sys.stderr)
        return None


async def _find_custom_data(store: MemoryStore, project: str, data_id: str) -> dict[str, Any] | None:
    entries = await store.scan(project, limit=1, kind=CUSTOM_DATA, custom_data_id=data_id)
    if not entries:
        return None
    e = entries[0]
    return _custom_dict(e.id, e.content, e.timestamp, e.payload)


async def search_custom_data(
    store: MemoryStore, project: str, text: str, data_type: str | None = None, limit: int = 10
) -> list[dict[str, Any]]:
    hits = await store.search(project, await store.embed(text), limit, kind=CUSTOM_DATA, data_type=data_type)
    return [
        {**_custom_dict(hit.id, hit.content, hit.timestamp, hit.payload), "score": hit.score}
        for hit in hits
    ]
