"""Shared data models for memory-bank."""

import json
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

from lancedb.pydantic import LanceModel, Vector

# Memory kinds. The first two are the structured context kinds.
PRODUCT_CONTEXT = "productContext"
ACTIVE_CONTEXT = "activeContext"
DECISION = "decisionLog"
PROGRESS = "progress"
SYSTEM_PATTERN = "systemPatterns"
CONTEXT_HISTORY = "contextHistory"
CUSTOM_DATA = "customData"
KNOWLEDGE_LINK = "knowledgeLink"

VALID_KINDS = frozenset(
    {PRODUCT_CONTEXT, ACTIVE_CONTEXT, DECISION, PROGRESS, SYSTEM_PATTERN, CONTEXT_HISTORY, CUSTOM_DATA, KNOWLEDGE_LINK}
)
STRUCTURED_CONTEXT_KINDS = frozenset({PRODUCT_CONTEXT, ACTIVE_CONTEXT})

PROGRESS_STATUSES = frozenset({"pending", "in_progress", "completed", "blocked"})
PRIORITIES = frozenset({"low", "medium", "high", "critical"})
LINK_DIRECTIONS = frozenset({"incoming", "outgoing", "both"})

DELETE_SENTINEL = "__DELETE__"

# Optional payload columns a write may set besides kind/content.
PAYLOAD_FIELDS = (
    "status",
    "category",
    "priority",
    "data_type",
    "source_id",
    "target_id",
    "link_type",
    "description",
    "custom_data_id",
    "context_kind",
    "metadata",
)


@lru_cache(maxsize=None)
def point_model(dimension: int) -> type[LanceModel]:
    """LanceDB row schema for one collection with `dimension`-wide vectors.

    IMPORTANT: Any changes to this schema require migration of existing data.
    """

    class MemoryPoint(LanceModel):
        id: str
        vector: Vector(dimension)  # type: ignore[valid-type]
        kind: str
        content: str
        timestamp: str
        project: str
        structured: bool = False
        placeholder: bool = False
        status: str | None = None
        category: str | None = None
        priority: str | None = None
        data_type: str | None = None
        source_id: str | None = None
        target_id: str | None = None
        link_type: str | None = None
        description: str | None = None
        custom_data_id: str | None = None
        context_kind: str | None = None
        metadata: str | None = None  # JSON object as string

    return MemoryPoint


# =============================================================================
# Values returned to callers
# =============================================================================


@dataclass(frozen=True, slots=True)
class MemoryEntry:
    id: str
    project: str
    kind: str
    content: str
    timestamp: str
    payload: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "MemoryEntry":
        return cls(
            id=row["id"],
            project=row["project"],
            kind=row["kind"],
            content=row["content"],
            timestamp=row["timestamp"],
            payload=_payload(row),
        )


@dataclass(frozen=True, slots=True)
class SearchHit:
    id: str
    score: float
    kind: str
    content: str
    timestamp: str
    structured: bool = False
    payload: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "SearchHit":
        return cls(
            id=row["id"],
            score=1.0 - float(row.get("_distance", 1.0)),
            kind=row["kind"],
            content=row["content"],
            timestamp=row["timestamp"],
            structured=bool(row.get("structured")),
            payload=_payload(row),
        )


@dataclass(frozen=True, slots=True)
class KnowledgeLink:
    id: str
    source_id: str
    target_id: str
    link_type: str
    description: str
    timestamp: str

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "KnowledgeLink":
        return cls(
            id=row["id"],
            source_id=row["source_id"],
            target_id=row["target_id"],
            link_type=row["link_type"],
            description=row.get("description") or "",
            timestamp=row["timestamp"],
        )


@dataclass(frozen=True, slots=True)
class ContextHistoryEntry:
    id: str
    context_kind: str
    previous_version: dict[str, Any]
    new_version: dict[str, Any]
    changes: dict[str, Any]
    timestamp: str
    entry_id: str

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "ContextHistoryEntry":
        data = json.loads(row["content"])
        return cls(
            id=row["id"],
            context_kind=data["context_kind"],
            previous_version=data["previous_version"],
            new_version=data["new_version"],
            changes=data["changes"],
            timestamp=data["timestamp"],
            entry_id=data["entry_id"],
        )


def _payload(row: dict[str, Any]) -> dict[str, Any]:
    return {name: row[name] for name in PAYLOAD_FIELDS if row.get(name) is not None}
