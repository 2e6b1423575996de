"""Shared utility functions for memory-bank."""

from __future__ import annotations

import hashlib
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

import numpy as np

_clock_lock = threading.Lock()
_last_timestamp: datetime | None = None


def now_iso() -> str:
    """Current UTC timestamp as ISO string, strictly increasing within the process."""
    global _last_timestamp
    with _clock_lock:
        now = datetime.now(timezone.utc)
        if _last_timestamp is not None and now <= _last_timestamp:
            now = _last_timestamp + timedelta(microseconds=1)
        _last_timestamp = now
        return now.isoformat(timespec="microseconds")


def generate_id() -> str:
    """UUID hex identifier for a new entry."""
    return uuid.uuid4().hex


def content_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def escape_filter_value(value: str) -> str:
    """Escape single quotes in filter values to prevent injection."""
    return value.replace("'", "''")


def _sql_literal(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return f"'{escape_filter_value(str(value))}'"


def build_filter(**must: Any) -> str | None:
    """Conjunctive "must match" filter over payload columns.

    None values are skipped; list/tuple/set values match any of their members.

        build_filter(project="p", kind=["decisionLog", "progress"])
        -> "project = 'p' AND kind IN ('decisionLog', 'progress')"
    """
    clauses = []
    for column, value in must.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple, set, frozenset)):
            members = ", ".join(_sql_literal(v) for v in sorted(value))
            clauses.append(f"{column} IN ({members})")
        else:
            clauses.append(f"{column} = {_sql_literal(value)}")
    return " AND ".join(clauses) if clauses else None


def fit_dimension(values: Any, dimension: int) -> list[float]:
    """Truncate or zero-pad to `dimension`, then L2-normalize."""
    embedding = np.asarray(values, dtype=float)
    if len(embedding) > dimension:
        embedding = embedding[:dimension]
    elif len(embedding) < dimension:
        embedding = np.concatenate([embedding, np.zeros(dimension - len(embedding))])
    norm = np.linalg.norm(embedding)
    return (embedding / norm).tolist() if norm > 0 else embedding.tolist()


def mean_vector(vectors: list[list[float]]) -> list[float]:
    """Element-wise arithmetic mean of equally sized vectors."""
    if len(vectors) == 1:
        return list(vectors[0])
    return np.mean(np.asarray(vectors, dtype=float), axis=0).tolist()
