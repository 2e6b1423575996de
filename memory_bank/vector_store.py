"""LanceDB-backed vector store: one table ("collection") per project."""

from __future__ import annotations

import asyncio
import re
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any

import lancedb
import pyarrow as pa

from .config import CONFIG, Config
from .errors import StoreUnavailableError, ValidationError
from .models import point_model

_COLLECTION_NAME = re.compile(r"^[A-Za-z0-9_.-]+$")


class VectorStore:
    """Similarity search over per-project LanceDB tables.

    Blocking LanceDB calls run in worker threads. Table open/create and writes are
    guarded by an RLock, so concurrent first touches create a table once.
    Any LanceDB or filesystem failure surfaces as StoreUnavailableError.
    """

    def __init__(
        self,
        db_path: Path | str = CONFIG.db_path,
        dimension: int = CONFIG.embedding_dim,
        prefix: str = CONFIG.collection_prefix,
    ) -> None:
        self.db_path = Path(db_path)
        self.dimension = dimension
        self.prefix = prefix
        self.model = point_model(dimension)
        self.schema: pa.Schema = self.model.to_arrow_schema()
        self._db: lancedb.DBConnection | None = None
        self._tables: dict[str, lancedb.table.Table] = {}
        self._lock = threading.RLock()

    @classmethod
    def from_config(cls, config: Config) -> VectorStore:
        return cls(config.db_path, config.embedding_dim, config.collection_prefix)

    def collection_name(self, project: str) -> str:
        name = f"{self.prefix}{project}"
        if not project or not _COLLECTION_NAME.match(name):
            raise ValidationError(
                f"Invalid project name '{project}': use letters, digits, '_', '-' or '.'"
            )
        return name

    # -- sync internals (run in threads) ------------------------------------

    def _get_db(self) -> lancedb.DBConnection:
        if self._db is None:
            with self._lock:
                if self._db is None:
                    self.db_path.mkdir(parents=True, exist_ok=True)
                    self._db = lancedb.connect(str(self.db_path))
        return self._db

    def _open_or_create(self, name: str, seed: Callable[[], list[dict[str, Any]]]) -> bool:
        """Open `name`, creating and seeding it on first touch. True if created."""
        if name in self._tables:
            return False
        with self._lock:
            if name in self._tables:  # Double-check after acquiring lock
                return False
            db = self._get_db()
            try:
                self._tables[name] = db.open_table(name)
                return False
            except (ValueError, FileNotFoundError):  # not created yet
                pass
            table = db.create_table(name, schema=self.model)
            rows = seed()
            if rows:
                table.add([self.model(**row).model_dump() for row in rows])
            self._tables[name] = table
            return True

    def _table(self, name: str) -> lancedb.table.Table:
        table = self._tables.get(name)
        if table is None:
            with self._lock:
                table = self._tables.get(name)
                if table is None:
                    table = self._get_db().open_table(name)
                    self._tables[name] = table
        return table

    def _to_arrow(self, rows: list[dict[str, Any]]) -> pa.Table:
        return pa.Table.from_pylist([self.model(**row).model_dump() for row in rows], schema=self.schema)

    def _upsert(self, name: str, rows: list[dict[str, Any]]) -> None:
        data = self._to_arrow(rows)
        # One writer per process; concurrent merge_insert commits can conflict.
        with self._lock:
            (
                self._table(name)
                .merge_insert("id")
                .when_matched_update_all()
                .when_not_matched_insert_all()
                .execute(data)
            )

    def _search(self, name: str, vector: list[float], where: str | None, limit: int) -> list[dict[str, Any]]:
        query = self._table(name).search(vector, vector_column_name="vector").distance_type("cosine")
        if where:
            query = query.where(where, prefilter=True)
        return query.limit(limit).to_list()

    def _scan(self, name: str, where: str | None, limit: int) -> list[dict[str, Any]]:
        table = self._table(name)
        # Storage order is not time order: read every match, then take the newest.
        total = table.count_rows(where) if where else table.count_rows()
        if total == 0:
            return []
        query = table.search()
        if where:
            query = query.where(where)
        rows = query.limit(total).to_list()
        rows.sort(key=lambda r: r["timestamp"], reverse=True)
        return rows[:limit]

    async def _run(self, action: str, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, *args)
        except ValidationError:
            raise
        except Exception as e:
            raise StoreUnavailableError(f"Vector store {action} failed: {e}") from e

    # -- async API -----------------------------------------------------------

    async def ensure_collection(self, project: str, seed: Callable[[], list[dict[str, Any]]]) -> bool:
        """Lazily create the project's collection; True if this call created it."""
        name = self.collection_name(project)
        if name in self._tables:
            return False
        return await self._run("create", self._open_or_create, name, seed)

    async def upsert(self, project: str, rows: list[dict[str, Any]]) -> None:
        if rows:
            await self._run("upsert", self._upsert, self.collection_name(project), rows)

    async def search(
        self, project: str, vector: list[float], where: str | None, limit: int
    ) -> list[dict[str, Any]]:
        """Nearest neighbours by cosine distance, closest first."""
        return await self._run("search", self._search, self.collection_name(project), vector, where, limit)

    async def scan(self, project: str, where: str | None, limit: int) -> list[dict[str, Any]]:
        """Filtered rows without a query vector, newest first."""
        return await self._run("scan", self._scan, self.collection_name(project), where, limit)
