"""Shared fixtures: an isolated LanceDB directory per test, local embeddings only."""

from pathlib import Path

import pytest

from memory_bank.cache import CacheRegistry
from memory_bank.config import Config
from memory_bank.embeddings import build_embedding_gateway
from memory_bank.errors import StoreUnavailableError
from memory_bank.memory_store import MemoryStore
from memory_bank.vector_store import VectorStore

TEST_DIM = 32
PROJECT = "test-project"


class BrokenVectorStore(VectorStore):
    """A store whose every operation fails as if LanceDB were unreachable."""

    async def ensure_collection(self, project, seed):
        self.collection_name(project)
        raise StoreUnavailableError("Vector store create failed: connection refused")

    async def upsert(self, project, rows):
        raise StoreUnavailableError("Vector store upsert failed: connection refused")

    async def search(self, project, vector, where, limit):
        raise StoreUnavailableError("Vector store search failed: connection refused")

    async def scan(self, project, where, limit):
        raise StoreUnavailableError("Vector store scan failed: connection refused")


@pytest.fixture
def config(tmp_path: Path) -> Config:
    return Config(
        db_path=tmp_path / "lancedb",
        embedding_provider="local",
        embedding_dim=TEST_DIM,
        summarizer_provider="none",
    )


def make_store(config: Config, vectors: VectorStore | None = None, gateway=None) -> MemoryStore:
    return MemoryStore(
        vectors or VectorStore.from_config(config),
        gateway or build_embedding_gateway(config),
        CacheRegistry(config),
        config,
    )


@pytest.fixture
def store(config: Config) -> MemoryStore:
    return make_store(config)


@pytest.fixture
def broken_store(config: Config) -> MemoryStore:
    return make_store(config, BrokenVectorStore.from_config(config))
