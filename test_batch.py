"""Tests for batch writes, queries and context updates."""

import pytest

from conftest import PROJECT, TEST_DIM, make_store
from memory_bank.batch import BatchCoordinator, BatchEntry, BatchQuery
from memory_bank.embeddings import EmbeddingGateway, LocalEmbeddingBackend
from memory_bank.errors import StoreUnavailableError, ValidationError
from memory_bank.models import ACTIVE_CONTEXT, DECISION, PROGRESS


class CountingBackend(LocalEmbeddingBackend):
    name = "counting"

    def __init__(self, dimension):
        super().__init__(dimension)
        self.calls = []

    async def embed(self, text):
        self.calls.append(text)
        return self.vector(text)


@pytest.fixture
def batch(store):
    return BatchCoordinator(store)


class TestBatchWrite:
    async def test_ids_follow_input_order(self, batch, store):
        ids = await batch.batch_write(
            PROJECT,
            [
                {"kind": DECISION, "content": "first"},
                BatchEntry(PROGRESS, "second"),
                {"kind": DECISION, "content": "third", "id": "pinned"},
            ],
        )
        assert len(ids) == 3
        assert ids[2] == "pinned"
        contents = {e.id: e.content for e in await store.scan(PROJECT)}
        assert [contents[i] for i in ids] == ["first", "second", "third"]

    async def test_distinct_texts_are_embedded_once(self, config):
        backend = CountingBackend(TEST_DIM)
        store = make_store(config, gateway=EmbeddingGateway(backend, dimension=TEST_DIM))
        await BatchCoordinator(store).batch_write(
            PROJECT,
            [
                {"kind": DECISION, "content": "same"},
                {"kind": PROGRESS, "content": "same"},
                {"kind": DECISION, "content": "different"},
            ],
        )
        assert sorted(backend.calls) == ["different", "same"]

    async def test_invalid_entry_rejects_whole_batch(self, batch, store):
        with pytest.raises(ValidationError):
            await batch.batch_write(
                PROJECT,
                [{"kind": DECISION, "content": "ok"}, {"kind": "bogus", "content": "bad"}],
            )
        assert await store.scan(PROJECT) == []

    async def test_empty_batch(self, batch):
        assert await batch.batch_write(PROJECT, []) == []

    async def test_store_failure_propagates(self, broken_store):
        with pytest.raises(StoreUnavailableError):
            await BatchCoordinator(broken_store).batch_write(PROJECT, [{"kind": DECISION, "content": "x"}])


class TestBatchQuery:
    async def test_results_follow_input_order(self, batch):
        texts = ["apples", "bananas", "cherries"]
        ids = await batch.batch_write(PROJECT, [{"kind": DECISION, "content": t} for t in texts])
        results = await batch.batch_query(
            PROJECT, [{"query": "cherries"}, BatchQuery("apples"), {"query": "bananas", "top_k": 1}]
        )
        assert [r[0].id for r in results] == [ids[2], ids[0], ids[1]]
        assert len(results[2]) == 1

    async def test_store_unavailable_gives_empty_lists(self, broken_store):
        results = await BatchCoordinator(broken_store).batch_query(PROJECT, [{"query": "a"}, {"query": "b"}])
        assert results == [[], []]

    async def test_invalid_query(self, batch):
        with pytest.raises(ValidationError):
            await batch.batch_query(PROJECT, [{"query": ""}])


class TestBatchContextUpdate:
    async def test_updates_apply_in_order(self, batch, store):
        await batch.batch_update_structured_context(
            PROJECT,
            [
                {"type": ACTIVE_CONTEXT, "content": {"a": 1}},
                {"type": ACTIVE_CONTEXT, "content": {"b": 2}},
                {"type": ACTIVE_CONTEXT, "content": {"a": "__DELETE__"}},
            ],
        )
        assert await store.read_structured_context(PROJECT, ACTIVE_CONTEXT) == {"b": 2}
        assert len(await store.get_context_history(PROJECT, ACTIVE_CONTEXT)) == 3

    async def test_invalid_update_applies_nothing(self, batch, store):
        with pytest.raises(ValidationError):
            await batch.batch_update_structured_context(
                PROJECT,
                [{"type": ACTIVE_CONTEXT, "content": {"a": 1}}, {"type": PROGRESS, "content": {"b": 2}}],
            )
        assert await store.read_structured_context(PROJECT, ACTIVE_CONTEXT) == {}

    async def test_input_must_be_list(self, batch):
        with pytest.raises(ValidationError):
            await batch.batch_update_structured_context(PROJECT, {"type": ACTIVE_CONTEXT})
