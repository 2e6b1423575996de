#!/usr/bin/env python3
"""
Tool-level tests for the Memory Bank MCP Server.

Run with: pytest test_server.py -v
"""

import asyncio
import json

import pytest

import memory_bank.server as server_module
from conftest import PROJECT
from memory_bank.server import (
    batch_query,
    batch_update_context,
    batch_write,
    build_services,
    create_knowledge_link,
    get_context,
    get_context_history,
    get_custom_data,
    get_decisions,
    get_knowledge_links,
    get_progress,
    log_decision,
    log_progress,
    memory_health,
    memory_query,
    memory_write,
    store_custom_data,
    summarize_text,
    update_context,
)


@pytest.fixture(autouse=True)
def services(config):
    """Isolated services per test (fresh LanceDB dir, local embeddings)."""
    server_module.set_services(build_services(config))
    yield
    server_module.set_services(None)


# =============================================================================
# Core tools
# =============================================================================


class TestMemoryWrite:
    async def test_write_returns_id(self):
        result = json.loads(await memory_write(PROJECT, "decisionLog", "Use FastMCP"))
        assert isinstance(result, str) and result

    async def test_invalid_kind_is_error_text(self):
        result = await memory_write(PROJECT, "INVALID", "text")
        assert result.startswith("Error:")
        assert "Invalid memory type" in result

    async def test_invalid_project_is_error_text(self):
        result = await memory_write("no spaces allowed", "progress", "text")
        assert result.startswith("Error:")


class TestMemoryQuery:
    async def test_query_finds_written_entry(self):
        entry_id = json.loads(await memory_write(PROJECT, "progress", "Finished the retry module"))
        result = json.loads(await memory_query(PROJECT, "Finished the retry module"))
        assert result["results"][0]["id"] == entry_id
        assert result["results"][0]["kind"] == "progress"

    async def test_query_invalid_kind(self):
        assert (await memory_query(PROJECT, "x", kind="bogus")).startswith("Error:")


class TestContextTools:
    async def test_update_and_read(self):
        assert json.loads(await get_context(PROJECT, "activeContext")) == {}
        await update_context(PROJECT, "activeContext", {"focus": "tests"})
        await update_context(PROJECT, "activeContext", {"blockers": []})
        assert json.loads(await get_context(PROJECT, "activeContext")) == {"focus": "tests", "blockers": []}
        history = json.loads(await get_context_history(PROJECT, "activeContext"))
        assert [h["changes"] for h in history] == [{"focus": "tests"}, {"blockers": []}]

    async def test_wrong_context_kind(self):
        assert (await get_context(PROJECT, "decisionLog")).startswith("Error:")


class TestRecordTools:
    async def test_decisions(self):
        await log_decision(PROJECT, "Store one table per project")
        decisions = json.loads(await get_decisions(PROJECT))
        assert decisions[0]["summary"] == "Store one table per project"
        searched = json.loads(await get_decisions(PROJECT, query="Store one table per project"))
        assert searched[0]["summary"] == "Store one table per project"

    async def test_progress_validation(self):
        assert (await log_progress(PROJECT, "x", status="finished")).startswith("Error:")
        await log_progress(PROJECT, "done thing", status="completed")
        assert len(json.loads(await get_progress(PROJECT, status="completed"))) == 1

    async def test_custom_data(self):
        data_id = json.loads(await store_custom_data(PROJECT, {"k": "v"}, "settings"))
        item = json.loads(await get_custom_data(PROJECT, data_id))
        assert item["data"] == {"k": "v"}
        assert json.loads(await get_custom_data(PROJECT, "missing")) is None

    async def test_summarize_without_summarizer_keeps_text(self):
        assert json.loads(await summarize_text("keep me as is")) == "keep me as is"


class TestLinkTools:
    async def test_create_and_get(self):
        link_id = json.loads(await create_knowledge_link(PROJECT, "A", "B", "depends_on"))
        links = json.loads(await get_knowledge_links(PROJECT, "A", direction="outgoing"))
        assert [link["id"] for link in links] == [link_id]
        assert json.loads(await get_knowledge_links(PROJECT, "A", direction="incoming")) == []

    async def test_bad_direction(self):
        assert (await get_knowledge_links(PROJECT, "A", direction="up")).startswith("Error:")


class TestBatchTools:
    async def test_write_then_query(self):
        ids = json.loads(
            await batch_write(
                PROJECT,
                [{"kind": "decisionLog", "content": "red"}, {"kind": "decisionLog", "content": "blue"}],
            )
        )
        results = json.loads(await batch_query(PROJECT, [{"query": "blue"}, {"query": "red"}]))
        assert [r[0]["id"] for r in results] == [ids[1], ids[0]]

    async def test_context_updates(self):
        await batch_update_context(
            PROJECT,
            [
                {"type": "productContext", "content": {"name": "bank"}},
                {"type": "productContext", "content": {"name": "__DELETE__", "version": 2}},
            ],
        )
        assert json.loads(await get_context(PROJECT, "productContext")) == {"version": 2}


class TestHealthAndConcurrency:
    async def test_health(self):
        health = json.loads(await memory_health())
        assert health["embedding_provider"] == "local"
        assert health["summarizer"] == "none"
        assert set(health["caches"]) == {"embedding_cache", "query_cache", "context_cache", "pattern_cache"}

    async def test_concurrent_writes_to_new_project(self):
        """First-touch collection creation happens once under concurrent writes."""
        topics = ["quantum", "pipelines", "indexes", "protocols", "containers"]
        results = await asyncio.gather(
            *(memory_write("fresh-project", "progress", f"{topic} work item") for topic in topics)
        )
        assert not any(r.startswith("Error:") for r in results)
        found = json.loads(await get_progress("fresh-project"))
        assert len(found) == len(topics)
