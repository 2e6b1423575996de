"""Tests for knowledge links and their direction filters."""

from dataclasses import replace

import pytest

from conftest import PROJECT, make_store
from memory_bank.errors import ValidationError
from memory_bank.links import KnowledgeLinkIndex


@pytest.fixture
async def chain(store):
    """A --depends_on--> B --implements--> C"""
    links = KnowledgeLinkIndex(store)
    ab = await links.create_link(PROJECT, "A", "B", "depends_on", "A needs B")
    bc = await links.create_link(PROJECT, "B", "C", "implements")
    return links, ab, bc


class TestKnowledgeLinks:
    async def test_outgoing(self, chain):
        links, ab, bc = chain
        result = await links.get_links(PROJECT, "B", direction="outgoing")
        assert [(l.id, l.source_id, l.target_id) for l in result] == [(bc, "B", "C")]

    async def test_incoming(self, chain):
        links, ab, bc = chain
        result = await links.get_links(PROJECT, "B", direction="incoming")
        assert [l.id for l in result] == [ab]
        assert result[0].link_type == "depends_on"
        assert result[0].description == "A needs B"

    async def test_both_is_the_default(self, chain):
        links, ab, bc = chain
        result = await links.get_links(PROJECT, "B")
        assert {l.id for l in result} == {ab, bc}

    async def test_link_type_filter(self, chain):
        links, ab, bc = chain
        result = await links.get_links(PROJECT, "B", link_type="implements")
        assert [l.id for l in result] == [bc]

    async def test_unlinked_entity(self, chain):
        links, _, _ = chain
        assert await links.get_links(PROJECT, "Z") == []

    async def test_invalid_direction(self, chain):
        links, _, _ = chain
        with pytest.raises(ValidationError):
            await links.get_links(PROJECT, "B", direction="sideways")

    async def test_links_are_queryable_memories(self, chain, store):
        links, ab, _ = chain
        hits = await store.query(PROJECT, "depends_on", kind="knowledgeLink")
        assert ab in {hit.id for hit in hits}

    async def test_missing_endpoint_is_rejected(self, store):
        with pytest.raises(ValidationError):
            await KnowledgeLinkIndex(store).create_link(PROJECT, "A", "", "depends_on")

    async def test_store_unavailable_degrades_to_empty(self, broken_store):
        assert await KnowledgeLinkIndex(broken_store).get_links(PROJECT, "B") == []


class TestCandidateWindow:
    async def test_newest_links_are_inside_the_window(self, config):
        links = KnowledgeLinkIndex(make_store(replace(config, link_candidate_limit=5)))
        ids = [await links.create_link(PROJECT, f"S{i}", f"T{i}", "relates_to") for i in range(6)]
        result = await links.get_links(PROJECT, "S5", direction="outgoing")
        assert [l.id for l in result] == [ids[5]]
        # The oldest link has aged out of the five-link window.
        assert await links.get_links(PROJECT, "S0") == []
