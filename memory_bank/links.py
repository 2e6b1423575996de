"""Typed edges between memory entries."""

from __future__ import annotations

import json
import sys

from .errors import StoreUnavailableError, ValidationError
from .memory_store import MemoryStore
from .models import KNOWLEDGE_LINK, LINK_DIRECTIONS, KnowledgeLink


class KnowledgeLinkIndex:
    """Links are stored once (source -> target) and read in either direction."""

    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    async def create_link(
        self,
        project: str,
        source_id: str,
        target_id: str,
        link_type: str,
        description: str = "",
    ) -> str:
        if not source_id or not target_id or not link_type:
            raise ValidationError("source_id, target_id and link_type are required")
        content = json.dumps(
            {"source_id": source_id, "target_id": target_id, "link_type": link_type, "description": description}
        )
        return await self.store.write(
            project,
            KNOWLEDGE_LINK,
            content,
            source_id=source_id,
            target_id=target_id,
            link_type=link_type,
            description=description,
        )

    async def get_links(
        self,
        project: str,
        entity_id: str,
        link_type: str | None = None,
        direction: str = "both",
    ) -> list[KnowledgeLink]:
        """Links touching `entity_id`, newest first.

        Only the newest `link_candidate_limit` links of the project (and type)
        are considered; older links beyond that window are not returned.
        """
        if direction not in LINK_DIRECTIONS:
            raise ValidationError(f"Invalid direction '{direction}'. Valid: {sorted(LINK_DIRECTIONS)}")

        try:
            candidates = await self.store.scan(
                project,
                limit=self.store.config.link_candidate_limit,
                kind=KNOWLEDGE_LINK,
                link_type=link_type,
            )
        except StoreUnavailableError as e:
            print(f"[memory-bank] get_links degraded to []: {e}", file=sys.stderr)
            return []

        links = []
        for entry in candidates:
            source, target = entry.payload.get("source_id"), entry.payload.get("target_id")
            outgoing = direction in ("outgoing", "both") and source == entity_id
            incoming = direction in ("incoming", "both") and target == entity_id
            if outgoing or incoming:
                links.append(KnowledgeLink.from_row({"id": entry.id, "timestamp": entry.timestamp, **entry.payload}))
        return links
