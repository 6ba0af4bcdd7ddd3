"""Reactive in-memory projection of the entity graph.

The store keeps the latest snapshot pushed by the backend change stream.
Derived views are computed from that snapshot on every call; the only cached
structures are the id and incoming-link indexes, which are dropped whenever a
new snapshot arrives.

Mutations go to the backend and are visible here only after the backend
emits the next snapshot.
"""

from collections.abc import Awaitable
from typing import Any, Literal, TypeVar

import structlog

from campaign_graph.backend import Backend, Unsubscribe
from campaign_graph.filters import EntityFilter, apply_filter, matches_search
from campaign_graph.models import (
    Entity,
    Link,
    LinkedEntity,
    RelationshipEdge,
    RelationshipMap,
    RelationshipNode,
    Strength,
)

logger = structlog.get_logger()

T = TypeVar("T")

Direction = Literal["outgoing", "incoming", "both"]


class GraphStore:
    """Entity graph snapshot with neighbor derivation and filtering."""

    def __init__(self, backend: Backend) -> None:
        """Initialize the store.

        Args:
            backend: Storage backend providing snapshots and accepting writes
        """
        self.backend = backend
        self._entities: list[Entity] = []
        self._by_id: dict[str, Entity] | None = None
        self._incoming: dict[str, list[tuple[Entity, Link]]] | None = None
        self._unsubscribe: Unsubscribe | None = None
        self.is_loading = True
        self.error: str | None = None
        self.search_query = ""

    # -- subscription --

    async def load(self) -> None:
        """Subscribe to the backend change stream."""
        if self._unsubscribe is not None:
            return
        self.is_loading = True
        self.error = None
        try:
            self._unsubscribe = await self.backend.subscribe(self._on_snapshot, self._on_error)
        except Exception as e:
            self._on_error(e)

    def close(self) -> None:
        """Stop receiving snapshots."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_snapshot(self, entities: list[Entity]) -> None:
        self._entities = entities
        self._by_id = None
        self._incoming = None
        self.is_loading = False
        self.error = None
        logger.debug("Snapshot received", entities=len(entities))

    def _on_error(self, error: Exception) -> None:
        self.error = str(error) or "Failed to load entities"
        self.is_loading = False
        logger.error("Snapshot subscription failed", error=self.error)

    def _index(self) -> dict[str, Entity]:
        if self._by_id is None:
            self._by_id = {entity.id: entity for entity in self._entities}
        return self._by_id

    def _incoming_index(self) -> dict[str, list[tuple[Entity, Link]]]:
        if self._incoming is None:
            incoming: dict[str, list[tuple[Entity, Link]]] = {}
            for entity in self._entities:
                for link in entity.links:
                    incoming.setdefault(link.target_id, []).append((entity, link))
            self._incoming = incoming
        return self._incoming

    # -- snapshot reads --

    @property
    def entities(self) -> list[Entity]:
        """All entities in the current snapshot."""
        return self._entities

    def set_search_query(self, query: str) -> None:
        """Set the free-text query used by filtered_entities."""
        self.search_query = query

    @property
    def filtered_entities(self) -> list[Entity]:
        """Entities matching the current search query."""
        if not self.search_query:
            return self._entities
        return [e for e in self._entities if matches_search(e, self.search_query)]

    @property
    def entities_by_type(self) -> dict[str, list[Entity]]:
        """Entities grouped by type."""
        grouped: dict[str, list[Entity]] = {}
        for entity in self._entities:
            grouped.setdefault(entity.type, []).append(entity)
        return grouped

    def get_by_id(self, entity_id: str) -> Entity | None:
        """Look up an entity in the snapshot."""
        return self._index().get(entity_id)

    def get_by_type(self, entity_type: str) -> list[Entity]:
        """Entities of one type."""
        return [e for e in self._entities if e.type == entity_type]

    # -- neighbors --

    def get_linked(self, entity_id: str) -> list[Entity]:
        """Entities linked from or to entity_id, deduplicated, in snapshot order."""
        entity = self.get_by_id(entity_id)
        if entity is None:
            return []

        linked_ids = {link.target_id for link in entity.links}
        linked_ids.update(source.id for source, _ in self._incoming_index().get(entity_id, []))
        return [e for e in self._entities if e.id in linked_ids]

    def get_linked_with_relationships(self, entity_id: str) -> list[LinkedEntity]:
        """One entry per link touching entity_id.

        Forward links come first in the entity's own order, then links held by
        other entities in snapshot order. A forward link and an independent
        link coming back from the same entity produce two entries. Forward
        links whose target is missing from the snapshot are skipped.
        """
        entity = self.get_by_id(entity_id)
        if entity is None:
            return []

        index = self._index()
        result: list[LinkedEntity] = []
        for link in entity.links:
            target = index.get(link.target_id)
            if target is not None:
                result.append(LinkedEntity(entity=target, link=link, is_reverse=False))

        for source, link in self._incoming_index().get(entity_id, []):
            if source.id != entity_id:
                result.append(LinkedEntity(entity=source, link=link, is_reverse=True))

        return result

    def get_entities_with_relationship_type(
        self,
        entity_id: str,
        relationship: str,
        direction: Direction = "both",
    ) -> list[Entity]:
        """Entities connected to entity_id by links with the given label."""
        entity = self.get_by_id(entity_id)
        if entity is None:
            return []

        ids: set[str] = set()
        if direction in ("outgoing", "both"):
            ids.update(link.target_id for link in entity.links if link.relationship == relationship)
        if direction in ("incoming", "both"):
            ids.update(
                source.id
                for source, link in self._incoming_index().get(entity_id, [])
                if link.relationship == relationship
            )
        return [e for e in self._entities if e.id in ids]

    # -- filtering and aggregation --

    def filter_entities(self, criteria: EntityFilter) -> list[Entity]:
        """Apply composable filter criteria to the snapshot."""
        return apply_filter(
            self._entities,
            criteria,
            neighbors=self.get_linked,
            known=lambda entity_id: self.get_by_id(entity_id) is not None,
        )

    @property
    def available_relationship_types(self) -> list[str]:
        """Every relationship label used on a forward link, sorted."""
        return sorted({link.relationship for entity in self._entities for link in entity.links})

    def relationship_stats(self) -> dict[str, int]:
        """Number of links per relationship label."""
        stats: dict[str, int] = {}
        for entity in self._entities:
            for link in entity.links:
                stats[link.relationship] = stats.get(link.relationship, 0) + 1
        return stats

    def relationship_map(self) -> RelationshipMap:
        """Nodes and edges of the whole graph, leaving out dangling links."""
        index = self._index()
        counts = {entity.id: 0 for entity in self._entities}
        edges: list[RelationshipEdge] = []
        for entity in self._entities:
            for link in entity.links:
                if link.target_id not in index:
                    continue
                edges.append(
                    RelationshipEdge(
                        id=link.id,
                        source=entity.id,
                        target=link.target_id,
                        relationship=link.relationship,
                        bidirectional=link.bidirectional,
                        reverse_relationship=link.reverse_relationship,
                        strength=link.strength,
                    )
                )
                counts[entity.id] += 1
                if link.target_id != entity.id:
                    counts[link.target_id] += 1

        nodes = [
            RelationshipNode(id=entity.id, name=entity.name, type=entity.type, link_count=counts[entity.id])
            for entity in self._entities
        ]
        return RelationshipMap(nodes=nodes, edges=edges)

    # -- mutations --

    async def _delegate(self, operation: str, call: Awaitable[T]) -> T:
        """Await a backend call, recording failures in error before re-raising.

        A successful call clears any earlier error.
        """
        try:
            result = await call
        except Exception as e:
            self.error = str(e) or f"Failed to {operation}"
            logger.error("Backend operation failed", operation=operation, error=self.error)
            raise
        self.error = None
        return result

    async def create(
        self,
        entity_type: str,
        name: str,
        description: str = "",
        tags: list[str] | None = None,
        fields: dict[str, Any] | None = None,
        notes: str = "",
        metadata: dict[str, Any] | None = None,
    ) -> Entity:
        """Create an entity."""
        return await self._delegate(
            "create entity",
            self.backend.create(
                entity_type,
                name,
                description=description,
                tags=tags,
                fields=fields,
                notes=notes,
                metadata=metadata,
            ),
        )

    async def update(self, entity_id: str, changes: dict[str, Any]) -> None:
        """Update an entity."""
        await self._delegate("update entity", self.backend.update(entity_id, changes))

    async def delete(self, entity_id: str) -> None:
        """Delete an entity."""
        await self._delegate("delete entity", self.backend.delete(entity_id))

    async def add_link(
        self,
        source_id: str,
        target_id: str,
        relationship: str,
        bidirectional: bool = False,
        notes: str | None = None,
        strength: Strength | str | None = None,
        metadata: dict[str, Any] | None = None,
        reverse_relationship: str | None = None,
    ) -> Link:
        """Add a link from source to target."""
        return await self._delegate(
            "add link",
            self.backend.add_link(
                source_id,
                target_id,
                relationship,
                bidirectional=bidirectional,
                notes=notes,
                strength=strength,
                metadata=metadata,
                reverse_relationship=reverse_relationship,
            ),
        )

    async def update_link(self, source_id: str, link_id: str, changes: dict[str, Any]) -> Link:
        """Update a link's mutable fields."""
        return await self._delegate("update link", self.backend.update_link(source_id, link_id, changes))

    async def remove_link(self, source_id: str, target_id: str) -> int:
        """Remove links from source to target."""
        return await self._delegate("remove link", self.backend.remove_link(source_id, target_id))
