"""Shared fixtures and helpers for campaign-graph tests."""

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from campaign_graph.backend import Backend, ErrorCallback, SnapshotCallback, Unsubscribe
from campaign_graph.backends.sqlite import SQLiteBackend
from campaign_graph.models import Entity, Link, Strength

DAY_ONE = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_link(
    target_id: str,
    relationship: str,
    link_id: str | None = None,
    target_type: str = "npc",
    bidirectional: bool = False,
    reverse_relationship: str | None = None,
    **extra: Any,
) -> Link:
    """Build a link with a predictable ID."""
    return Link(
        id=link_id or f"link-{target_id}-{relationship}",
        target_id=target_id,
        target_type=target_type,
        relationship=relationship,
        bidirectional=bidirectional,
        reverse_relationship=reverse_relationship,
        **extra,
    )


def make_entity(
    entity_id: str,
    name: str | None = None,
    entity_type: str = "npc",
    links: list[Link] | None = None,
    days: int = 0,
    **extra: Any,
) -> Entity:
    """Build an entity created a number of days after DAY_ONE."""
    created = DAY_ONE + timedelta(days=days)
    return Entity(
        id=entity_id,
        type=entity_type,
        name=name or entity_id.title(),
        links=list(links or []),
        created_at=created,
        updated_at=created,
        **extra,
    )


class MockBackend(Backend):
    """In-memory backend that emits a snapshot after every write."""

    def __init__(self, entities: list[Entity] | None = None) -> None:
        """Initialize mock backend."""
        self.entities: dict[str, Entity] = {e.id: e for e in entities or []}
        self.config: dict[str, Any] = {}
        self.subscribers: list[tuple[SnapshotCallback, ErrorCallback | None]] = []
        self.writes = 0
        self.fail_with: Exception | None = None
        self._next_id = 1

    def _check(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    def emit(self) -> None:
        """Push the current snapshot to subscribers."""
        for on_next, _ in list(self.subscribers):
            on_next(list(self.entities.values()))

    def seed(self, entities: list[Entity]) -> None:
        """Replace all entities and emit."""
        self.entities = {e.id: e for e in entities}
        self.emit()

    async def subscribe(self, on_next: SnapshotCallback, on_error: ErrorCallback | None = None) -> Unsubscribe:
        """Subscribe to snapshots."""
        entry = (on_next, on_error)
        self.subscribers.append(entry)
        if self.fail_with is not None and on_error is not None:
            on_error(self.fail_with)
        else:
            on_next(list(self.entities.values()))
        return lambda: self.subscribers.remove(entry)

    async def get(self, entity_id: str) -> Entity | None:
        """Read an entity."""
        self._check()
        return self.entities.get(entity_id)

    async def list_entities(self, entity_type: str | None = None) -> list[Entity]:
        """List entities."""
        self._check()
        return [e for e in self.entities.values() if entity_type is None or e.type == entity_type]

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
        self._check()
        entity = make_entity(
            f"e{self._next_id}",
            name=name,
            entity_type=entity_type,
            description=description,
            tags=tags or [],
        )
        self._next_id += 1
        self.entities[entity.id] = entity
        self.writes += 1
        self.emit()
        return entity

    async def update(self, entity_id: str, changes: dict[str, Any]) -> None:
        """Update an entity."""
        self._check()
        entity = self.entities[entity_id]
        for key, value in changes.items():
            setattr(entity, key, value)
        self.writes += 1
        self.emit()

    async def delete(self, entity_id: str) -> None:
        """Delete an entity."""
        self._check()
        self.entities.pop(entity_id, None)
        self.writes += 1
        self.emit()

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
        """Add a link."""
        self._check()
        link = make_link(
            target_id,
            relationship,
            bidirectional=bidirectional,
            reverse_relationship=reverse_relationship,
            notes=notes,
            metadata=metadata,
        )
        self.entities[source_id].links.append(link)
        self.writes += 1
        self.emit()
        return link

    async def update_link(self, source_id: str, link_id: str, changes: dict[str, Any]) -> Link:
        """Update a link."""
        self._check()
        link = next(link for link in self.entities[source_id].links if link.id == link_id)
        for key, value in changes.items():
            setattr(link, key, value)
        self.writes += 1
        self.emit()
        return link

    async def remove_link(self, source_id: str, target_id: str) -> int:
        """Remove links."""
        self._check()
        source = self.entities[source_id]
        before = len(source.links)
        source.links = [link for link in source.links if link.target_id != target_id]
        self.writes += 1
        self.emit()
        return before - len(source.links)

    async def get_config(self, key: str) -> Any:
        """Get config."""
        return self.config.get(key)

    async def set_config(self, key: str, value: Any) -> None:
        """Set config."""
        self.writes += 1
        self.config[key] = value

    async def unset_config(self, key: str) -> None:
        """Unset config."""
        self.config.pop(key, None)

    async def list_config(self) -> dict[str, Any]:
        """List config."""
        return self.config.copy()

    async def clear(self) -> None:
        """Clear everything."""
        self.entities.clear()
        self.config.clear()
        self.emit()

    async def count(self, table: str = "entities") -> int:
        """Count entities."""
        return len(self.entities)


@pytest.fixture
def mock_backend() -> MockBackend:
    """Empty in-memory backend."""
    return MockBackend()


@pytest.fixture
def sqlite_backend(tmp_path) -> SQLiteBackend:
    """SQLite backend on a temporary database file."""
    return SQLiteBackend(tmp_path / "campaign.db")
