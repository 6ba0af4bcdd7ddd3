"""Backend interface for entity storage."""

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from campaign_graph.models import Entity, Link, Strength

SnapshotCallback = Callable[[list[Entity]], None]
ErrorCallback = Callable[[Exception], None]
Unsubscribe = Callable[[], None]

ACTIVE_CAMPAIGN_KEY = "activeCampaignId"


class Backend(ABC):
    """Abstract base class for entity storage backends.

    All I/O is asynchronous. Writes never touch subscribers' state directly:
    each successful write is followed by a full snapshot emission to every
    subscriber.
    """

    @abstractmethod
    async def subscribe(self, on_next: SnapshotCallback, on_error: ErrorCallback | None = None) -> Unsubscribe:
        """Subscribe to entity snapshots.

        The current snapshot is delivered before this returns. Returns a
        callable that removes the subscription.
        """
        pass

    @abstractmethod
    async def get(self, entity_id: str) -> Entity | None:
        """Read an entity by ID, or None if it does not exist."""
        pass

    @abstractmethod
    async def list_entities(self, entity_type: str | None = None) -> list[Entity]:
        """List entities in storage order, optionally restricted to one type."""
        pass

    @abstractmethod
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
        """Create a new entity."""
        pass

    @abstractmethod
    async def update(self, entity_id: str, changes: dict[str, Any]) -> None:
        """Apply a partial update to an entity."""
        pass

    @abstractmethod
    async def delete(self, entity_id: str) -> None:
        """Delete an entity and the links other entities hold to it."""
        pass

    @abstractmethod
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
        """Append a link to the source entity."""
        pass

    @abstractmethod
    async def update_link(self, source_id: str, link_id: str, changes: dict[str, Any]) -> Link:
        """Update the mutable fields of one link."""
        pass

    @abstractmethod
    async def remove_link(self, source_id: str, target_id: str) -> int:
        """Remove every link from source to target, returning how many were removed."""
        pass

    @abstractmethod
    async def get_config(self, key: str) -> Any:
        """Get an app config value."""
        pass

    @abstractmethod
    async def set_config(self, key: str, value: Any) -> None:
        """Set an app config value."""
        pass

    @abstractmethod
    async def unset_config(self, key: str) -> None:
        """Remove an app config value."""
        pass

    @abstractmethod
    async def list_config(self) -> dict[str, Any]:
        """List all app config values."""
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Clear every table owned by the application."""
        pass

    @abstractmethod
    async def count(self, table: str = "entities") -> int:
        """Count the records in a table."""
        pass

    async def close(self) -> None:
        """Release storage resources."""
        return None
