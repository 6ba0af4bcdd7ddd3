"""SQLite backend implementation.

Entities are stored as JSON documents next to a few indexed columns. Every
public method is a coroutine that runs its SQL in a worker thread; the
connection is shared, so access is serialized with a lock. Each method
commits as one transaction, which makes a single-entity update atomic.
"""

import asyncio
import json
import sqlite3
import threading
from pathlib import Path
from typing import Any

import structlog

from campaign_graph.backend import Backend, ErrorCallback, SnapshotCallback, Unsubscribe
from campaign_graph.links import generate_id, has_link_to, new_link, replace_link, without_targets
from campaign_graph.models import Entity, Link, Strength, utcnow

logger = structlog.get_logger()

ENTITY_TABLE = "entities"
CONFIG_TABLE = "app_config"

# Sibling domain tables share the database and are cleared on reset.
DOCUMENT_TABLES = (
    "campaign",
    "conversations",
    "chat_messages",
    "suggestions",
    "relationship_summary_cache",
    "combat_sessions",
    "montage_sessions",
    "negotiation_sessions",
    "respite_sessions",
    "creature_templates",
    "field_suggestions",
)

ALL_TABLES = (ENTITY_TABLE, CONFIG_TABLE, *DOCUMENT_TABLES)

ENTITY_FIELD_TYPES: dict[str, type] = {
    "type": str,
    "name": str,
    "description": str,
    "notes": str,
    "tags": list,
    "fields": dict,
    "metadata": dict,
    "links": list,
}
UPDATABLE_ENTITY_FIELDS = frozenset(ENTITY_FIELD_TYPES)


def _coerce_link(link: Link | dict[str, Any]) -> Link:
    if isinstance(link, Link):
        return link
    if not isinstance(link, dict):
        raise ValueError(f"Invalid value for links: {link!r} is not a link")
    try:
        return Link.from_dict(link)
    except (KeyError, ValueError) as e:
        raise ValueError(f"Invalid link record: {e}") from e


def check_entity_changes(changes: dict[str, Any]) -> dict[str, Any]:
    """Validate a partial entity update and return it with link records converted.

    Raises:
        ValueError: If a field is not updatable or a value has the wrong shape
    """
    unknown = set(changes) - UPDATABLE_ENTITY_FIELDS
    if unknown:
        raise ValueError(f"Entity fields cannot be updated: {', '.join(sorted(unknown))}")

    checked: dict[str, Any] = {}
    for key, value in changes.items():
        expected = ENTITY_FIELD_TYPES[key]
        if not isinstance(value, expected):
            raise ValueError(f"Invalid value for {key}: expected {expected.__name__}, got {type(value).__name__}")
        if key == "type" and not value:
            raise ValueError("Invalid value for type: cannot be empty")
        if key == "tags" and not all(isinstance(tag, str) for tag in value):
            raise ValueError("Invalid value for tags: expected a list of strings")
        if key in ("fields", "metadata"):
            try:
                json.dumps(value)
            except (TypeError, ValueError) as e:
                raise ValueError(f"Invalid value for {key}: {e}") from e
        if key == "links":
            value = [_coerce_link(link) for link in value]
        checked[key] = value
    return checked


class SQLiteBackend(Backend):
    """Entity storage in a local SQLite database."""

    def __init__(self, db_path: Path | str = ":memory:") -> None:
        """Initialize SQLite backend.

        Args:
            db_path: Path to the database file, or ":memory:" for a private in-memory database
        """
        self.db_path = str(db_path)
        logger.debug("Initializing SQLite backend", db_path=self.db_path)

        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.Lock()
        self._subscribers: dict[int, tuple[SnapshotCallback, ErrorCallback | None]] = {}
        self._next_subscriber = 0

        self._conn = sqlite3.connect(self.db_path, timeout=30.0, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        if self.db_path != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._create_schema()
        logger.info("SQLite backend initialized", db_path=self.db_path)

    def _create_schema(self) -> None:
        """Create tables if they do not exist."""
        statements = [
            f"""CREATE TABLE IF NOT EXISTS {ENTITY_TABLE} (
                id TEXT PRIMARY KEY,
                type TEXT NOT NULL,
                name TEXT NOT NULL DEFAULT '',
                created_at TEXT,
                updated_at TEXT,
                data TEXT NOT NULL
            )""",
            f"CREATE INDEX IF NOT EXISTS idx_{ENTITY_TABLE}_type ON {ENTITY_TABLE}(type)",
            f"CREATE TABLE IF NOT EXISTS {CONFIG_TABLE} (key TEXT PRIMARY KEY, value TEXT NOT NULL)",
        ]
        statements.extend(
            f"CREATE TABLE IF NOT EXISTS {table} (id TEXT PRIMARY KEY, data TEXT NOT NULL)" for table in DOCUMENT_TABLES
        )
        with self._lock, self._conn:
            for statement in statements:
                self._conn.execute(statement)

    async def _run(self, func, *args):
        """Run a blocking storage call in a worker thread while holding the connection lock."""

        def locked():
            with self._lock:
                return func(*args)

        return await asyncio.to_thread(locked)

    # -- row helpers (caller holds the lock) --

    def _load_entity(self, entity_id: str) -> Entity | None:
        row = self._conn.execute(f"SELECT data FROM {ENTITY_TABLE} WHERE id = ?", (entity_id,)).fetchone()
        if row is None:
            return None
        return Entity.from_dict(json.loads(row["data"]))

    def _load_entities(self, entity_type: str | None = None) -> list[Entity]:
        if entity_type is None:
            rows = self._conn.execute(f"SELECT data FROM {ENTITY_TABLE} ORDER BY rowid").fetchall()
        else:
            rows = self._conn.execute(
                f"SELECT data FROM {ENTITY_TABLE} WHERE type = ? ORDER BY rowid", (entity_type,)
            ).fetchall()
        return [Entity.from_dict(json.loads(row["data"])) for row in rows]

    def _write_entity(self, entity: Entity, insert: bool = False) -> None:
        record = entity.to_dict()
        params = (
            entity.type,
            entity.name,
            record["createdAt"],
            record["updatedAt"],
            json.dumps(record),
            entity.id,
        )
        if insert:
            self._conn.execute(
                f"INSERT INTO {ENTITY_TABLE} (type, name, created_at, updated_at, data, id) VALUES (?, ?, ?, ?, ?, ?)",
                params,
            )
        else:
            self._conn.execute(
                f"UPDATE {ENTITY_TABLE} SET type = ?, name = ?, created_at = ?, updated_at = ?, data = ? WHERE id = ?",
                params,
            )

    # -- change stream --

    async def subscribe(self, on_next: SnapshotCallback, on_error: ErrorCallback | None = None) -> Unsubscribe:
        """Subscribe to entity snapshots."""
        key = self._next_subscriber
        self._next_subscriber += 1
        self._subscribers[key] = (on_next, on_error)
        logger.debug("Subscriber added", subscriber=key, count=len(self._subscribers))

        try:
            snapshot = await self._run(self._load_entities)
        except Exception as e:
            logger.error("Failed to load snapshot", error=str(e))
            if on_error is None:
                raise
            on_error(e)
        else:
            on_next(snapshot)

        def unsubscribe() -> None:
            if self._subscribers.pop(key, None) is not None:
                logger.debug("Subscriber removed", subscriber=key, count=len(self._subscribers))

        return unsubscribe

    async def _emit(self) -> None:
        """Push a fresh snapshot to every subscriber."""
        if not self._subscribers:
            return
        try:
            snapshot = await self._run(self._load_entities)
        except Exception as e:
            logger.error("Failed to load snapshot", error=str(e))
            for _, on_error in list(self._subscribers.values()):
                if on_error is not None:
                    on_error(e)
            return

        logger.debug("Emitting snapshot", entities=len(snapshot), subscribers=len(self._subscribers))
        for on_next, _ in list(self._subscribers.values()):
            on_next(list(snapshot))

    # -- entities --

    async def get(self, entity_id: str) -> Entity | None:
        """Read an entity by ID."""
        return await self._run(self._load_entity, entity_id)

    async def list_entities(self, entity_type: str | None = None) -> list[Entity]:
        """List entities in insertion order."""
        entities = await self._run(self._load_entities, entity_type)
        logger.debug("Listed entities", entity_type=entity_type, count=len(entities))
        return entities

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
        logger.info("Creating entity", entity_type=entity_type, name=name)
        now = utcnow()
        entity = Entity(
            id=generate_id(),
            type=entity_type,
            name=name,
            description=description,
            tags=list(tags or []),
            fields=dict(fields or {}),
            notes=notes,
            metadata=dict(metadata or {}),
            created_at=now,
            updated_at=now,
        )

        def insert() -> None:
            with self._conn:
                self._write_entity(entity, insert=True)

        await self._run(insert)
        logger.info("Entity created", entity_id=entity.id)
        await self._emit()
        return entity

    async def update(self, entity_id: str, changes: dict[str, Any]) -> None:
        """Apply a partial update to an entity."""
        changes = check_entity_changes(changes)
        logger.info("Updating entity", entity_id=entity_id, fields=sorted(changes))

        def apply() -> None:
            with self._conn:
                entity = self._load_entity(entity_id)
                if entity is None:
                    raise ValueError(f"Entity not found: {entity_id}")
                for key, value in changes.items():
                    setattr(entity, key, value)
                entity.updated_at = utcnow()
                self._write_entity(entity)

        await self._run(apply)
        await self._emit()

    async def delete(self, entity_id: str) -> None:
        """Delete an entity and clean up links pointing at it."""
        logger.info("Deleting entity", entity_id=entity_id)

        def remove() -> int:
            cleaned = 0
            with self._conn:
                for entity in self._load_entities():
                    if entity.id != entity_id and has_link_to(entity.links, entity_id):
                        entity.links = without_targets(entity.links, [entity_id])
                        entity.updated_at = utcnow()
                        self._write_entity(entity)
                        cleaned += 1
                self._conn.execute(f"DELETE FROM {ENTITY_TABLE} WHERE id = ?", (entity_id,))
            return cleaned

        cleaned = await self._run(remove)
        logger.info("Entity deleted", entity_id=entity_id, referencing_entities_cleaned=cleaned)
        await self._emit()

    # -- links --

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
        logger.info(
            "Adding link",
            source_id=source_id,
            target_id=target_id,
            relationship=relationship,
            bidirectional=bidirectional,
        )

        def append() -> Link:
            with self._conn:
                source = self._load_entity(source_id)
                target = self._load_entity(target_id)
                if source is None or target is None:
                    raise ValueError("Source or target entity not found")
                if has_link_to(source.links, target_id):
                    raise ValueError("Link already exists")

                link = new_link(
                    target,
                    relationship,
                    bidirectional=bidirectional,
                    notes=notes,
                    strength=strength,
                    metadata=metadata,
                    reverse_relationship=reverse_relationship,
                )
                source.links = [*source.links, link]
                source.updated_at = utcnow()
                self._write_entity(source)
                return link

        link = await self._run(append)
        logger.info("Link added", source_id=source_id, link_id=link.id)
        await self._emit()
        return link

    async def update_link(self, source_id: str, link_id: str, changes: dict[str, Any]) -> Link:
        """Update the mutable fields of one link."""
        logger.info("Updating link", source_id=source_id, link_id=link_id, fields=sorted(changes))

        def apply() -> Link:
            with self._conn:
                source = self._load_entity(source_id)
                if source is None:
                    raise ValueError(f"Entity not found: {source_id}")
                source.links, link = replace_link(source.links, link_id, changes)
                source.updated_at = utcnow()
                self._write_entity(source)
                return link

        link = await self._run(apply)
        await self._emit()
        return link

    async def remove_link(self, source_id: str, target_id: str) -> int:
        """Remove every link from source to target."""
        logger.info("Removing link", source_id=source_id, target_id=target_id)

        def remove() -> int:
            with self._conn:
                source = self._load_entity(source_id)
                if source is None:
                    return 0
                remaining = without_targets(source.links, [target_id])
                removed = len(source.links) - len(remaining)
                if removed:
                    source.links = remaining
                    source.updated_at = utcnow()
                    self._write_entity(source)
                return removed

        removed = await self._run(remove)
        logger.info("Links removed", source_id=source_id, target_id=target_id, count=removed)
        if removed:
            await self._emit()
        return removed

    # -- app config --

    async def get_config(self, key: str) -> Any:
        """Get an app config value."""

        def read() -> Any:
            row = self._conn.execute(f"SELECT value FROM {CONFIG_TABLE} WHERE key = ?", (key,)).fetchone()
            return json.loads(row["value"]) if row else None

        return await self._run(read)

    async def set_config(self, key: str, value: Any) -> None:
        """Set an app config value."""
        logger.debug("Setting app config value", key=key)

        def write() -> None:
            with self._conn:
                self._conn.execute(
                    f"INSERT INTO {CONFIG_TABLE} (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                    (key, json.dumps(value)),
                )

        await self._run(write)

    async def unset_config(self, key: str) -> None:
        """Remove an app config value."""
        logger.debug("Unsetting app config value", key=key)

        def remove() -> None:
            with self._conn:
                self._conn.execute(f"DELETE FROM {CONFIG_TABLE} WHERE key = ?", (key,))

        await self._run(remove)

    async def list_config(self) -> dict[str, Any]:
        """List all app config values."""

        def read() -> dict[str, Any]:
            rows = self._conn.execute(f"SELECT key, value FROM {CONFIG_TABLE} ORDER BY key").fetchall()
            return {row["key"]: json.loads(row["value"]) for row in rows}

        return await self._run(read)

    # -- maintenance --

    async def clear(self) -> None:
        """Clear every table owned by the application."""
        logger.warning("Clearing all tables", tables=list(ALL_TABLES))

        def wipe() -> None:
            with self._conn:
                for table in ALL_TABLES:
                    self._conn.execute(f"DELETE FROM {table}")

        await self._run(wipe)
        await self._emit()

    async def count(self, table: str = ENTITY_TABLE) -> int:
        """Count the records in a table."""
        if table not in ALL_TABLES:
            raise ValueError(f"Unknown table: {table}")

        def read() -> int:
            return self._conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]

        return await self._run(read)

    async def close(self) -> None:
        """Close the database connection."""
        self._subscribers.clear()
        await self._run(self._conn.close)
        logger.debug("SQLite backend closed", db_path=self.db_path)
