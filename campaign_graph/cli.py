"""CLI for campaign-graph."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Annotated, Literal, TypeVar

import structlog
from cyclopts import App, Parameter

from campaign_graph.backend import Backend
from campaign_graph.backends import SQLiteBackend
from campaign_graph.config import get_config
from campaign_graph.config_commands import config_app
from campaign_graph.db_commands import db_app
from campaign_graph.filters import EntityFilter
from campaign_graph.graph import GraphStore
from campaign_graph.link_commands import link_app

logger = structlog.get_logger()

T = TypeVar("T")

app = App(
    name="campaign-graph",
    help="Campaign Graph - relationships between campaign entities",
)

app.command(link_app)
app.command(config_app)
app.command(db_app)


def configure_logging(log_level: str) -> None:
    """Configure structlog with the specified log level."""
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(min_level=log_level.lower()))


def get_backend() -> Backend:
    """Get the configured backend."""
    config = get_config()
    backend_type = config.backend_name()
    logger.debug("Opening backend", backend=backend_type)
    return SQLiteBackend(config.database_path())


def run_with_backend(func: Callable[[Backend], Awaitable[T]]) -> T:
    """Run an async operation against the configured backend."""

    async def runner() -> T:
        backend = get_backend()
        try:
            return await func(backend)
        finally:
            await backend.close()

    return asyncio.run(runner())


def run_with_store(func: Callable[[GraphStore], Awaitable[T]]) -> T:
    """Run an async operation against a loaded graph store."""

    async def with_store(backend: Backend) -> T:
        store = GraphStore(backend)
        await store.load()
        try:
            if store.error:
                raise ValueError(f"Failed to load entities: {store.error}")
            return await func(store)
        finally:
            store.close()

    return run_with_backend(with_store)


def parse_tags(tags: str) -> list[str]:
    """Split a comma separated tag string."""
    return [tag.strip() for tag in tags.split(",") if tag.strip()]


@app.command
def create(
    entity_type: str,
    name: str,
    description: str = "",
    tags: str = "",
    notes: str = "",
) -> None:
    """Create a new entity."""

    async def work(store: GraphStore):
        return await store.create(entity_type, name, description=description, tags=parse_tags(tags), notes=notes)

    entity = run_with_store(work)
    print(f"Created {entity.type} {entity.id}: {entity.name}")


@app.command
def read(entity_id: str) -> None:
    """Show an entity and its relationships."""

    async def work(store: GraphStore):
        return store.get_by_id(entity_id), store.get_linked_with_relationships(entity_id)

    entity, linked = run_with_store(work)
    if entity is None:
        print(f"Entity {entity_id} not found")
        return

    print(f"Entity: {entity.id}")
    print(f"Type: {entity.type}")
    print(f"Name: {entity.name}")
    print(f"Description: {entity.description}")
    if entity.tags:
        print(f"Tags: {', '.join(entity.tags)}")
    if entity.notes:
        print(f"Notes: {entity.notes}")
    if linked:
        print("Relationships:")
        for item in linked:
            arrow = "<-" if item.is_reverse else "->"
            print(f"  {arrow} [{item.relationship}] {item.entity.name} ({item.entity.type}, {item.entity.id})")


@app.command
def update(
    entity_id: str,
    name: str | None = None,
    description: str | None = None,
    tags: str | None = None,
    notes: str | None = None,
) -> None:
    """Update an entity."""
    changes: dict = {}
    if name is not None:
        changes["name"] = name
    if description is not None:
        changes["description"] = description
    if tags is not None:
        changes["tags"] = parse_tags(tags)
    if notes is not None:
        changes["notes"] = notes

    if not changes:
        print("Nothing to update")
        return

    async def work(store: GraphStore) -> None:
        await store.update(entity_id, changes)

    run_with_store(work)
    print(f"Updated entity {entity_id}")


@app.command
def delete(*entity_ids: str) -> None:
    """Delete one or more entities."""

    async def work(store: GraphStore) -> None:
        for entity_id in entity_ids:
            await store.delete(entity_id)

    run_with_store(work)
    print(f"Deleted {len(entity_ids)} entity(ies)")


@app.command(name="list")
def list_entities(
    search: str | None = None,
    type: str | None = None,
    relationship_type: str | None = None,
    related_to: str | None = None,
    has_relationships: bool | None = None,
    limit: int | None = None,
) -> None:
    """List entities with optional filtering and limiting."""
    criteria = EntityFilter(
        search=search,
        entity_type=type,
        relationship_type=relationship_type,
        related_to_entity_id=related_to,
        has_relationships=has_relationships,
    )

    async def work(store: GraphStore):
        return store.filter_entities(criteria)

    entities = run_with_store(work)
    if limit:
        entities = entities[:limit]

    print(f"Found {len(entities)} entity(ies):\n")
    for entity in entities:
        marker = "●" if entity.links else "○"
        tags_str = f" [{', '.join(entity.tags)}]" if entity.tags else ""
        print(f"{marker} {entity.id}: {entity.name} ({entity.type}){tags_str}")


@app.meta.default
def main(
    *tokens: Annotated[str, Parameter(show=False, allow_leading_hyphen=True)],
    log_level: Literal["debug", "info", "warning", "error", "critical"] = "critical",
) -> None:
    """Main entry point with global options."""
    configure_logging(log_level)
    app(tokens)


if __name__ == "__main__":
    app.meta()
