"""Link management commands for campaign-graph CLI."""

from cyclopts import App

from campaign_graph.breadcrumbs import build_navigation_url, parse_breadcrumb_path
from campaign_graph.config import get_config
from campaign_graph.graph import GraphStore

link_app = App(name="link", help="Manage relationships between entities")


@link_app.command
def add(
    source_id: str,
    target_id: str,
    relationship: str,
    bidirectional: bool = False,
    reverse: str | None = None,
    strength: str | None = None,
    notes: str | None = None,
) -> None:
    """Add a relationship from source entity to target entity.

    Args:
        source_id: Entity holding the link
        target_id: Entity the link points at
        relationship: Relationship label, e.g. "mentor_of"
        bidirectional: Show the relationship from the target's side too
        reverse: Label seen from the target's side, for bidirectional links
        strength: strong, moderate or weak
        notes: Free-form notes
    """
    from campaign_graph.cli import run_with_store

    async def work(store: GraphStore):
        return await store.add_link(
            source_id,
            target_id,
            relationship,
            bidirectional=bidirectional,
            notes=notes,
            strength=strength,
            reverse_relationship=reverse,
        )

    link = run_with_store(work)
    print(f"Added link {link.id}: {source_id} --[{link.relationship}]--> {target_id}")


@link_app.command
def update(
    source_id: str,
    link_id: str,
    relationship: str | None = None,
    reverse: str | None = None,
    strength: str | None = None,
    notes: str | None = None,
) -> None:
    """Update a relationship held by the source entity."""
    from campaign_graph.cli import run_with_store

    changes: dict = {}
    if relationship is not None:
        changes["relationship"] = relationship
    if reverse is not None:
        changes["reverse_relationship"] = reverse
    if strength is not None:
        changes["strength"] = strength
    if notes is not None:
        changes["notes"] = notes

    if not changes:
        print("Nothing to update")
        return

    async def work(store: GraphStore):
        return await store.update_link(source_id, link_id, changes)

    link = run_with_store(work)
    print(f"Updated link {link.id}")


@link_app.command
def remove(source_id: str, *target_ids: str) -> None:
    """Remove relationships from source entity to target entities."""
    from campaign_graph.cli import run_with_store

    async def work(store: GraphStore) -> int:
        removed = 0
        for target_id in target_ids:
            removed += await store.remove_link(source_id, target_id)
        return removed

    removed = run_with_store(work)
    print(f"Removed {removed} link(s) from {source_id}")


@link_app.command(name="list")
def list_links(entity_id: str, type: str | None = None) -> None:
    """List relationships touching an entity, in both directions."""
    from campaign_graph.cli import run_with_store

    async def work(store: GraphStore):
        return store.get_linked_with_relationships(entity_id)

    linked = run_with_store(work)
    if type:
        wanted = type.lower()
        linked = [item for item in linked if item.link.relationship.lower() == wanted]

    if not linked:
        print(f"No links found for entity {entity_id}")
        return

    print(f"Links for entity {entity_id}:\n")
    for item in linked:
        if item.is_reverse:
            print(f"  {entity_id} <--[{item.relationship}]-- {item.entity.id} ({item.entity.name})")
        else:
            print(f"  {entity_id} --[{item.relationship}]--> {item.entity.id} ({item.entity.name})")


@link_app.command
def types() -> None:
    """List every relationship label in use."""
    from campaign_graph.cli import run_with_store

    async def work(store: GraphStore):
        return store.available_relationship_types

    labels = run_with_store(work)
    if not labels:
        print("No relationships found")
        return
    for label in labels:
        print(label)


@link_app.command
def stats() -> None:
    """Count links per relationship label."""
    from campaign_graph.cli import run_with_store

    async def work(store: GraphStore):
        return store.relationship_stats()

    counts = run_with_store(work)
    if not counts:
        print("No relationships found")
        return
    for label, count in sorted(counts.items(), key=lambda item: (-item[1], item[0])):
        print(f"{count:>5}  {label}")


@link_app.command
def navigate(entity_id: str, target_id: str, relationship: str, nav_path: str = "") -> None:
    """Print the URL for following a relationship, extending the breadcrumb trail.

    Args:
        entity_id: Entity being navigated from
        target_id: Entity being navigated to
        relationship: Relationship followed
        nav_path: Current breadcrumb trail (navPath query value)
    """
    from campaign_graph.cli import run_with_store

    max_depth = get_config().navigation_depth()

    async def work(store: GraphStore):
        return store.get_by_id(entity_id), store.get_by_id(target_id)

    current, target = run_with_store(work)
    if current is None or target is None:
        print("Source or target entity not found")
        return

    trail = parse_breadcrumb_path(nav_path)
    print(build_navigation_url(target.type, target.id, trail, relationship, current, max_depth=max_depth))
