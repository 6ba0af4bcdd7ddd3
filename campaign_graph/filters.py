"""Composable entity filters evaluated against a snapshot."""

from collections.abc import Callable, Iterable
from dataclasses import dataclass

from campaign_graph.models import Entity


@dataclass
class EntityFilter:
    """Filter criteria; unset criteria match everything and set ones are combined with AND."""

    search: str | None = None
    has_relationships: bool | None = None
    relationship_type: str | None = None
    related_to_entity_id: str | None = None
    entity_type: str | None = None


def matches_search(entity: Entity, query: str) -> bool:
    """Case-insensitive substring match over name, description and tags."""
    query = query.lower()
    return (
        query in entity.name.lower()
        or query in entity.description.lower()
        or any(query in tag.lower() for tag in entity.tags)
    )


def has_relationship_type(entity: Entity, relationship_type: str) -> bool:
    """Check the entity's own links for a relationship label, ignoring case."""
    wanted = relationship_type.lower()
    return any(link.relationship.lower() == wanted for link in entity.links)


def apply_filter(
    entities: Iterable[Entity],
    criteria: EntityFilter,
    neighbors: Callable[[str], list[Entity]],
    known: Callable[[str], bool],
) -> list[Entity]:
    """Apply criteria to entities.

    Args:
        entities: Entities to filter, in snapshot order
        criteria: Filter criteria
        neighbors: Returns the forward and reverse neighbors of an entity ID
        known: Tells whether an entity ID is in the snapshot

    Returns:
        Matching entities in their original order
    """
    result = list(entities)

    if criteria.search:
        result = [e for e in result if matches_search(e, criteria.search)]

    if criteria.entity_type:
        result = [e for e in result if e.type == criteria.entity_type]

    if criteria.has_relationships is not None:
        result = [e for e in result if bool(e.links) == criteria.has_relationships]

    if criteria.relationship_type:
        result = [e for e in result if has_relationship_type(e, criteria.relationship_type)]

    if criteria.related_to_entity_id is not None:
        if not known(criteria.related_to_entity_id):
            return []
        related_ids = {e.id for e in neighbors(criteria.related_to_entity_id)}
        result = [e for e in result if e.id in related_ids]

    return result
