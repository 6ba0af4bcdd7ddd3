"""Link model operations on an entity's link list.

Links live only on their source entity. The view from the target's side is
derived by the graph store, so nothing here ever writes to the target.
"""

import uuid
from collections.abc import Iterable
from dataclasses import replace
from typing import Any

from campaign_graph.models import Entity, Link, Strength, utcnow

MUTABLE_LINK_FIELDS = frozenset({"relationship", "reverse_relationship", "notes", "strength", "metadata"})
IDENTITY_LINK_FIELDS = frozenset({"id", "target_id", "target_type", "bidirectional"})


def generate_id() -> str:
    """Generate an opaque record identifier."""
    return uuid.uuid4().hex


def _coerce_strength(strength: Strength | str | None) -> Strength | None:
    if strength is None or isinstance(strength, Strength):
        return strength
    try:
        return Strength(strength)
    except ValueError as e:
        raise ValueError(f"Invalid link strength: {strength!r}") from e


def new_link(
    target: Entity,
    relationship: str,
    bidirectional: bool = False,
    notes: str | None = None,
    strength: Strength | str | None = None,
    metadata: dict[str, Any] | None = None,
    reverse_relationship: str | None = None,
) -> Link:
    """Build a new link pointing at target.

    A reverse label only means something for bidirectional links, so it is
    dropped otherwise.
    """
    if not relationship:
        raise ValueError("Relationship label is required")

    now = utcnow()
    return Link(
        id=generate_id(),
        target_id=target.id,
        target_type=target.type,
        relationship=relationship,
        bidirectional=bidirectional,
        reverse_relationship=reverse_relationship if bidirectional and reverse_relationship else None,
        notes=notes or None,
        strength=_coerce_strength(strength),
        metadata=metadata,
        created_at=now,
        updated_at=now,
    )


def apply_link_changes(link: Link, changes: dict[str, Any]) -> Link:
    """Return a copy of link with changes applied.

    Args:
        link: Link to update
        changes: Field name to new value; only relationship, reverse_relationship,
            notes, strength and metadata may change

    Raises:
        ValueError: If a change touches an identity field or an unknown field
    """
    identity = IDENTITY_LINK_FIELDS.intersection(changes)
    if identity:
        raise ValueError(f"Link fields cannot be changed: {', '.join(sorted(identity))}")
    unknown = set(changes) - MUTABLE_LINK_FIELDS
    if unknown:
        raise ValueError(f"Unknown link fields: {', '.join(sorted(unknown))}")

    updates = dict(changes)
    if "strength" in updates:
        updates["strength"] = _coerce_strength(updates["strength"])
    if "relationship" in updates and not updates["relationship"]:
        raise ValueError("Relationship label is required")
    if not link.bidirectional and updates.get("reverse_relationship"):
        raise ValueError("Only bidirectional links can carry a reverse relationship")

    return replace(link, **updates, updated_at=utcnow())


def replace_link(links: list[Link], link_id: str, changes: dict[str, Any]) -> tuple[list[Link], Link]:
    """Apply changes to the link with link_id, returning the new list and link."""
    for index, link in enumerate(links):
        if link.id == link_id:
            updated = apply_link_changes(link, changes)
            new_links = list(links)
            new_links[index] = updated
            return new_links, updated
    raise ValueError(f"Link not found: {link_id}")


def without_targets(links: list[Link], target_ids: Iterable[str]) -> list[Link]:
    """Drop every link whose target is one of target_ids."""
    targets = set(target_ids)
    return [link for link in links if link.target_id not in targets]


def has_link_to(links: list[Link], target_id: str) -> bool:
    """Check whether any link points at target_id."""
    return any(link.target_id == target_id for link in links)
