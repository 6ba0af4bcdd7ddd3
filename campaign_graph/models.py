"""Data models for the campaign relationship graph."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def _format_timestamp(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_timestamp(value: str | datetime | None) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class Strength(str, Enum):
    """How strong a relationship is."""

    STRONG = "strong"
    MODERATE = "moderate"
    WEAK = "weak"


@dataclass(frozen=True)
class Symmetric:
    """Bidirectional relationship presented with the same label both ways."""

    label: str


@dataclass(frozen=True)
class Asymmetric:
    """Bidirectional relationship with a different label from the target's side."""

    forward: str
    reverse: str


@dataclass(frozen=True)
class Unidirectional:
    """One-directional relationship; the target still sees it as incoming."""

    label: str


RelationshipKind = Symmetric | Asymmetric | Unidirectional


def relationship_fields(kind: RelationshipKind) -> tuple[str, bool, str | None]:
    """Flatten a relationship kind into (relationship, bidirectional, reverse_relationship)."""
    if isinstance(kind, Asymmetric):
        return kind.forward, True, kind.reverse
    if isinstance(kind, Symmetric):
        return kind.label, True, None
    return kind.label, False, None


@dataclass
class Link:
    """A directed relationship edge stored on its source entity."""

    id: str
    target_id: str
    target_type: str
    relationship: str
    bidirectional: bool = False
    reverse_relationship: str | None = None
    notes: str | None = None
    strength: Strength | None = None
    metadata: dict[str, Any] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def kind(self) -> RelationshipKind:
        """Relationship semantics as a tagged variant."""
        if not self.bidirectional:
            return Unidirectional(self.relationship)
        if self.reverse_relationship:
            return Asymmetric(self.relationship, self.reverse_relationship)
        return Symmetric(self.relationship)

    def label_for(self, is_reverse: bool) -> str:
        """Return the relationship label as seen from the source or the target."""
        kind = self.kind
        if is_reverse and isinstance(kind, Asymmetric):
            return kind.reverse
        return self.relationship

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the storage record format."""
        data: dict[str, Any] = {
            "id": self.id,
            "targetId": self.target_id,
            "targetType": self.target_type,
            "relationship": self.relationship,
            "bidirectional": self.bidirectional,
        }
        if self.reverse_relationship is not None:
            data["reverseRelationship"] = self.reverse_relationship
        if self.notes is not None:
            data["notes"] = self.notes
        if self.strength is not None:
            data["strength"] = self.strength.value
        if self.metadata is not None:
            data["metadata"] = self.metadata
        if self.created_at is not None:
            data["createdAt"] = _format_timestamp(self.created_at)
        if self.updated_at is not None:
            data["updatedAt"] = _format_timestamp(self.updated_at)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Link":
        """Build a link from a storage record."""
        strength = data.get("strength")
        return cls(
            id=str(data["id"]),
            target_id=str(data["targetId"]),
            target_type=data.get("targetType", ""),
            relationship=data.get("relationship", ""),
            bidirectional=bool(data.get("bidirectional", False)),
            reverse_relationship=data.get("reverseRelationship"),
            notes=data.get("notes"),
            strength=Strength(strength) if strength else None,
            metadata=data.get("metadata"),
            created_at=_parse_timestamp(data.get("createdAt")),
            updated_at=_parse_timestamp(data.get("updatedAt")),
        )


@dataclass
class Entity:
    """A node in the relationship graph."""

    id: str
    type: str
    name: str
    description: str = ""
    tags: list[str] = field(default_factory=list)
    fields: dict[str, Any] = field(default_factory=dict)
    links: list[Link] = field(default_factory=list)
    notes: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the storage record format."""
        return {
            "id": self.id,
            "type": self.type,
            "name": self.name,
            "description": self.description,
            "tags": list(self.tags),
            "fields": self.fields,
            "links": [link.to_dict() for link in self.links],
            "notes": self.notes,
            "metadata": self.metadata,
            "createdAt": _format_timestamp(self.created_at),
            "updatedAt": _format_timestamp(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Entity":
        """Build an entity from a storage record."""
        return cls(
            id=str(data["id"]),
            type=data["type"],
            name=data.get("name") or "",
            description=data.get("description") or "",
            tags=list(data.get("tags") or []),
            fields=dict(data.get("fields") or {}),
            links=[Link.from_dict(link) for link in data.get("links") or []],
            notes=data.get("notes") or "",
            metadata=dict(data.get("metadata") or {}),
            created_at=_parse_timestamp(data.get("createdAt")),
            updated_at=_parse_timestamp(data.get("updatedAt")),
        )


@dataclass
class IntegrityIssue:
    """A problem reported by an integrity scan."""

    type: str
    severity: str
    message: str = ""
    details: dict[str, Any] | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "IntegrityIssue":
        """Build an issue from a scanner report entry."""
        return cls(
            type=data["type"],
            severity=data.get("severity", "minor"),
            message=data.get("message", ""),
            details=data.get("details"),
        )


@dataclass
class BreadcrumbSegment:
    """One recorded step of relationship navigation."""

    entity_id: str
    relationship: str
    entity_name: str
    entity_type: str


@dataclass
class LinkedEntity:
    """An entity paired with the link that connects it to another entity."""

    entity: Entity
    link: Link
    is_reverse: bool

    @property
    def relationship(self) -> str:
        """Label of the link as seen from the entity being inspected."""
        return self.link.label_for(self.is_reverse)


@dataclass
class RelationshipNode:
    """A node of the relationship map."""

    id: str
    name: str
    type: str
    link_count: int = 0


@dataclass
class RelationshipEdge:
    """An edge of the relationship map."""

    id: str
    source: str
    target: str
    relationship: str
    bidirectional: bool
    reverse_relationship: str | None = None
    strength: Strength | None = None


@dataclass
class RelationshipMap:
    """Whole-graph view suitable for network rendering."""

    nodes: list[RelationshipNode] = field(default_factory=list)
    edges: list[RelationshipEdge] = field(default_factory=list)
