"""Breadcrumb trail for relationship navigation.

A trail is carried in a URL query value as
``entityId:relationship:entityName:entityType`` segments joined by commas.
Fields are percent-encoded like JavaScript's ``encodeURIComponent`` with
``'``, ``(`` and ``)`` escaped as well, so the delimiters stay unambiguous.
"""

from urllib.parse import quote, unquote

from campaign_graph.models import BreadcrumbSegment, Entity

MAX_BREADCRUMB_DEPTH = 6

# encodeURIComponent leaves A-Z a-z 0-9 - _ . ! ~ * ' ( ) alone; quote() always
# keeps letters, digits and "_.-~", so only "!" and "*" need adding.
_SAFE_CHARS = "!*"


def encode_field(value: str) -> str:
    """Percent-encode one segment field."""
    return quote(value, safe=_SAFE_CHARS)


def parse_breadcrumb_path(raw: str | None) -> list[BreadcrumbSegment]:
    """Parse a trail from its query-string form.

    Parts with fewer than four fields are ignored.
    """
    if not raw or not raw.strip():
        return []

    segments: list[BreadcrumbSegment] = []
    for part in raw.split(","):
        if not part.strip():
            continue
        fields = part.split(":")
        if len(fields) < 4:
            continue
        entity_id, relationship, entity_name, entity_type = (unquote(field) for field in fields[:4])
        segments.append(
            BreadcrumbSegment(
                entity_id=entity_id,
                relationship=relationship,
                entity_name=entity_name,
                entity_type=entity_type,
            )
        )
    return segments


def serialize_breadcrumb_path(segments: list[BreadcrumbSegment]) -> str:
    """Serialize a trail to its query-string form."""
    return ",".join(
        ":".join(
            encode_field(value)
            for value in (segment.entity_id, segment.relationship, segment.entity_name, segment.entity_type)
        )
        for segment in segments
    )


def truncate_path(segments: list[BreadcrumbSegment], max_length: int) -> list[BreadcrumbSegment]:
    """Keep the most recent max_length segments."""
    if max_length <= 0:
        return []
    if len(segments) <= max_length:
        return list(segments)
    return segments[-max_length:]


def build_navigation_url(
    target_type: str,
    target_id: str,
    current_segments: list[BreadcrumbSegment],
    relationship: str,
    current_entity: Entity,
    max_depth: int = MAX_BREADCRUMB_DEPTH,
) -> str:
    """Record a step from current_entity and build the URL of the target entity."""
    step = BreadcrumbSegment(
        entity_id=current_entity.id,
        relationship=relationship,
        entity_name=current_entity.name,
        entity_type=current_entity.type,
    )
    trail = truncate_path([*current_segments, step], max_depth)
    return f"/entities/{target_type}/{target_id}?navPath={serialize_breadcrumb_path(trail)}"
