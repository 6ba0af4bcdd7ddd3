"""Tests for integrity repair."""

import pytest
from conftest import MockBackend, make_entity, make_link

from campaign_graph.backend import ACTIVE_CAMPAIGN_KEY
from campaign_graph.backends.sqlite import SQLiteBackend
from campaign_graph.models import IntegrityIssue, Link
from campaign_graph.repair import RepairService, group_dangling_targets


def dangling(source_id: str | None, target_id: str | None) -> IntegrityIssue:
    details = {}
    if source_id is not None:
        details["sourceId"] = source_id
    if target_id is not None:
        details["targetId"] = target_id
    return IntegrityIssue(
        type="referential_integrity",
        severity="minor",
        message=f"Entity {source_id} links to missing entity {target_id}",
        details=details,
    )


def active_campaign_issue(message: str = "No active campaign set") -> IntegrityIssue:
    return IntegrityIssue(type="active_campaign", severity="major", message=message)


def test_group_dangling_targets_skips_incomplete_issues() -> None:
    """Test grouping by source and skipping issues without both IDs."""
    issues = [
        dangling("a", "x"),
        dangling("a", "y"),
        dangling("b", "x"),
        dangling("c", None),
        dangling(None, "x"),
        IntegrityIssue(type="referential_integrity", severity="minor", message="no details"),
        active_campaign_issue(),
    ]
    assert group_dangling_targets(issues) == {"a": {"x", "y"}, "b": {"x"}}


@pytest.mark.asyncio
async def test_repair_removes_dangling_link() -> None:
    """Test the single dangling link scenario."""
    backend = MockBackend(
        [
            make_entity("A", links=[make_link("B", "knows"), make_link("ghost", "ally")]),
            make_entity("B"),
        ]
    )

    repaired = await RepairService(backend).repair([dangling("A", "ghost")])

    assert repaired == 1
    assert [link.target_id for link in backend.entities["A"].links] == ["B"]


@pytest.mark.asyncio
async def test_repair_counts_links_not_entities() -> None:
    """Test that the count is the number of links removed across the batch."""
    backend = MockBackend(
        [
            make_entity(
                "A",
                links=[
                    make_link("ghost", "ally"),
                    make_link("ghost", "owes", link_id="second-ghost-link"),
                    make_link("phantom", "fears"),
                    make_link("B", "knows"),
                ],
            ),
            make_entity("B", links=[make_link("ghost", "hunts")]),
        ]
    )
    issues = [dangling("A", "ghost"), dangling("A", "phantom"), dangling("B", "ghost"), dangling("A", "ghost")]

    repaired = await RepairService(backend).repair(issues)

    assert repaired == 4
    assert [link.target_id for link in backend.entities["A"].links] == ["B"]
    assert backend.entities["B"].links == []


@pytest.mark.asyncio
async def test_repair_skips_malformed_and_missing_sources() -> None:
    """Test that bad issues contribute nothing and do not raise."""
    backend = MockBackend([make_entity("A", links=[make_link("B", "knows")]), make_entity("B")])
    issues = [dangling("A", None), dangling("gone", "B"), dangling("A", "not-linked")]

    assert await RepairService(backend).repair(issues) == 0
    assert backend.writes == 0


@pytest.mark.asyncio
async def test_repair_empty_list_is_noop() -> None:
    """Test that an empty issue list does nothing."""
    entities = [make_entity("A", links=[make_link("ghost", "ally")])]
    backend = MockBackend(entities)
    before = [e.to_dict() for e in entities]

    assert await RepairService(backend).repair([]) == 0
    assert backend.writes == 0
    assert [e.to_dict() for e in backend.entities.values()] == before


@pytest.mark.asyncio
async def test_active_campaign_reset_to_oldest() -> None:
    """Test that the pointer goes to the oldest campaign, once per call."""
    backend = MockBackend(
        [
            make_entity("C2", entity_type="campaign", days=1),
            make_entity("npc"),
            make_entity("C1", entity_type="campaign", days=0),
        ]
    )
    issues = [
        active_campaign_issue(),
        active_campaign_issue("Active campaign does not exist"),
        active_campaign_issue("Active campaign is not a campaign entity"),
    ]

    assert await RepairService(backend).repair(issues) == 1
    assert backend.config[ACTIVE_CAMPAIGN_KEY] == "C1"


@pytest.mark.asyncio
async def test_active_campaign_without_campaigns() -> None:
    """Test that the pointer is left alone when no campaign exists."""
    backend = MockBackend([make_entity("npc")])
    backend.config[ACTIVE_CAMPAIGN_KEY] = "stale"

    assert await RepairService(backend).repair([active_campaign_issue()]) == 0
    assert backend.config[ACTIVE_CAMPAIGN_KEY] == "stale"


@pytest.mark.asyncio
async def test_mixed_issues() -> None:
    """Test link and campaign repairs in one batch."""
    backend = MockBackend(
        [
            make_entity("camp", entity_type="campaign", links=[make_link("ghost", "features")]),
        ]
    )
    repaired = await RepairService(backend).repair([dangling("camp", "ghost"), active_campaign_issue()])
    assert repaired == 2
    assert backend.entities["camp"].links == []
    assert backend.config[ACTIVE_CAMPAIGN_KEY] == "camp"


@pytest.mark.asyncio
async def test_repair_against_sqlite(sqlite_backend: SQLiteBackend) -> None:
    """Test repair end to end on a real database."""
    campaign = await sqlite_backend.create("campaign", "Shadows")
    a = await sqlite_backend.create("npc", "A")
    b = await sqlite_backend.create("npc", "B")
    await sqlite_backend.add_link(a.id, b.id, "knows")
    await sqlite_backend.add_link(a.id, campaign.id, "plays_in")
    await sqlite_backend.delete(b.id)
    # deleting cleaned the link, so put a dangling one back the way an import would
    stored = await sqlite_backend.get(a.id)
    stored.links.append(Link(id="d1", target_id=b.id, target_type="npc", relationship="knows"))
    await sqlite_backend.update(a.id, {"links": stored.links})

    service = RepairService(sqlite_backend)
    assert await service.repair([dangling(a.id, b.id), active_campaign_issue()]) == 2
    assert [link.target_id for link in (await sqlite_backend.get(a.id)).links] == [campaign.id]
    assert await sqlite_backend.get_config(ACTIVE_CAMPAIGN_KEY) == campaign.id


@pytest.mark.asyncio
async def test_reset_twice(sqlite_backend: SQLiteBackend) -> None:
    """Test that reset works on populated and empty stores."""
    await sqlite_backend.create("campaign", "Shadows")
    await sqlite_backend.set_config(ACTIVE_CAMPAIGN_KEY, "x")
    service = RepairService(sqlite_backend)

    await service.reset()
    await service.reset()

    assert await sqlite_backend.count() == 0
    assert await sqlite_backend.list_config() == {}
