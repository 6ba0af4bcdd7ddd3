"""Integrity repair for the entity store.

Issues come from an external scan. Repair works against the backend
directly; the graph store picks up the result from the next snapshot.

Each entity is rewritten in its own transaction. A failure part way through
a batch leaves earlier entities repaired and the rest untouched; running the
same issues again is safe because already-removed links no longer match.
"""

from datetime import datetime, timezone

import structlog

from campaign_graph.backend import ACTIVE_CAMPAIGN_KEY, Backend
from campaign_graph.links import without_targets
from campaign_graph.models import Entity, IntegrityIssue

logger = structlog.get_logger()

REFERENTIAL_INTEGRITY = "referential_integrity"
ACTIVE_CAMPAIGN = "active_campaign"
CAMPAIGN_TYPE = "campaign"

_EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


def _campaign_age_key(campaign: Entity) -> datetime:
    return campaign.created_at or _EPOCH


def group_dangling_targets(issues: list[IntegrityIssue]) -> dict[str, set[str]]:
    """Map source entity IDs to the dangling target IDs reported for them.

    Issues without both a sourceId and a targetId are skipped.
    """
    grouped: dict[str, set[str]] = {}
    for issue in issues:
        if issue.type != REFERENTIAL_INTEGRITY:
            continue
        details = issue.details or {}
        source_id = details.get("sourceId")
        target_id = details.get("targetId")
        if not source_id or not target_id:
            logger.debug("Skipping incomplete integrity issue", message=issue.message, details=details)
            continue
        grouped.setdefault(source_id, set()).add(target_id)
    return grouped


class RepairService:
    """Fixes reported integrity issues and resets the store."""

    def __init__(self, backend: Backend) -> None:
        """Initialize repair service.

        Args:
            backend: Storage backend to repair
        """
        self.backend = backend

    async def repair(self, issues: list[IntegrityIssue]) -> int:
        """Repair what can be repaired automatically.

        Args:
            issues: Issues reported by an integrity scan

        Returns:
            Number of repairs made: one per dangling link removed, plus one if
            the active campaign pointer was reset
        """
        if not issues:
            return 0

        logger.info("Repairing integrity issues", count=len(issues))
        repaired = await self._remove_dangling_links(issues)

        if any(issue.type == ACTIVE_CAMPAIGN for issue in issues):
            repaired += await self._reset_active_campaign()

        logger.info("Integrity repair finished", repaired=repaired)
        return repaired

    async def _remove_dangling_links(self, issues: list[IntegrityIssue]) -> int:
        removed_total = 0
        for source_id, dangling in group_dangling_targets(issues).items():
            entity = await self.backend.get(source_id)
            if entity is None or not entity.links:
                logger.debug("Source entity has nothing to repair", source_id=source_id)
                continue

            valid_links = without_targets(entity.links, dangling)
            removed = len(entity.links) - len(valid_links)
            if removed:
                await self.backend.update(source_id, {"links": valid_links})
                removed_total += removed
                logger.info("Removed dangling links", source_id=source_id, count=removed)
        return removed_total

    async def _reset_active_campaign(self) -> int:
        campaigns = await self.backend.list_entities(CAMPAIGN_TYPE)
        if not campaigns:
            logger.warning("No campaign available for active campaign repair")
            return 0

        oldest = sorted(campaigns, key=_campaign_age_key)[0]
        await self.backend.set_config(ACTIVE_CAMPAIGN_KEY, oldest.id)
        logger.info("Active campaign reset", campaign_id=oldest.id)
        return 1

    async def reset(self) -> None:
        """Delete all data in every table."""
        logger.warning("Resetting database")
        await self.backend.clear()
