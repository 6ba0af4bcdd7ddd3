"""Database maintenance commands for campaign-graph CLI."""

from pathlib import Path

import structlog
import yaml
from cyclopts import App

from campaign_graph.backend import ACTIVE_CAMPAIGN_KEY, Backend
from campaign_graph.models import IntegrityIssue
from campaign_graph.repair import RepairService

logger = structlog.get_logger()

db_app = App(name="db", help="Repair or reset the database")


def load_issues(path: Path) -> list[IntegrityIssue]:
    """Read integrity issues from a YAML or JSON file.

    The file holds a list of issues, or a mapping with an "issues" list as
    written by the integrity scanner.
    """
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or []
    except (OSError, yaml.YAMLError) as e:
        raise ValueError(f"Failed to read issues from {path}: {e}") from e

    if isinstance(data, dict):
        data = data.get("issues", [])
    if not isinstance(data, list):
        raise ValueError(f"Expected a list of issues in {path}")

    issues = [IntegrityIssue.from_dict(item) for item in data]
    logger.debug("Loaded integrity issues", path=str(path), count=len(issues))
    return issues


@db_app.command
def repair(issues_file: Path) -> None:
    """Repair the issues reported in a scan file."""
    from campaign_graph.cli import run_with_backend

    issues = load_issues(issues_file)

    async def work(backend: Backend) -> int:
        return await RepairService(backend).repair(issues)

    repaired = run_with_backend(work)
    print(f"Repaired {repaired} issue(s) out of {len(issues)} reported")


@db_app.command
def reset(yes: bool = False) -> None:
    """Delete all data. Requires --yes."""
    from campaign_graph.cli import run_with_backend

    if not yes:
        print("Refusing to reset without --yes")
        return

    async def work(backend: Backend) -> None:
        await RepairService(backend).reset()

    run_with_backend(work)
    print("Database reset")


@db_app.command
def status() -> None:
    """Show entity count and the active campaign."""
    from campaign_graph.cli import run_with_backend

    async def work(backend: Backend):
        return await backend.count(), await backend.get_config(ACTIVE_CAMPAIGN_KEY)

    count, active_campaign = run_with_backend(work)
    print(f"Entities: {count}")
    print(f"Active campaign: {active_campaign or 'not set'}")
