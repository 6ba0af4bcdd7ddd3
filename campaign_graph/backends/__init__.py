"""Backend implementations."""

from campaign_graph.backends.sqlite import SQLiteBackend

__all__ = ["SQLiteBackend"]
