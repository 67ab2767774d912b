"""Workspace deduplication."""

from .workspaces import WorkspaceDedupPlan, WorkspaceDeduplicator  # noqa: F401
