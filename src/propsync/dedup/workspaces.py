"""Deterministic deduplication of workspaces that share a user."""

from typing import List, Sequence

from pydantic import BaseModel, Field

from ..core.models import Workspace
from ..store.base import ArrayRemove, WriteBatch
from ..store.collections import COLLECTION_WORKSPACES, FIELD_MEMBER_USER_IDS
from ..utils.logging import get_logger

logger = get_logger(__name__)


class WorkspaceDedupPlan(BaseModel):
    """Writes that collapse every workspace containing ``user_id`` into one."""

    user_id: str
    winner: Workspace
    deletions: List[str] = Field(default_factory=list)
    removals: List[str] = Field(default_factory=list)

    @property
    def operation_count(self) -> int:
        return len(self.deletions) + len(self.removals)

    @property
    def is_noop(self) -> bool:
        return self.operation_count == 0


class WorkspaceDeduplicator:
    """
    Pick one canonical workspace per user and plan the repair of the rest.

    Strategy:
    1. Rank by membership size, largest first
    2. Break ties by document id, ascending
    3. The first workspace wins; every other one either disappears (at most
       ``delete_threshold`` members) or just loses the user

    The plan depends only on the set of input workspaces, never on their
    order, so every client that observes the same state computes the same
    plan and concurrent repairs converge.
    """

    def __init__(self, delete_threshold: int = 1) -> None:
        self.delete_threshold = delete_threshold

    @staticmethod
    def _rank_key(workspace: Workspace):
        return (-workspace.member_count, workspace.id or "")

    def rank(self, workspaces: Sequence[Workspace]) -> List[Workspace]:
        return sorted(workspaces, key=self._rank_key)

    def select_canonical(self, workspaces: Sequence[Workspace]) -> Workspace:
        if not workspaces:
            raise ValueError("Cannot select a canonical workspace from an empty list")
        return min(workspaces, key=self._rank_key)

    def plan(self, user_id: str, workspaces: Sequence[Workspace]) -> WorkspaceDedupPlan:
        ranked = self.rank(workspaces)
        if not ranked:
            raise ValueError("Cannot deduplicate an empty list of workspaces")
        winner, losers = ranked[0], ranked[1:]
        plan = WorkspaceDedupPlan(user_id=user_id, winner=winner)
        for loser in losers:
            if loser.id is None:
                continue
            if loser.member_count <= self.delete_threshold:
                plan.deletions.append(loser.id)
            else:
                plan.removals.append(loser.id)
        if losers:
            logger.info(
                f"Dedup for {user_id}: keep {winner.id} ({winner.member_count} members), "
                f"delete {len(plan.deletions)}, detach from {len(plan.removals)}"
            )
        return plan

    def apply(self, plan: WorkspaceDedupPlan, batch: WriteBatch) -> WriteBatch:
        """Record the plan's writes on ``batch`` without committing."""
        for workspace_id in plan.deletions:
            batch.delete(COLLECTION_WORKSPACES, workspace_id)
        for workspace_id in plan.removals:
            batch.update(
                COLLECTION_WORKSPACES,
                workspace_id,
                {FIELD_MEMBER_USER_IDS: ArrayRemove([plan.user_id])},
            )
        return batch
