"""Workspace resolution: exactly one workspace per signed-in user."""

from __future__ import annotations

from typing import List, Optional

from ..core.errors import DecodeFailure, classify_error
from ..core.models import Workspace
from ..dedup.workspaces import WorkspaceDedupPlan, WorkspaceDeduplicator
from ..identity import IdentitySource
from ..reactive.serial import SerialExecutor
from ..reactive.stream import Subscription, ValueStream
from ..store.base import (
    SERVER_TIMESTAMP,
    DocumentStore,
    ListenerRegistration,
    QuerySnapshot,
    WriteBatch,
    array_contains,
)
from ..store.collections import (
    COLLECTION_WORKSPACES,
    FIELD_CREATED_DATE,
    FIELD_MEMBER_USER_IDS,
)
from ..utils.logging import get_logger

logger = get_logger(__name__)


class WorkspaceResolver:
    """
    Map the signed-in user to exactly one workspace.

    The resolver listens to every workspace whose membership contains the
    user and recomputes on each change:

    - no match: create ``{user_id}`` and emit it
    - one match: emit it
    - several matches: collapse them with ``WorkspaceDeduplicator`` in one
      batch and emit the winner

    Recomputations run on the resolver's ``SerialExecutor``. When several
    snapshots are queued only the newest one is processed. Running the
    whole algorithm on every tick makes it idempotent: a failed dedup or
    creation is logged and retried by the next snapshot.

    ``workspace`` has no value until the first resolution completes, which
    is a valid pending state rather than an error.

    Example:
        >>> resolver = WorkspaceResolver(store)
        >>> stream = resolver.resolve("u1")
        >>> workspace = await stream.wait_for(lambda w: w is not None)
    """

    def __init__(
        self,
        store: DocumentStore,
        deduplicator: Optional[WorkspaceDeduplicator] = None,
        name: str = "workspace-resolver",
    ):
        self.store = store
        self.deduplicator = deduplicator or WorkspaceDeduplicator()
        self.name = name
        self.workspace: ValueStream[Optional[Workspace]] = ValueStream(name="workspace")
        self.workspace_id: ValueStream[str] = ValueStream("", name="workspace_id")
        self.user_id = ""
        self.dedup_runs = 0
        self._executor = SerialExecutor(name)
        self._registration: Optional[ListenerRegistration] = None
        self._identity_subscription: Optional[Subscription] = None
        self._generation = 0
        self._sequence = 0
        self._latest: Optional[QuerySnapshot] = None
        self._pending_workspace_id: Optional[str] = None
        self._closed = False

    # -- public API ---------------------------------------------------------

    def resolve(self, user_id: str) -> ValueStream[Optional[Workspace]]:
        """Start (or keep) resolving ``user_id`` and return the workspace stream."""
        user_id = user_id or ""
        if self._closed:
            return self.workspace
        if user_id and user_id == self.user_id and self._registration is not None:
            return self.workspace

        self._detach()
        self.user_id = user_id
        if not user_id:
            self._publish(None)
            return self.workspace
        if self.workspace.value is not None:
            # Never show the previous user's workspace while the new one resolves
            self._publish(None)

        generation = self._generation
        logger.info(f"Resolving workspace for {user_id}", extra={"user_id": user_id})
        try:
            self._registration = self.store.listen(
                COLLECTION_WORKSPACES,
                [array_contains(FIELD_MEMBER_USER_IDS, user_id)],
                lambda snapshot: self._on_snapshot(generation, snapshot),
                self._on_error,
            )
        except Exception as e:
            logger.warning(f"Workspace listener failed ({classify_error(e).value}): {e}")
        return self.workspace

    def bind(self, identity: IdentitySource) -> Subscription:
        """Follow ``identity``: every user id change re-resolves."""
        if self._identity_subscription is not None:
            self._identity_subscription.cancel()
        self._identity_subscription = identity.user_id.subscribe(self.resolve)
        return self._identity_subscription

    @property
    def current(self) -> Optional[Workspace]:
        return self.workspace.value

    async def drain(self) -> None:
        """Wait for every queued recomputation to finish."""
        await self._executor.drain()

    async def close(self) -> None:
        """Cancel the listener synchronously, then stop the executor."""
        if self._closed:
            return
        self._closed = True
        if self._identity_subscription is not None:
            self._identity_subscription.cancel()
            self._identity_subscription = None
        self._detach()
        await self._executor.stop()
        self.workspace_id.close()
        self.workspace.close()

    # -- listener plumbing --------------------------------------------------

    def _detach(self) -> None:
        self._generation += 1
        self._latest = None
        self._pending_workspace_id = None
        if self._registration is not None:
            self._registration.remove()
            self._registration = None

    def _on_snapshot(self, generation: int, snapshot: QuerySnapshot) -> None:
        if generation != self._generation or self._closed:
            return
        self._latest = snapshot
        self._sequence += 1
        sequence = self._sequence
        self._executor.submit(lambda: self._recompute(generation, sequence))

    def _on_error(self, error: Exception) -> None:
        logger.warning(
            f"Workspace listener error ({classify_error(error).value}), "
            f"keeping {self.workspace_id.value or 'pending state'}: {error}"
        )

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation and not self._closed

    def _publish(self, workspace: Optional[Workspace]) -> None:
        if self.workspace.has_value and self.workspace.value == workspace:
            return
        self.workspace.publish(workspace)
        workspace_id = workspace.id if workspace is not None and workspace.id else ""
        if self.workspace_id.value != workspace_id:
            self.workspace_id.publish(workspace_id)

    # -- resolution ---------------------------------------------------------

    def _decode(self, snapshot: QuerySnapshot) -> List[Workspace]:
        workspaces = []
        for document in snapshot:
            try:
                workspaces.append(Workspace.from_snapshot(document))
            except DecodeFailure as e:
                logger.debug(f"Skipping undecodable workspace: {e}")
        return workspaces

    async def _recompute(self, generation: int, sequence: int) -> None:
        if not self._is_current(generation) or sequence != self._sequence:
            return
        snapshot = self._latest
        if snapshot is None:
            return
        user_id = self.user_id
        workspaces = self._decode(snapshot)

        if not workspaces:
            await self._create(generation, user_id)
            return

        self._pending_workspace_id = None
        if len(workspaces) == 1:
            self._publish(workspaces[0])
            return
        await self._deduplicate(generation, user_id, workspaces)

    async def _create(self, generation: int, user_id: str) -> None:
        if self._pending_workspace_id is not None:
            # Created earlier but not observed yet; only recreate if it is gone
            try:
                existing = await self.store.get(COLLECTION_WORKSPACES, self._pending_workspace_id)
            except Exception as e:
                logger.warning(f"Could not check pending workspace ({classify_error(e).value}): {e}")
                return
            if existing is not None or not self._is_current(generation):
                return
            self._pending_workspace_id = None

        data = {
            FIELD_MEMBER_USER_IDS: [user_id],
            FIELD_CREATED_DATE: SERVER_TIMESTAMP,
        }
        try:
            workspace_id = await self.store.add(COLLECTION_WORKSPACES, data)
        except Exception as e:
            logger.warning(
                f"Workspace creation for {user_id} failed ({classify_error(e).value}), "
                f"waiting for the next snapshot: {e}",
                extra={"user_id": user_id},
            )
            return

        if not self._is_current(generation):
            return
        logger.info(
            f"Created workspace {workspace_id} for {user_id}",
            extra={"user_id": user_id, "workspace_id": workspace_id},
        )
        self._pending_workspace_id = workspace_id
        self._publish(Workspace(id=workspace_id, member_user_ids=[user_id]))

    def _batches(self, plan: WorkspaceDedupPlan) -> List[WriteBatch]:
        """Split the plan into batches the store can commit atomically."""
        limit = self.store.max_batch_size
        if plan.operation_count <= limit:
            return [self.deduplicator.apply(plan, self.store.batch())]
        batches = []
        deletions, removals = list(plan.deletions), list(plan.removals)
        while deletions or removals:
            chunk = WorkspaceDedupPlan(user_id=plan.user_id, winner=plan.winner)
            while (deletions or removals) and chunk.operation_count < limit:
                if deletions:
                    chunk.deletions.append(deletions.pop(0))
                else:
                    chunk.removals.append(removals.pop(0))
            batches.append(self.deduplicator.apply(chunk, self.store.batch()))
        return batches

    async def _deduplicate(self, generation: int, user_id: str, workspaces: List[Workspace]) -> None:
        plan = self.deduplicator.plan(user_id, workspaces)
        self.dedup_runs += 1
        try:
            for batch in self._batches(plan):
                await batch.commit()
        except Exception as e:
            logger.warning(
                f"Dedup for {user_id} failed ({classify_error(e).value}), "
                f"keeping {self.workspace_id.value or 'pending state'}: {e}",
                extra={"user_id": user_id, "workspace_id": plan.winner.id},
            )
            return
        if self._is_current(generation):
            self._publish(plan.winner)
