"""Membership-scoped writes and the join approval transaction."""

from __future__ import annotations

from typing import Any, Dict, Optional, Union

from ..config.settings import StampPolicy, settings
from ..core.errors import BatchTooLarge, DocumentNotFound, NotAuthorized, WorkspaceUnavailable
from ..core.ids import normalize_user_ids
from ..core.models import JoinRequest, Property, Tag, Workspace
from ..dedup.workspaces import WorkspaceDeduplicator
from ..store.base import SERVER_TIMESTAMP, ArrayUnion, DocumentStore, array_contains
from ..store.collections import (
    COLLECTION_JOIN_REQUESTS,
    COLLECTION_PROPERTIES,
    COLLECTION_TAGS,
    COLLECTION_WORKSPACES,
    FIELD_CREATED_DATE,
    FIELD_MEMBER_USER_IDS,
    FIELD_UPDATED_DATE,
    FIELD_USER_ID,
    FIELD_WORKSPACE_ID,
)
from ..utils.logging import get_logger

logger = get_logger(__name__)


def _require_workspace(workspace: Optional[Workspace]) -> Workspace:
    if workspace is None or not workspace.id:
        raise WorkspaceUnavailable("No resolved workspace to write into")
    return workspace


class MembershipWriteService:
    """
    Write properties and tags stamped with their workspace's membership.

    Inserts copy ``workspace.member_user_ids`` onto the new document and let
    the store assign timestamps. Updates write the user-editable fields and
    refresh ``updatedDate``; whether they also re-stamp membership is decided
    by ``stamp_policy``.

    Join approval extends the workspace, and every property and tag the
    approver can see, to the requesting user in a single atomic batch.
    """

    def __init__(
        self,
        store: DocumentStore,
        stamp_policy: Union[StampPolicy, str, None] = None,
        deduplicator: Optional[WorkspaceDeduplicator] = None,
    ) -> None:
        self.store = store
        self.stamp_policy = StampPolicy(stamp_policy or settings.membership_stamp_policy)
        self.deduplicator = deduplicator or WorkspaceDeduplicator()

    # -- properties and tags ------------------------------------------------

    def _stamp(self, data: Dict[str, Any], workspace: Workspace) -> Dict[str, Any]:
        data[FIELD_MEMBER_USER_IDS] = list(workspace.member_user_ids)
        return data

    async def write_property(self, prop: Property, workspace: Optional[Workspace]) -> str:
        """Insert ``prop`` when it has no id, otherwise update it. Returns the id."""
        workspace = _require_workspace(workspace)
        if not prop.id:
            data = self._stamp(prop.to_document(), workspace)
            data[FIELD_CREATED_DATE] = SERVER_TIMESTAMP
            data[FIELD_UPDATED_DATE] = SERVER_TIMESTAMP
            property_id = await self.store.add(COLLECTION_PROPERTIES, data)
            logger.info(
                f"Created property {property_id} in workspace {workspace.id}",
                extra={"workspace_id": workspace.id, "collection": COLLECTION_PROPERTIES, "document_id": property_id},
            )
            return property_id

        data = prop.scalar_document()
        data[FIELD_UPDATED_DATE] = SERVER_TIMESTAMP
        if self.stamp_policy is StampPolicy.ON_EVERY_WRITE:
            self._stamp(data, workspace)
        await self.store.update(COLLECTION_PROPERTIES, prop.id, data)
        logger.debug(f"Updated property {prop.id}")
        return prop.id

    async def write_tag(self, tag: Tag, workspace: Optional[Workspace]) -> str:
        """Insert ``tag`` when it has no id, otherwise update it. Returns the id."""
        workspace = _require_workspace(workspace)
        if not tag.id:
            tag_id = await self.store.add(COLLECTION_TAGS, self._stamp(tag.to_document(), workspace))
            logger.info(
                f"Created tag {tag_id} '{tag.name}' in workspace {workspace.id}",
                extra={"workspace_id": workspace.id, "collection": COLLECTION_TAGS, "document_id": tag_id},
            )
            return tag_id

        data = tag.scalar_document()
        if self.stamp_policy is StampPolicy.ON_EVERY_WRITE:
            self._stamp(data, workspace)
        await self.store.update(COLLECTION_TAGS, tag.id, data)
        return tag.id

    async def get_property(self, property_id: str) -> Optional[Property]:
        snapshot = await self.store.get(COLLECTION_PROPERTIES, property_id)
        return Property.from_snapshot(snapshot) if snapshot else None

    async def get_tag(self, tag_id: str) -> Optional[Tag]:
        snapshot = await self.store.get(COLLECTION_TAGS, tag_id)
        return Tag.from_snapshot(snapshot) if snapshot else None

    async def delete_property(self, property_id: str) -> None:
        await self.store.delete(COLLECTION_PROPERTIES, property_id)
        logger.info(f"Deleted property {property_id}")

    async def delete_tag(self, tag_id: str) -> None:
        await self.store.delete(COLLECTION_TAGS, tag_id)
        logger.info(f"Deleted tag {tag_id}")

    # -- workspaces and join requests ---------------------------------------

    async def current_workspace_for(self, user_id: str) -> Optional[Workspace]:
        """One-shot lookup of the user's canonical workspace."""
        if not user_id:
            return None
        snapshots = await self.store.query(
            COLLECTION_WORKSPACES, [array_contains(FIELD_MEMBER_USER_IDS, user_id)]
        )
        workspaces = [Workspace.from_snapshot(snapshot) for snapshot in snapshots]
        if not workspaces:
            return None
        return self.deduplicator.select_canonical(workspaces)

    async def create_join_request(self, workspace_id: str, user_id: str) -> str:
        """Ask to join ``workspace_id``.

        Pending requests from the same user are not deduplicated.
        """
        if not workspace_id or not user_id:
            raise ValueError("workspace_id and user_id are required")
        request_id = await self.store.add(
            COLLECTION_JOIN_REQUESTS,
            {
                FIELD_WORKSPACE_ID: workspace_id,
                FIELD_USER_ID: user_id,
                FIELD_CREATED_DATE: SERVER_TIMESTAMP,
            },
        )
        logger.info(
            f"User {user_id} requested to join workspace {workspace_id} ({request_id})",
            extra={"user_id": user_id, "workspace_id": workspace_id, "request_id": request_id},
        )
        return request_id

    async def approve_join_request(self, request_id: str, approver_user_id: str) -> Workspace:
        """
        Add the requesting user to the approver's workspace.

        One batch adds the user to the workspace, to every property and tag
        whose membership contains the approver, and deletes the request.
        Nothing is written unless the whole batch fits the store's atomic
        capacity.

        Returns:
            The workspace with its extended membership

        Raises:
            DocumentNotFound: If the request does not exist
            NotAuthorized: If the approver is not in the requested workspace
            BatchTooLarge: If the batch exceeds the store's atomic limit
        """
        snapshot = await self.store.get(COLLECTION_JOIN_REQUESTS, request_id)
        if snapshot is None:
            raise DocumentNotFound(COLLECTION_JOIN_REQUESTS, request_id)
        request = JoinRequest.from_snapshot(snapshot)

        workspace = await self.current_workspace_for(approver_user_id)
        if workspace is None or workspace.id != request.workspace_id:
            raise NotAuthorized(
                f"User {approver_user_id} is not a member of workspace {request.workspace_id}"
            )

        owned = [array_contains(FIELD_MEMBER_USER_IDS, approver_user_id)]
        properties = await self.store.query(COLLECTION_PROPERTIES, owned)
        tags = await self.store.query(COLLECTION_TAGS, owned)

        context = {"user_id": request.user_id, "workspace_id": request.workspace_id, "request_id": request_id}
        union = {FIELD_MEMBER_USER_IDS: ArrayUnion([request.user_id])}
        batch = self.store.batch()
        batch.update(COLLECTION_WORKSPACES, request.workspace_id, union)
        for document in properties:
            batch.update(COLLECTION_PROPERTIES, document.id, union)
        for document in tags:
            batch.update(COLLECTION_TAGS, document.id, union)
        batch.delete(COLLECTION_JOIN_REQUESTS, request_id)

        if len(batch) > self.store.max_batch_size:
            logger.warning(
                f"Join approval {request_id} needs {len(batch)} writes, "
                f"limit is {self.store.max_batch_size}",
                extra=context,
            )
            raise BatchTooLarge(len(batch), self.store.max_batch_size)

        await batch.commit()
        logger.info(
            f"Approved {request.user_id} into workspace {request.workspace_id} "
            f"({len(properties)} properties, {len(tags)} tags)",
            extra=context,
        )
        members = normalize_user_ids([*workspace.member_user_ids, request.user_id])
        return workspace.model_copy(update={"member_user_ids": members})
