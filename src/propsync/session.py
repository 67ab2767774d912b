"""Wiring of the query objects and services for one signed-in client."""

from __future__ import annotations

from typing import Any, Optional

from .config.settings import Settings, settings as default_settings
from .core.errors import WorkspaceUnavailable
from .core.models import (
    ImportResult,
    JoinRequest,
    ListingPayload,
    PortableExportDocument,
    Property,
    Tag,
    Workspace,
)
from .dedup.workspaces import WorkspaceDeduplicator
from .identity import IdentitySource
from .io.payload import save_listing
from .io.portable import MergeImportExportService, RawDocument
from .queries.live import LiveCollection, join_request_query, property_query, tag_query
from .queries.workspace import WorkspaceResolver
from .services.membership import MembershipWriteService
from .store.base import DocumentStore
from .utils.logging import get_logger

logger = get_logger(__name__)


class SyncSession:
    """
    One client's view of the shared store.

    Builds the workspace resolver, the live collections and the write
    services around an explicit store and identity, then wires them so an
    identity change re-resolves the workspace and every collection follows
    its key. Nothing here is process-wide state; two sessions over two
    clients of one ``MemoryBackend`` behave like two devices.

    Must be created while an event loop is running.

    Example:
        >>> async with SyncSession(store, ManualIdentitySource("u1")) as session:
        ...     workspace = await session.wait_for_workspace()
        ...     await session.save_property(Property(title="Villa X"))
    """

    def __init__(
        self,
        store: DocumentStore,
        identity: IdentitySource,
        config: Optional[Settings] = None,
    ):
        self.config = config or default_settings
        self.store = store
        self.identity = identity
        deduplicator = WorkspaceDeduplicator()

        self.resolver = WorkspaceResolver(store, deduplicator=deduplicator)
        self.writer = MembershipWriteService(
            store,
            stamp_policy=self.config.membership_stamp_policy,
            deduplicator=deduplicator,
        )
        self.portable = MergeImportExportService(store, export_version=self.config.export_version)

        self.properties: LiveCollection[Property] = property_query(store, identity.user_id)
        self.tags: LiveCollection[Tag] = tag_query(store, identity.user_id)
        self.join_requests: LiveCollection[JoinRequest] = join_request_query(store, self.resolver.workspace_id)
        self.resolver.bind(identity)
        self._closed = False

    @property
    def user_id(self) -> str:
        return self.identity.current_user_id

    @property
    def workspace(self) -> Optional[Workspace]:
        return self.resolver.current

    def require_workspace(self) -> Workspace:
        """The resolved workspace.

        Raises:
            WorkspaceUnavailable: While resolution is still pending or signed out.
        """
        workspace = self.resolver.current
        if workspace is None or not workspace.id:
            raise WorkspaceUnavailable("Workspace resolution is pending")
        return workspace

    async def wait_for_workspace(self, timeout: Optional[float] = None) -> Workspace:
        return await self.resolver.workspace.wait_for(lambda w: w is not None and bool(w.id), timeout)

    async def save_property(self, prop: Property) -> str:
        return await self.writer.write_property(prop, self.require_workspace())

    async def save_tag(self, tag: Tag) -> str:
        return await self.writer.write_tag(tag, self.require_workspace())

    async def save_listing(self, payload: ListingPayload) -> str:
        return await save_listing(payload, self.writer, self.require_workspace())

    async def request_to_join(self, workspace_id: str) -> str:
        if not self.user_id:
            raise WorkspaceUnavailable("Sign in before requesting to join a workspace")
        return await self.writer.create_join_request(workspace_id, self.user_id)

    async def approve_join_request(self, request_id: str) -> Workspace:
        return await self.writer.approve_join_request(request_id, self.user_id)

    async def export(self) -> PortableExportDocument:
        return await self.portable.export_workspace(self.require_workspace())

    async def import_json(self, data: RawDocument, replace_existing: bool = False) -> ImportResult:
        return await self.portable.import_json(data, self.require_workspace(), replace_existing)

    async def settle(self) -> None:
        """Let pending resolver work finish."""
        await self.resolver.drain()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.properties.close()
        self.tags.close()
        self.join_requests.close()
        await self.resolver.close()
        logger.debug("Session closed")

    async def __aenter__(self) -> "SyncSession":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
