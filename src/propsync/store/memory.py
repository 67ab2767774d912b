"""In-process document store used by tests and multi-client simulations.

Several ``InMemoryDocumentStore`` client views can share one
``MemoryBackend``. Each client has its own online flag and its own
listeners, which is enough to reproduce the races the workspace resolver
has to survive (two clients creating a workspace for the same user).
"""

from __future__ import annotations

import asyncio
import copy
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..core.errors import DocumentNotFound, StoreUnavailable
from ..core.ids import generate_document_id
from ..utils.logging import get_logger
from .base import (
    CREATE,
    DELETE,
    SET,
    UPDATE,
    ArrayRemove,
    ArrayUnion,
    DocumentSnapshot,
    DocumentStore,
    ErrorCallback,
    Filter,
    ListenerRegistration,
    QuerySnapshot,
    SnapshotCallback,
    WriteBatch,
    WriteOp,
    _ServerTimestamp,
)

logger = get_logger(__name__)

Collections = Dict[str, Dict[str, Dict[str, Any]]]


def _resolve_value(value: Any, existing: Any, now: datetime) -> Any:
    """Apply a write sentinel against the currently stored value."""
    if isinstance(value, _ServerTimestamp):
        return now
    if isinstance(value, ArrayUnion):
        current = list(existing) if isinstance(existing, list) else []
        for item in value.values:
            if item not in current:
                current.append(item)
        return current
    if isinstance(value, ArrayRemove):
        current = list(existing) if isinstance(existing, list) else []
        return [item for item in current if item not in value.values]
    return copy.deepcopy(value)


def _merge_fields(target: Dict[str, Any], data: Dict[str, Any], now: datetime) -> Dict[str, Any]:
    for key, value in data.items():
        target[key] = _resolve_value(value, target.get(key), now)
    return target


def _apply_op(collections: Collections, op: WriteOp, now: datetime) -> None:
    docs = collections.setdefault(op.collection, {})
    if op.kind == DELETE:
        docs.pop(op.document_id, None)
        return
    if op.kind == UPDATE:
        if op.document_id not in docs:
            raise DocumentNotFound(op.collection, op.document_id)
        _merge_fields(docs[op.document_id], op.data or {}, now)
        return
    if op.kind == SET and op.merge and op.document_id in docs:
        _merge_fields(docs[op.document_id], op.data or {}, now)
        return
    if op.kind in (CREATE, SET):
        docs[op.document_id] = _merge_fields({}, op.data or {}, now)
        return
    raise ValueError(f"Unknown write kind '{op.kind}'")


@dataclass
class _InjectedFailure:
    after_ops: int
    error: Exception


class MemoryBackend:
    """Shared state behind one or more simulated clients."""

    def __init__(self) -> None:
        self._collections: Collections = {}
        self._clients: List["InMemoryDocumentStore"] = []
        self.commit_count = 0

    def connect(self, **kwargs: Any) -> "InMemoryDocumentStore":
        """Create a new client view over this backend."""
        return InMemoryDocumentStore(backend=self, **kwargs)

    def _attach(self, client: "InMemoryDocumentStore") -> None:
        self._clients.append(client)

    def _detach(self, client: "InMemoryDocumentStore") -> None:
        if client in self._clients:
            self._clients.remove(client)

    def read(self, collection: str, document_id: str) -> Optional[DocumentSnapshot]:
        body = self._collections.get(collection, {}).get(document_id)
        if body is None:
            return None
        return DocumentSnapshot(collection, document_id, copy.deepcopy(body))

    def documents(self, collection: str, filters: Sequence[Filter] = ()) -> List[DocumentSnapshot]:
        """Matching documents in insertion order."""
        result = []
        for document_id, body in self._collections.get(collection, {}).items():
            if all(f.matches(body) for f in filters):
                result.append(DocumentSnapshot(collection, document_id, copy.deepcopy(body)))
        return result

    def dump(self) -> Collections:
        """Deep copy of every collection, for before/after comparisons."""
        return copy.deepcopy(self._collections)

    def commit(self, ops: Sequence[WriteOp], failure: Optional[_InjectedFailure] = None) -> None:
        """Apply ops to a staged copy and swap it in only if all succeed."""
        now = datetime.now(timezone.utc)
        staged = copy.deepcopy(self._collections)
        for index, op in enumerate(ops):
            if failure is not None and index == failure.after_ops:
                raise failure.error
            _apply_op(staged, op, now)
        if failure is not None:
            raise failure.error
        self._collections = staged
        self.commit_count += 1
        for client in list(self._clients):
            client._notify_listeners()


class MemoryListenerRegistration(ListenerRegistration):
    """Live query bound to one client and one event loop."""

    def __init__(
        self,
        client: "InMemoryDocumentStore",
        collection: str,
        filters: Sequence[Filter],
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback],
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        self.client = client
        self.collection = collection
        self.filters = tuple(filters)
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        self.loop = loop
        self._active = True
        self._last: Optional[Tuple[Tuple[str, Any], ...]] = None

    @property
    def active(self) -> bool:
        return self._active

    def remove(self) -> None:
        self._active = False
        self.client._unregister(self)

    def schedule(self, force: bool = False) -> None:
        docs = self.client.backend.documents(self.collection, self.filters)
        signature = tuple((doc.id, doc.data) for doc in docs)
        if not force and signature == self._last:
            return
        self._last = signature
        self.loop.call_soon(self._deliver, QuerySnapshot(tuple(docs)))

    def schedule_error(self, error: Exception) -> None:
        if self.on_error is not None:
            self.loop.call_soon(self._deliver_error, error)

    def _deliver(self, snapshot: QuerySnapshot) -> None:
        # Removal may happen after scheduling; drop the stale delivery
        if not self._active or not self.client.online:
            return
        self.on_snapshot(snapshot)

    def _deliver_error(self, error: Exception) -> None:
        if self._active and self.on_error is not None:
            self.on_error(error)


class MemoryWriteBatch(WriteBatch):
    async def _commit(self) -> None:
        await self.store._commit_ops(self.ops)


class InMemoryDocumentStore(DocumentStore):
    """One simulated client of a shared ``MemoryBackend``.

    Args:
        backend: Shared state. A private backend is created when omitted.
        max_batch_size: Largest batch accepted by ``commit``.
        latency: Seconds each remote call waits before touching the backend.
    """

    def __init__(
        self,
        backend: Optional[MemoryBackend] = None,
        max_batch_size: Optional[int] = None,
        latency: float = 0.0,
        online: bool = True,
    ) -> None:
        super().__init__(max_batch_size=max_batch_size)
        self.backend_name = "memory"
        self.backend = backend or MemoryBackend()
        self.latency = latency
        self.online = online
        self._listeners: List[MemoryListenerRegistration] = []
        self._failure: Optional[_InjectedFailure] = None
        self.backend._attach(self)

    # -- connectivity -------------------------------------------------------

    def set_online(self, online: bool) -> None:
        """Toggle connectivity. Reconnecting resends every live result set."""
        was_online = self.online
        self.online = online
        logger.debug(f"Memory client {id(self):x} online={online}")
        if online and not was_online:
            for registration in list(self._listeners):
                registration.schedule(force=True)

    def fail_next_commit(self, after_ops: int = 0, error: Optional[Exception] = None) -> None:
        """Make the next commit raise after staging ``after_ops`` writes."""
        self._failure = _InjectedFailure(
            after_ops=after_ops,
            error=error or StoreUnavailable(f"Injected failure after {after_ops} writes"),
        )

    def emit_listener_error(self, error: Exception) -> None:
        """Deliver an error to every active listener of this client."""
        for registration in list(self._listeners):
            registration.schedule_error(error)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def _remote(self) -> None:
        await asyncio.sleep(self.latency)
        if not self.online:
            raise StoreUnavailable("Client is offline")

    async def _commit_ops(self, ops: Sequence[WriteOp]) -> None:
        await self._remote()
        failure, self._failure = self._failure, None
        self.backend.commit(ops, failure)

    def _notify_listeners(self) -> None:
        if not self.online:
            return
        for registration in list(self._listeners):
            registration.schedule()

    def _unregister(self, registration: MemoryListenerRegistration) -> None:
        if registration in self._listeners:
            self._listeners.remove(registration)

    # -- DocumentStore ------------------------------------------------------

    def new_document_id(self) -> str:
        return generate_document_id()

    async def get(self, collection: str, document_id: str) -> Optional[DocumentSnapshot]:
        await self._remote()
        return self.backend.read(collection, document_id)

    async def query(self, collection: str, filters: Sequence[Filter] = ()) -> List[DocumentSnapshot]:
        await self._remote()
        return self.backend.documents(collection, filters)

    async def add(self, collection: str, data: Dict[str, Any]) -> str:
        document_id = self.new_document_id()
        await self._commit_ops([WriteOp(CREATE, collection, document_id, dict(data))])
        return document_id

    async def set(self, collection: str, document_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        await self._commit_ops([WriteOp(SET, collection, document_id, dict(data), merge)])

    async def update(self, collection: str, document_id: str, data: Dict[str, Any]) -> None:
        await self._commit_ops([WriteOp(UPDATE, collection, document_id, dict(data))])

    async def delete(self, collection: str, document_id: str) -> None:
        await self._commit_ops([WriteOp(DELETE, collection, document_id)])

    def batch(self) -> WriteBatch:
        return MemoryWriteBatch(store=self)

    def listen(
        self,
        collection: str,
        filters: Sequence[Filter],
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> ListenerRegistration:
        registration = MemoryListenerRegistration(
            self, collection, filters, on_snapshot, on_error, asyncio.get_running_loop()
        )
        self._listeners.append(registration)
        if self.online:
            registration.schedule(force=True)
        return registration

    def close(self) -> None:
        for registration in list(self._listeners):
            registration.remove()
        self.backend._detach(self)
