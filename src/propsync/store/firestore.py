"""Google Cloud Firestore backend.

The synchronous ``google-cloud-firestore`` client is driven through
``asyncio.to_thread`` so no call blocks the event loop. Snapshot watches
fire on a background thread and are handed back to the loop that created
the listener.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

from google.api_core import exceptions as google_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..config.settings import settings
from ..config.store_config import get_store_config
from ..core.errors import DocumentNotFound, NotAuthorized, StoreUnavailable
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
    _ServerTimestamp,
)

logger = get_logger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS = (
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    google_exceptions.InternalServerError,
)


def _to_firestore_value(value: Any) -> Any:
    if isinstance(value, _ServerTimestamp):
        return firestore.SERVER_TIMESTAMP
    if isinstance(value, ArrayUnion):
        return firestore.ArrayUnion(list(value.values))
    if isinstance(value, ArrayRemove):
        return firestore.ArrayRemove(list(value.values))
    return value


def _to_firestore_data(data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return {key: _to_firestore_value(value) for key, value in (data or {}).items()}


def _translate_error(error: Exception, collection: str = "", document_id: str = "") -> Exception:
    """Map Google API errors onto the package error taxonomy."""
    if isinstance(error, google_exceptions.NotFound):
        return DocumentNotFound(collection, document_id)
    if isinstance(error, google_exceptions.PermissionDenied):
        return NotAuthorized(str(error))
    if isinstance(error, TRANSIENT_ERRORS):
        return StoreUnavailable(str(error))
    return error


def _snapshot(collection: str, doc: Any) -> DocumentSnapshot:
    return DocumentSnapshot(collection, doc.id, doc.to_dict() or {})


class FirestoreListenerRegistration(ListenerRegistration):
    """Wraps a Firestore watch and drops deliveries after ``remove``."""

    def __init__(
        self,
        collection: str,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback],
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        self.collection = collection
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        self.loop = loop
        self.watch: Any = None
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def remove(self) -> None:
        self._active = False
        if self.watch is not None:
            self.watch.unsubscribe()

    def handle(self, docs: List[Any], changes: Any, read_time: Any) -> None:
        """Watch callback, runs on the Firestore background thread."""
        if not self._active:
            return
        snapshot = QuerySnapshot(tuple(_snapshot(self.collection, doc) for doc in docs))
        self.loop.call_soon_threadsafe(self._deliver, snapshot)

    def _deliver(self, snapshot: QuerySnapshot) -> None:
        if not self._active:
            return
        try:
            self.on_snapshot(snapshot)
        except Exception as e:
            if self.on_error is None:
                raise
            self.on_error(e)


class FirestoreWriteBatch(WriteBatch):
    async def _commit(self) -> None:
        await self.store._commit_batch(self)


class FirestoreDocumentStore(DocumentStore):
    """Document store backed by a Cloud Firestore database.

    Reads are retried on transient Google API errors with exponential
    backoff. Writes are not retried: the resolver and the join approval
    already retry at a higher level.
    """

    def __init__(
        self,
        project: Optional[str] = None,
        database: Optional[str] = None,
        client: Optional[Any] = None,
        max_batch_size: Optional[int] = None,
    ) -> None:
        config = get_store_config("firestore")
        super().__init__(max_batch_size=max_batch_size or config.max_batch_writes)
        self.backend_name = "firestore"
        self.retry_attempts = settings.store_retry_attempts or config.retry.attempts
        self.retry_max_wait = settings.store_retry_max_wait or config.retry.max_wait
        self.client = client or firestore.Client(
            project=project or settings.firestore_project,
            database=database or settings.firestore_database,
        )

    async def _read(self, fn: Callable[..., T], *args: Any, collection: str = "", document_id: str = "") -> T:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.retry_attempts),
                wait=wait_exponential(multiplier=0.5, min=0.5, max=self.retry_max_wait),
                retry=retry_if_exception_type(TRANSIENT_ERRORS),
                reraise=True,
            ):
                with attempt:
                    return await asyncio.to_thread(fn, *args)
        except google_exceptions.GoogleAPICallError as e:
            raise _translate_error(e, collection, document_id) from e
        raise StoreUnavailable("Read retries exhausted")

    async def _write(self, fn: Callable[..., T], *args: Any, collection: str = "", document_id: str = "") -> T:
        try:
            return await asyncio.to_thread(fn, *args)
        except google_exceptions.GoogleAPICallError as e:
            raise _translate_error(e, collection, document_id) from e

    def _query(self, collection: str, filters: Sequence[Filter]) -> Any:
        query: Any = self.client.collection(collection)
        for f in filters:
            query = query.where(filter=FieldFilter(f.field, f.op, f.value))
        return query

    def new_document_id(self) -> str:
        # Any collection generates ids from the same alphabet
        return self.client.collection("_ids").document().id

    async def get(self, collection: str, document_id: str) -> Optional[DocumentSnapshot]:
        ref = self.client.collection(collection).document(document_id)
        doc = await self._read(ref.get, collection=collection, document_id=document_id)
        if not doc.exists:
            return None
        return _snapshot(collection, doc)

    async def query(self, collection: str, filters: Sequence[Filter] = ()) -> List[DocumentSnapshot]:
        query = self._query(collection, filters)
        docs = await self._read(lambda: list(query.stream()), collection=collection)
        return [_snapshot(collection, doc) for doc in docs]

    async def add(self, collection: str, data: Dict[str, Any]) -> str:
        ref = self.client.collection(collection).document()
        await self._write(ref.set, _to_firestore_data(data), collection=collection, document_id=ref.id)
        return ref.id

    async def set(self, collection: str, document_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        ref = self.client.collection(collection).document(document_id)
        await self._write(
            lambda: ref.set(_to_firestore_data(data), merge=merge),
            collection=collection,
            document_id=document_id,
        )

    async def update(self, collection: str, document_id: str, data: Dict[str, Any]) -> None:
        ref = self.client.collection(collection).document(document_id)
        await self._write(ref.update, _to_firestore_data(data), collection=collection, document_id=document_id)

    async def delete(self, collection: str, document_id: str) -> None:
        ref = self.client.collection(collection).document(document_id)
        await self._write(ref.delete, collection=collection, document_id=document_id)

    def batch(self) -> WriteBatch:
        return FirestoreWriteBatch(store=self)

    async def _commit_batch(self, batch: WriteBatch) -> None:
        native = self.client.batch()
        for op in batch.ops:
            ref = self.client.collection(op.collection).document(op.document_id)
            if op.kind == CREATE:
                native.create(ref, _to_firestore_data(op.data))
            elif op.kind == SET:
                native.set(ref, _to_firestore_data(op.data), merge=op.merge)
            elif op.kind == UPDATE:
                native.update(ref, _to_firestore_data(op.data))
            elif op.kind == DELETE:
                native.delete(ref)
        logger.debug(f"Committing Firestore batch of {len(batch.ops)} writes")
        await self._write(native.commit)

    def listen(
        self,
        collection: str,
        filters: Sequence[Filter],
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> ListenerRegistration:
        registration = FirestoreListenerRegistration(
            collection, on_snapshot, on_error, asyncio.get_running_loop()
        )
        query = self._query(collection, filters)
        try:
            registration.watch = query.on_snapshot(registration.handle)
        except google_exceptions.GoogleAPICallError as e:
            registration.remove()
            raise _translate_error(e, collection) from e
        return registration
