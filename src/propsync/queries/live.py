"""Live mirrors of filtered store collections."""

from __future__ import annotations

from typing import Any, Callable, Generic, Optional, Tuple, TypeVar

from ..core.errors import DecodeFailure, classify_error
from ..core.models import JoinRequest, Property, Tag
from ..reactive.stream import Subscription, ValueStream
from ..store.base import (
    ARRAY_CONTAINS,
    EQUALS,
    DocumentSnapshot,
    DocumentStore,
    Filter,
    ListenerRegistration,
    QuerySnapshot,
)
from ..store.collections import (
    COLLECTION_JOIN_REQUESTS,
    COLLECTION_PROPERTIES,
    COLLECTION_TAGS,
    FIELD_MEMBER_USER_IDS,
    FIELD_WORKSPACE_ID,
)
from ..utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

Decoder = Callable[[DocumentSnapshot], T]


class LiveCollection(Generic[T]):
    """
    Reactive mirror of the documents matching ``<field> <op> <key>``.

    The key comes from ``key_stream`` (a user id or a workspace id). Every
    distinct key swaps the store listener: the previous registration is
    removed synchronously before the new one is created, so a stale
    listener never publishes. Each store notification republishes the full
    decoded result set as a tuple in store order on ``items``.

    Documents that fail to decode are left out of the published tuple.
    An empty key publishes ``()`` and holds no listener.

    Must be created while an event loop is running: store listeners
    deliver on the loop that registered them.

    Attributes:
        items: Stream of decoded result tuples
        key: Key of the active listener, ``""`` when idle
        skipped: Documents dropped by the last snapshot because they failed to decode
    """

    def __init__(
        self,
        store: DocumentStore,
        collection: str,
        decode: Decoder,
        key_stream: ValueStream[str],
        field: str = FIELD_MEMBER_USER_IDS,
        op: str = ARRAY_CONTAINS,
        name: Optional[str] = None,
    ):
        self.store = store
        self.collection = collection
        self.decode = decode
        self.field = field
        self.op = op
        self.name = name or collection
        self.items: ValueStream[Tuple[T, ...]] = ValueStream((), name=f"{self.name}.items")
        self.key = ""
        self.skipped = 0
        self.last_error: Optional[Exception] = None
        self._registration: Optional[ListenerRegistration] = None
        self._closed = False
        self._key_subscription: Subscription = key_stream.subscribe(self._on_key)

    @property
    def value(self) -> Tuple[T, ...]:
        return self.items.value or ()

    @property
    def listening(self) -> bool:
        return self._registration is not None and self._registration.active

    def _on_key(self, key: Optional[str]) -> None:
        key = key or ""
        if self._closed or key == self.key:
            return
        self._detach()
        self.key = key
        if not key:
            logger.debug(f"{self.name}: key cleared, publishing empty set")
            self._publish(())
            return
        logger.debug(f"{self.name}: subscribing with key {key}")
        try:
            self._registration = self.store.listen(
                self.collection,
                [Filter(self.field, self.op, key)],
                lambda snapshot: self._on_snapshot(key, snapshot),
                self._on_error,
            )
        except Exception as e:
            self.last_error = e
            logger.warning(f"{self.name}: listen failed ({classify_error(e).value}): {e}")

    def _on_snapshot(self, key: str, snapshot: QuerySnapshot) -> None:
        if self._closed or key != self.key:
            return
        decoded = []
        skipped = 0
        for document in snapshot:
            try:
                decoded.append(self.decode(document))
            except DecodeFailure as e:
                skipped += 1
                logger.debug(f"{self.name}: skipping {e}")
        self.skipped = skipped
        self._publish(tuple(decoded))

    def _on_error(self, error: Exception) -> None:
        self.last_error = error
        logger.warning(
            f"{self.name}: listener error ({classify_error(error).value}), "
            f"keeping last result set: {error}"
        )

    def _publish(self, items: Tuple[T, ...]) -> None:
        self.items.publish(items)

    def _detach(self) -> None:
        if self._registration is not None:
            self._registration.remove()
            self._registration = None

    def close(self) -> None:
        """Remove the store listener synchronously and stop following the key."""
        if self._closed:
            return
        self._closed = True
        self._key_subscription.cancel()
        self._detach()
        self.items.close()

    def __enter__(self) -> "LiveCollection[T]":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def property_query(store: DocumentStore, user_id: ValueStream[str]) -> LiveCollection[Property]:
    """Properties whose membership contains the signed-in user."""
    return LiveCollection(store, COLLECTION_PROPERTIES, Property.from_snapshot, user_id, name="properties")


def tag_query(store: DocumentStore, user_id: ValueStream[str]) -> LiveCollection[Tag]:
    """Tags whose membership contains the signed-in user."""
    return LiveCollection(store, COLLECTION_TAGS, Tag.from_snapshot, user_id, name="tags")


def join_request_query(store: DocumentStore, workspace_id: ValueStream[str]) -> LiveCollection[JoinRequest]:
    """Pending join requests addressed to the resolved workspace."""
    return LiveCollection(
        store,
        COLLECTION_JOIN_REQUESTS,
        JoinRequest.from_snapshot,
        workspace_id,
        field=FIELD_WORKSPACE_ID,
        op=EQUALS,
        name="join_requests",
    )
