"""Document store backends.

``InMemoryDocumentStore`` is the reference store used by tests and by
multi-client simulations. ``FirestoreDocumentStore`` talks to Cloud
Firestore and is imported lazily so the Google client is only loaded
when that backend is selected.
"""

from typing import Optional

from ..config.settings import Settings, settings as default_settings
from ..config.store_config import get_store_config
from .base import (
    SERVER_TIMESTAMP,
    ArrayRemove,
    ArrayUnion,
    DocumentSnapshot,
    DocumentStore,
    Filter,
    ListenerRegistration,
    QuerySnapshot,
    WriteBatch,
    array_contains,
    equals,
)
from .memory import InMemoryDocumentStore, MemoryBackend


def create_store(config: Optional[Settings] = None) -> DocumentStore:
    """Build the document store selected by ``store_backend``.

    Raises:
        KeyError: If the configured backend is unknown.
    """
    config = config or default_settings
    store_config = get_store_config(config.store_backend)
    max_batch = min(config.max_batch_writes, store_config.max_batch_writes)
    if config.store_backend == "firestore":
        from .firestore import FirestoreDocumentStore

        return FirestoreDocumentStore(
            project=config.firestore_project,
            database=config.firestore_database,
            max_batch_size=max_batch,
        )
    return InMemoryDocumentStore(max_batch_size=max_batch)


__all__ = [
    "SERVER_TIMESTAMP",
    "ArrayRemove",
    "ArrayUnion",
    "DocumentSnapshot",
    "DocumentStore",
    "Filter",
    "InMemoryDocumentStore",
    "ListenerRegistration",
    "MemoryBackend",
    "QuerySnapshot",
    "WriteBatch",
    "array_contains",
    "create_store",
    "equals",
]
