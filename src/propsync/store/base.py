"""Base classes and interfaces for document store backends.

The rest of the package consumes a remote document database through this
interface: collection-level CRUD, equality and array-contains filtering,
live snapshot subscriptions and atomic multi-document batches.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from ..core.errors import BatchTooLarge

ARRAY_CONTAINS = "array_contains"
EQUALS = "=="

SUPPORTED_OPERATORS = (ARRAY_CONTAINS, EQUALS)


@dataclass(frozen=True)
class Filter:
    """Single-field query predicate."""

    field: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in SUPPORTED_OPERATORS:
            raise ValueError(f"Unsupported filter operator '{self.op}'")

    def matches(self, data: Mapping[str, Any]) -> bool:
        if self.field not in data:
            return False
        current = data[self.field]
        if self.op == ARRAY_CONTAINS:
            return isinstance(current, (list, tuple)) and self.value in current
        return current == self.value


def array_contains(field_name: str, value: Any) -> Filter:
    return Filter(field_name, ARRAY_CONTAINS, value)


def equals(field_name: str, value: Any) -> Filter:
    return Filter(field_name, EQUALS, value)


class _ServerTimestamp:
    """Sentinel replaced by the store's commit time."""

    _instance: Optional["_ServerTimestamp"] = None

    def __new__(cls) -> "_ServerTimestamp":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


@dataclass(frozen=True)
class ArrayUnion:
    """Append values not already present to an array field."""

    values: Tuple[Any, ...]

    def __init__(self, values: Sequence[Any]) -> None:
        object.__setattr__(self, "values", tuple(values))


@dataclass(frozen=True)
class ArrayRemove:
    """Remove every occurrence of the values from an array field."""

    values: Tuple[Any, ...]

    def __init__(self, values: Sequence[Any]) -> None:
        object.__setattr__(self, "values", tuple(values))


@dataclass(frozen=True)
class DocumentSnapshot:
    """Immutable view of one stored document."""

    collection: str
    id: str
    data: Mapping[str, Any]

    def get(self, field_name: str, default: Any = None) -> Any:
        return self.data.get(field_name, default)


@dataclass(frozen=True)
class QuerySnapshot:
    """Full result set of a query at one point in time, in store order."""

    documents: Tuple[DocumentSnapshot, ...] = ()

    def __len__(self) -> int:
        return len(self.documents)

    def __iter__(self):
        return iter(self.documents)

    @property
    def ids(self) -> List[str]:
        return [doc.id for doc in self.documents]


SnapshotCallback = Callable[[QuerySnapshot], None]
ErrorCallback = Callable[[Exception], None]


class ListenerRegistration(ABC):
    """Handle for a live query subscription."""

    @abstractmethod
    def remove(self) -> None:
        """Stop delivery synchronously.

        Once this returns, the snapshot callback is never invoked again,
        even for notifications that were already scheduled.
        """
        raise NotImplementedError

    @property
    @abstractmethod
    def active(self) -> bool:
        raise NotImplementedError


# Write operation kinds recorded by a batch
CREATE = "create"
SET = "set"
UPDATE = "update"
DELETE = "delete"


@dataclass
class WriteOp:
    """One pending write inside a batch."""

    kind: str
    collection: str
    document_id: str
    data: Optional[Dict[str, Any]] = None
    merge: bool = False


@dataclass
class WriteBatch(ABC):
    """Atomic group of writes. Nothing is applied until ``commit``."""

    store: "DocumentStore"
    ops: List[WriteOp] = field(default_factory=list)
    committed: bool = False

    def create(self, collection: str, data: Dict[str, Any]) -> str:
        document_id = self.store.new_document_id()
        self.ops.append(WriteOp(CREATE, collection, document_id, dict(data)))
        return document_id

    def set(self, collection: str, document_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        self.ops.append(WriteOp(SET, collection, document_id, dict(data), merge))

    def update(self, collection: str, document_id: str, data: Dict[str, Any]) -> None:
        self.ops.append(WriteOp(UPDATE, collection, document_id, dict(data)))

    def delete(self, collection: str, document_id: str) -> None:
        self.ops.append(WriteOp(DELETE, collection, document_id))

    def __len__(self) -> int:
        return len(self.ops)

    def check_capacity(self) -> None:
        """Fail closed when the batch cannot be applied atomically."""
        limit = self.store.max_batch_size
        if len(self.ops) > limit:
            raise BatchTooLarge(len(self.ops), limit)

    async def commit(self) -> None:
        if self.committed:
            raise RuntimeError("Batch already committed")
        self.check_capacity()
        await self._commit()
        self.committed = True

    @abstractmethod
    async def _commit(self) -> None:
        """Apply every op atomically or raise with no effect."""
        raise NotImplementedError


class DocumentStore(ABC):
    """Abstract base class for all document store backends."""

    max_batch_size: int = 500

    def __init__(self, max_batch_size: Optional[int] = None) -> None:
        if max_batch_size is not None:
            self.max_batch_size = max_batch_size
        self.backend_name = self.__class__.__name__.replace("DocumentStore", "").lower()

    @abstractmethod
    def new_document_id(self) -> str:
        raise NotImplementedError

    @abstractmethod
    async def get(self, collection: str, document_id: str) -> Optional[DocumentSnapshot]:
        """Fetch one document, or None when it does not exist."""
        raise NotImplementedError

    @abstractmethod
    async def query(self, collection: str, filters: Sequence[Filter] = ()) -> List[DocumentSnapshot]:
        """Fetch every document matching all filters, in store order."""
        raise NotImplementedError

    @abstractmethod
    async def add(self, collection: str, data: Dict[str, Any]) -> str:
        """Insert a document under a store-assigned id and return the id."""
        raise NotImplementedError

    @abstractmethod
    async def set(self, collection: str, document_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        raise NotImplementedError

    @abstractmethod
    async def update(self, collection: str, document_id: str, data: Dict[str, Any]) -> None:
        """Update fields of an existing document.

        Raises:
            DocumentNotFound: If the document does not exist.
        """
        raise NotImplementedError

    @abstractmethod
    async def delete(self, collection: str, document_id: str) -> None:
        """Delete a document. Deleting a missing document is a no-op."""
        raise NotImplementedError

    @abstractmethod
    def batch(self) -> WriteBatch:
        raise NotImplementedError

    @abstractmethod
    def listen(
        self,
        collection: str,
        filters: Sequence[Filter],
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> ListenerRegistration:
        """Subscribe to the live result set of a query.

        The callback receives the full matching set on subscription and
        again whenever it changes. Callbacks run on the event loop that was
        running when ``listen`` was called.
        """
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} backend={self.backend_name}>"
