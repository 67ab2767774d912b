"""Error taxonomy and classification for store-backed operations."""

from enum import Enum
from typing import Optional


class PropsyncError(Exception):
    """Base class for all errors raised by propsync."""


class NotAuthorized(PropsyncError):
    """The acting user is not a member of the workspace being modified."""


class BatchTooLarge(PropsyncError):
    """An atomic batch would exceed the store's write capacity."""

    def __init__(self, size: int, limit: int, message: Optional[str] = None) -> None:
        self.size = size
        self.limit = limit
        super().__init__(
            message or f"Batch of {size} writes exceeds the atomic limit of {limit}"
        )


class DecodeFailure(PropsyncError):
    """A stored document could not be decoded into its model."""

    def __init__(self, collection: str, document_id: str, reason: str) -> None:
        self.collection = collection
        self.document_id = document_id
        self.reason = reason
        super().__init__(f"Cannot decode {collection}/{document_id}: {reason}")


class StoreUnavailable(PropsyncError):
    """The document store could not be reached (transient)."""


class ValidationFailure(PropsyncError):
    """An import document failed schema or date parsing entirely."""


class DocumentNotFound(PropsyncError):
    """A document addressed by id does not exist."""

    def __init__(self, collection: str, document_id: str) -> None:
        self.collection = collection
        self.document_id = document_id
        super().__init__(f"Document {collection}/{document_id} not found")


class WorkspaceUnavailable(PropsyncError):
    """No workspace has been resolved yet for the signed-in user."""


class ErrorType(Enum):
    """Classification of error types for appropriate handling."""
    TRANSIENT = "transient"          # Store unreachable - heals on next tick
    AUTHORIZATION = "authorization"  # Caller may not perform the write
    CAPACITY = "capacity"            # Atomic batch too large - never retry
    NOT_FOUND = "not_found"          # Addressed document is gone
    PARSE_ERROR = "parse_error"      # Data decoding failures - don't retry
    VALIDATION = "validation"        # Invalid input - don't retry
    UNKNOWN = "unknown"              # Unclassified - retry conservatively


def classify_error(error: BaseException) -> ErrorType:
    """
    Classify error type for appropriate handling.

    Args:
        error: Exception to classify

    Returns:
        ErrorType enum value
    """
    if isinstance(error, StoreUnavailable):
        return ErrorType.TRANSIENT
    if isinstance(error, (ConnectionError, TimeoutError)):
        return ErrorType.TRANSIENT
    if isinstance(error, NotAuthorized):
        return ErrorType.AUTHORIZATION
    if isinstance(error, BatchTooLarge):
        return ErrorType.CAPACITY
    if isinstance(error, DocumentNotFound):
        return ErrorType.NOT_FOUND
    if isinstance(error, DecodeFailure):
        return ErrorType.PARSE_ERROR
    if isinstance(error, ValidationFailure):
        return ErrorType.VALIDATION
    if isinstance(error, (ValueError, KeyError, TypeError)):
        return ErrorType.PARSE_ERROR
    return ErrorType.UNKNOWN
