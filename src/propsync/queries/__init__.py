"""Reactive query objects kept in sync with the document store."""

from .live import LiveCollection, join_request_query, property_query, tag_query  # noqa: F401
from .workspace import WorkspaceResolver  # noqa: F401
