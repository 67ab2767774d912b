"""propsync - synchronization layer for shared property listing workspaces.

Keeps local observable state consistent with a multi-tenant document
store: one workspace per user (with deduplication of concurrent
creations), live collections of properties, tags and join requests,
membership-scoped writes with atomic join approval, and merge
import/export of listing sets.
"""

__version__ = "0.1.0"
