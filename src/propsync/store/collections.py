"""Collection and field names shared by every store backend.

Collections are created on first write. Use these constants so query
filters and batch writes stay consistent across modules.
"""

COLLECTION_PROPERTIES = "properties"
COLLECTION_TAGS = "tags"
COLLECTION_WORKSPACES = "workspaces"
COLLECTION_JOIN_REQUESTS = "joinRequests"

# Membership array stamped on workspaces, properties and tags
FIELD_MEMBER_USER_IDS = "memberUserIds"

FIELD_WORKSPACE_ID = "workspaceId"
FIELD_USER_ID = "userId"
FIELD_TAG_NAME = "name"
FIELD_CREATED_DATE = "createdDate"
FIELD_UPDATED_DATE = "updatedDate"
