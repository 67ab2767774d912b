"""Merge import and export of listing sets through a portable JSON document.

Export snapshots every property owned by a workspace, inlining tags by
value. Import creates new properties in a target workspace, reusing tags by
exact name, and reports per-listing failures without aborting.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from ..config.settings import settings
from ..core.errors import DecodeFailure, ValidationFailure, WorkspaceUnavailable
from ..core.ids import same_members
from ..core.models import (
    ExportedListing,
    ExportedTag,
    ImportResult,
    PortableExportDocument,
    Property,
    Tag,
    ValidationResult,
    Workspace,
)
from ..store.base import SERVER_TIMESTAMP, DocumentStore, array_contains, equals
from ..store.collections import (
    COLLECTION_PROPERTIES,
    COLLECTION_TAGS,
    FIELD_CREATED_DATE,
    FIELD_MEMBER_USER_IDS,
    FIELD_TAG_NAME,
    FIELD_UPDATED_DATE,
)
from ..utils.logging import bind_context, get_logger

logger = get_logger(__name__)

RawDocument = Union[str, bytes, Dict[str, Any]]


class MergeImportExportService:
    """Export a workspace's listings and merge listings into a workspace."""

    def __init__(self, store: DocumentStore, export_version: Optional[str] = None) -> None:
        self.store = store
        self.export_version = export_version or settings.export_version

    async def workspace_properties(self, workspace: Workspace) -> List[Property]:
        """Properties whose membership set equals the workspace's."""
        if not workspace.member_user_ids:
            return []
        snapshots = await self.store.query(
            COLLECTION_PROPERTIES,
            [array_contains(FIELD_MEMBER_USER_IDS, workspace.member_user_ids[0])],
        )
        properties = []
        for snapshot in snapshots:
            try:
                prop = Property.from_snapshot(snapshot)
            except DecodeFailure as e:
                logger.warning(f"Skipping property during export: {e}")
                continue
            if same_members(prop.member_user_ids, workspace.member_user_ids):
                properties.append(prop)
        return properties

    async def _workspace_tags(self, workspace: Workspace, tag_ids: List[str]) -> Dict[str, Tag]:
        tags: Dict[str, Tag] = {}
        if workspace.member_user_ids:
            snapshots = await self.store.query(
                COLLECTION_TAGS,
                [array_contains(FIELD_MEMBER_USER_IDS, workspace.member_user_ids[0])],
            )
            for snapshot in snapshots:
                try:
                    tags[snapshot.id] = Tag.from_snapshot(snapshot)
                except DecodeFailure as e:
                    logger.warning(f"Skipping tag during export: {e}")
        # Referenced tags outside the workspace's view are fetched by id
        for tag_id in tag_ids:
            if tag_id in tags:
                continue
            snapshot = await self.store.get(COLLECTION_TAGS, tag_id)
            if snapshot is None:
                logger.debug(f"Tag {tag_id} referenced but missing")
                continue
            try:
                tags[tag_id] = Tag.from_snapshot(snapshot)
            except DecodeFailure as e:
                logger.warning(f"Skipping tag during export: {e}")
        return tags

    async def export_workspace(self, workspace: Workspace) -> PortableExportDocument:
        """Snapshot the workspace's properties, sorted by title then id."""
        properties = await self.workspace_properties(workspace)
        referenced = [tag_id for prop in properties for tag_id in prop.tag_ids]
        tags = await self._workspace_tags(workspace, referenced)

        listings = []
        for prop in sorted(properties, key=lambda p: (p.title, p.id or "")):
            exported_tags = [
                ExportedTag(name=tags[tag_id].name, rating=tags[tag_id].rating)
                for tag_id in prop.tag_ids
                if tag_id in tags
            ]
            listings.append(
                ExportedListing(
                    title=prop.title,
                    location=prop.location,
                    link=prop.link,
                    agent_contact=prop.agent_contact,
                    agency=prop.agency,
                    price=prop.price,
                    size=prop.size,
                    bedrooms=prop.bedrooms,
                    bathrooms=prop.bathrooms,
                    type=prop.type,
                    rating=prop.rating,
                    notes=prop.notes,
                    tags=exported_tags,
                    created_date=prop.created_date,
                    updated_date=prop.updated_date,
                )
            )
        logger.info(f"Exported {len(listings)} listings from workspace {workspace.id}")
        return PortableExportDocument(
            version=self.export_version,
            export_date=datetime.now(timezone.utc),
            listings=listings,
        )

    @staticmethod
    def dumps(document: PortableExportDocument) -> str:
        """Pretty-printed JSON with sorted keys."""
        return json.dumps(
            document.model_dump(by_alias=True, mode="json"),
            indent=2,
            sort_keys=True,
            ensure_ascii=False,
        )

    @staticmethod
    def parse(data: RawDocument) -> PortableExportDocument:
        """Decode a portable document.

        Raises:
            ValidationFailure: If the JSON, the schema or a date is invalid.
        """
        try:
            if isinstance(data, (str, bytes)):
                data = json.loads(data)
            return PortableExportDocument.model_validate(data)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ValidationFailure(f"Invalid JSON: {e}") from e
        except ValidationError as e:
            raise ValidationFailure(f"Invalid export document: {e}") from e

    @classmethod
    def validate(cls, data: RawDocument) -> ValidationResult:
        try:
            document = cls.parse(data)
        except ValidationFailure as e:
            logger.info(f"Validation failed: {e}")
            return ValidationResult(is_valid=False, error=str(e))
        return ValidationResult(is_valid=True, listing_count=len(document.listings))

    async def _resolve_tag(
        self,
        exported: ExportedTag,
        target: Workspace,
        cache: Dict[str, str],
    ) -> str:
        """Id of a tag named ``exported.name`` that shares the target's membership."""
        if exported.name in cache:
            return cache[exported.name]
        snapshots = await self.store.query(COLLECTION_TAGS, [equals(FIELD_TAG_NAME, exported.name)])
        for snapshot in snapshots:
            try:
                tag = Tag.from_snapshot(snapshot)
            except DecodeFailure:
                continue
            if same_members(tag.member_user_ids, target.member_user_ids):
                cache[exported.name] = snapshot.id
                return snapshot.id

        tag = Tag(name=exported.name, rating=exported.rating, member_user_ids=target.member_user_ids)
        tag_id = await self.store.add(COLLECTION_TAGS, tag.to_document())
        logger.debug(f"Created tag {tag_id} '{exported.name}' during import")
        cache[exported.name] = tag_id
        return tag_id

    async def _import_listing(
        self,
        listing: ExportedListing,
        target: Workspace,
        cache: Dict[str, str],
    ) -> str:
        tag_ids: List[str] = []
        for exported in listing.tags:
            tag_id = await self._resolve_tag(exported, target, cache)
            if tag_id not in tag_ids:
                tag_ids.append(tag_id)

        prop = Property(
            title=listing.title,
            location=listing.location,
            link=listing.link,
            agent_contact=listing.agent_contact,
            agency=listing.agency,
            price=listing.price,
            size=listing.size,
            bedrooms=listing.bedrooms,
            bathrooms=listing.bathrooms,
            type=listing.type,
            rating=listing.rating,
            tag_ids=tag_ids,
            notes=listing.notes,
            member_user_ids=target.member_user_ids,
        )
        data = prop.to_document()
        data[FIELD_CREATED_DATE] = listing.created_date or SERVER_TIMESTAMP
        data[FIELD_UPDATED_DATE] = SERVER_TIMESTAMP
        return await self.store.add(COLLECTION_PROPERTIES, data)

    async def import_document(
        self,
        document: PortableExportDocument,
        target: Optional[Workspace],
        replace_existing: bool = False,
    ) -> ImportResult:
        """
        Merge ``document`` into ``target``.

        With ``replace_existing`` the target's current properties are
        deleted first. That step is not atomic with the inserts that follow,
        so an interrupted import can leave the workspace empty.

        Raises:
            WorkspaceUnavailable: If ``target`` is not a resolved workspace.
        """
        if target is None or not target.id or not target.member_user_ids:
            raise WorkspaceUnavailable("Import needs a resolved target workspace")
        log = bind_context(logger, workspace_id=target.id, collection=COLLECTION_PROPERTIES)

        if replace_existing:
            existing = await self.workspace_properties(target)
            for prop in existing:
                await self.store.delete(COLLECTION_PROPERTIES, prop.id or "")
            log.info(f"Deleted {len(existing)} properties before import")

        imported = 0
        skipped = 0
        errors: List[str] = []
        cache: Dict[str, str] = {}
        for index, listing in enumerate(document.listings, start=1):
            try:
                await self._import_listing(listing, target, cache)
                imported += 1
            except Exception as e:
                skipped += 1
                errors.append(f"Failed to import property {listing.title} (#{index}): {e}")
                log.warning(errors[-1])

        log.info(f"Imported {imported} listings, skipped {skipped}")
        return ImportResult(
            success=True,
            imported_count=imported,
            skipped_count=skipped,
            errors=errors,
            message=f"Successfully imported {imported} properties",
        )

    async def import_json(
        self,
        data: RawDocument,
        target: Optional[Workspace],
        replace_existing: bool = False,
    ) -> ImportResult:
        """Parse then import. A document that fails validation imports nothing."""
        try:
            document = self.parse(data)
        except ValidationFailure as e:
            return ImportResult(
                success=False,
                errors=[str(e)],
                message=f"Failed to import properties: {e}",
            )
        return await self.import_document(document, target, replace_existing)
