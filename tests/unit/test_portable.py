"""Tests for portable export and merge import."""

import json
from datetime import datetime, timezone

import pytest

from propsync.core.errors import ValidationFailure, WorkspaceUnavailable
from propsync.core.models import (
    ExportedListing,
    ExportedTag,
    PortableExportDocument,
    PropertyRating,
    PropertyType,
    Workspace,
)
from propsync.io.portable import MergeImportExportService
from propsync.store.memory import InMemoryDocumentStore


def make_document(*listings: ExportedListing) -> PortableExportDocument:
    return PortableExportDocument(
        version="1.0",
        export_date=datetime(2025, 1, 1, tzinfo=timezone.utc),
        listings=list(listings),
    )


async def seed(store: InMemoryDocumentStore) -> Workspace:
    """Workspace w1 for u1 with two properties, one tag, and a foreign property."""
    await store.set("workspaces", "w1", {"memberUserIds": ["u1"]})
    await store.set("tags", "t1", {"name": "Sea view", "rating": "good", "memberUserIds": ["u1"]})
    await store.set(
        "properties",
        "p1",
        {"title": "Villa X", "price": 500000, "tagIds": ["t1"], "type": "Villa", "memberUserIds": ["u1"]},
    )
    await store.set("properties", "p2", {"title": "Apartment A", "memberUserIds": ["u1"]})
    await store.set("properties", "p3", {"title": "Shared", "memberUserIds": ["u1", "u9"]})
    return Workspace(id="w1", member_user_ids=["u1"])


class TestExport:
    """Tests for exporting a workspace."""

    @pytest.mark.asyncio
    async def test_exports_workspace_properties_sorted_by_title(self) -> None:
        store = InMemoryDocumentStore()
        workspace = await seed(store)
        document = await MergeImportExportService(store, export_version="1.0").export_workspace(workspace)

        assert document.version == "1.0"
        assert [listing.title for listing in document.listings] == ["Apartment A", "Villa X"]
        villa = document.listings[1]
        assert villa.type is PropertyType.VILLA
        assert villa.tags == [ExportedTag(name="Sea view", rating=PropertyRating.GOOD)]

    @pytest.mark.asyncio
    async def test_dangling_tag_ids_are_dropped(self) -> None:
        store = InMemoryDocumentStore()
        await store.set("properties", "p1", {"title": "A", "tagIds": ["gone"], "memberUserIds": ["u1"]})
        document = await MergeImportExportService(store).export_workspace(
            Workspace(id="w1", member_user_ids=["u1"])
        )
        assert document.listings[0].tags == []

    @pytest.mark.asyncio
    async def test_dumps_sorted_pretty_json(self) -> None:
        store = InMemoryDocumentStore()
        workspace = await seed(store)
        text = MergeImportExportService.dumps(await MergeImportExportService(store).export_workspace(workspace))

        data = json.loads(text)
        assert list(data) == ["exportDate", "listings", "version"]
        assert data["exportDate"].endswith("Z")
        assert data["listings"][1]["tags"] == [{"name": "Sea view", "rating": "good"}]
        assert "\n  " in text


class TestParseAndValidate:
    """Tests for decoding import documents."""

    def test_parse_accepts_both_date_forms(self) -> None:
        for export_date in ("2025-01-01T00:00:00Z", "2025-01-01T00:00:00.123Z"):
            document = MergeImportExportService.parse(
                json.dumps({"version": "1.0", "exportDate": export_date, "listings": [{}]})
            )
            assert len(document.listings) == 1

    def test_parse_rejects_bad_json(self) -> None:
        with pytest.raises(ValidationFailure):
            MergeImportExportService.parse("{not json")

    def test_parse_rejects_undecodable_bytes(self) -> None:
        with pytest.raises(ValidationFailure, match="Invalid JSON"):
            MergeImportExportService.parse(b'{"listings": ["\xff\xfe\xfd"]}')

        result = MergeImportExportService.validate(b'{"version": "1.0", "exportDate": "\xc3\x28"}')
        assert not result.is_valid
        assert result.error.startswith("Invalid JSON")

    def test_parse_rejects_bad_dates(self) -> None:
        with pytest.raises(ValidationFailure):
            MergeImportExportService.parse({"exportDate": "2025-01-01", "listings": []})

    def test_validate_reports_counts(self) -> None:
        result = MergeImportExportService.validate(
            b'{"version": "1.0", "exportDate": "2025-01-01T00:00:00Z", "listings": [{}, {}]}'
        )
        assert result.is_valid
        assert result.listing_count == 2

        result = MergeImportExportService.validate("[]")
        assert not result.is_valid
        assert result.error


class TestImport:
    """Tests for merging a document into a workspace."""

    @pytest.mark.asyncio
    async def test_missing_fields_take_defaults(self) -> None:
        store = InMemoryDocumentStore()
        target = Workspace(id="w1", member_user_ids=["u1", "u2"])
        service = MergeImportExportService(store)

        result = await service.import_json(
            {"version": "1.0", "exportDate": "2025-01-01T00:00:00Z", "listings": [{"price": None}]},
            target,
        )

        assert result.success
        assert result.imported_count == 1
        assert result.message == "Successfully imported 1 properties"
        (stored,) = store.backend.documents("properties")
        assert stored.get("title") == "Untitled Property"
        assert stored.get("location") == "Unknown Location"
        assert stored.get("type") == "House"
        assert stored.get("price") == 0
        assert stored.get("memberUserIds") == ["u1", "u2"]
        assert isinstance(stored.get("createdDate"), datetime)

    @pytest.mark.asyncio
    async def test_created_date_is_kept(self) -> None:
        store = InMemoryDocumentStore()
        created = datetime(2023, 6, 1, tzinfo=timezone.utc)
        await MergeImportExportService(store).import_document(
            make_document(ExportedListing(title="Old", created_date=created)),
            Workspace(id="w1", member_user_ids=["u1"]),
        )
        (stored,) = store.backend.documents("properties")
        assert stored.get("createdDate") == created

    @pytest.mark.asyncio
    async def test_tags_reused_by_name_and_membership(self) -> None:
        store = InMemoryDocumentStore()
        await store.set("tags", "mine", {"name": "Pool", "memberUserIds": ["u1"]})
        await store.set("tags", "theirs", {"name": "Garden", "memberUserIds": ["u9"]})
        target = Workspace(id="w1", member_user_ids=["u1"])

        result = await MergeImportExportService(store).import_document(
            make_document(
                ExportedListing(title="A", tags=[ExportedTag(name="Pool"), ExportedTag(name="Garden")]),
                ExportedListing(title="B", tags=[ExportedTag(name="Garden", rating=PropertyRating.GOOD)]),
            ),
            target,
        )

        assert result.imported_count == 2
        gardens = [doc for doc in store.backend.documents("tags") if doc.get("name") == "Garden"]
        assert len(gardens) == 2
        new_garden = next(doc for doc in gardens if doc.id != "theirs")
        assert new_garden.get("memberUserIds") == ["u1"]

        props = {doc.get("title"): doc.get("tagIds") for doc in store.backend.documents("properties")}
        assert props["A"] == ["mine", new_garden.id]
        assert props["B"] == [new_garden.id]

    @pytest.mark.asyncio
    async def test_per_listing_errors_do_not_abort(self) -> None:
        store = InMemoryDocumentStore()
        store.fail_next_commit()
        result = await MergeImportExportService(store).import_document(
            make_document(ExportedListing(title="First"), ExportedListing(title="Second")),
            Workspace(id="w1", member_user_ids=["u1"]),
        )
        assert result.success
        assert result.imported_count == 1
        assert result.skipped_count == 1
        assert len(result.errors) == 1
        assert result.errors[0].startswith("Failed to import property First (#1)")
        assert [doc.get("title") for doc in store.backend.documents("properties")] == ["Second"]

    @pytest.mark.asyncio
    async def test_invalid_document_imports_nothing(self) -> None:
        store = InMemoryDocumentStore()
        result = await MergeImportExportService(store).import_json(
            '{"exportDate": "soon", "listings": [{}]}',
            Workspace(id="w1", member_user_ids=["u1"]),
        )
        assert not result.success
        assert result.message.startswith("Failed to import properties:")
        assert store.backend.dump() == {}

    @pytest.mark.asyncio
    async def test_undecodable_bytes_import_nothing(self) -> None:
        store = InMemoryDocumentStore()
        result = await MergeImportExportService(store).import_json(
            b'{"exportDate": "2025-01-01T00:00:00Z", "listings": [{"title": "\xff"}]}',
            Workspace(id="w1", member_user_ids=["u1"]),
        )
        assert not result.success
        assert result.imported_count == 0
        assert store.backend.dump() == {}

    @pytest.mark.asyncio
    async def test_replace_existing_deletes_workspace_properties(self) -> None:
        store = InMemoryDocumentStore()
        workspace = await seed(store)
        result = await MergeImportExportService(store).import_document(
            make_document(ExportedListing(title="Fresh")), workspace, replace_existing=True
        )
        assert result.imported_count == 1
        remaining = sorted(doc.get("title") for doc in store.backend.documents("properties"))
        assert remaining == ["Fresh", "Shared"]

    @pytest.mark.asyncio
    async def test_import_needs_resolved_workspace(self) -> None:
        service = MergeImportExportService(InMemoryDocumentStore())
        with pytest.raises(WorkspaceUnavailable):
            await service.import_document(make_document(), None)

    @pytest.mark.asyncio
    async def test_round_trip_preserves_listing_fields(self) -> None:
        store = InMemoryDocumentStore()
        workspace = await seed(store)
        service = MergeImportExportService(store)
        exported = await service.export_workspace(workspace)

        other = InMemoryDocumentStore()
        target = Workspace(id="w9", member_user_ids=["u5"])
        await MergeImportExportService(other).import_json(service.dumps(exported), target)
        again = await MergeImportExportService(other).export_workspace(target)

        def fields(document: PortableExportDocument) -> list:
            return [
                (listing.title, listing.type, listing.price, listing.rating, [(t.name, t.rating) for t in listing.tags])
                for listing in document.listings
            ]

        assert fields(again) == fields(exported)
