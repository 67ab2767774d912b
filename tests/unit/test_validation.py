"""Tests for export document validation."""

import json
from pathlib import Path

from propsync.io.validation import PortableDocumentValidator, validate_export_file
from propsync.io.portable import MergeImportExportService


def write_export(path: Path, listings: list) -> Path:
    path.write_text(
        json.dumps({"version": "1.0", "exportDate": "2025-01-01T00:00:00Z", "listings": listings}),
        encoding="utf-8",
    )
    return path


class TestPortableDocumentValidator:
    """Tests for individual checks."""

    def test_empty_title_is_error(self) -> None:
        document = MergeImportExportService.parse(
            {"exportDate": "2025-01-01T00:00:00Z", "listings": [{"title": "  "}]}
        )
        validator = PortableDocumentValidator()
        assert not validator.validate_titles(document)
        assert validator.errors

    def test_placeholder_title_is_warning(self) -> None:
        document = MergeImportExportService.parse({"exportDate": "2025-01-01T00:00:00Z", "listings": [{}]})
        assert PortableDocumentValidator().validate_titles(document)
        strict = PortableDocumentValidator(strict=True)
        assert not strict.validate_titles(document)
        assert strict.warnings

    def test_negative_numbers(self) -> None:
        document = MergeImportExportService.parse(
            {"exportDate": "2025-01-01T00:00:00Z", "listings": [{"title": "A", "price": -1}]}
        )
        validator = PortableDocumentValidator()
        assert not validator.validate_numbers(document)
        assert "negative price" in validator.errors[0]

    def test_duplicate_titles(self) -> None:
        document = MergeImportExportService.parse(
            {"exportDate": "2025-01-01T00:00:00Z", "listings": [{"title": "Villa X!"}, {"title": "villa x"}]}
        )
        validator = PortableDocumentValidator(strict=True)
        assert not validator.check_duplicates(document)
        assert validator.warnings == ["Duplicate title: villa x (2 times)"]

    def test_conflicting_tag_ratings(self) -> None:
        document = MergeImportExportService.parse(
            {
                "exportDate": "2025-01-01T00:00:00Z",
                "listings": [
                    {"title": "A", "tags": [{"name": "Pool", "rating": "good"}]},
                    {"title": "B", "tags": [{"name": "Pool", "rating": "excluded"}]},
                ],
            }
        )
        validator = PortableDocumentValidator()
        assert validator.validate_tags(document)
        assert len(validator.warnings) == 1


class TestValidateExportFile:
    """Tests for the file-level entry point."""

    def test_clean_file_passes(self, tmp_path: Path) -> None:
        path = write_export(tmp_path / "ok.json", [{"title": "A", "price": 10, "link": "https://a"}])
        assert validate_export_file(path)

    def test_unparseable_file_fails(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.json"
        path.write_text("{", encoding="utf-8")
        assert not validate_export_file(path)

    def test_missing_file_fails(self, tmp_path: Path) -> None:
        assert not validate_export_file(tmp_path / "missing.json")

    def test_errors_fail(self, tmp_path: Path) -> None:
        path = write_export(tmp_path / "neg.json", [{"title": "A", "bedrooms": -2}])
        assert not validate_export_file(path)

    def test_undecodable_file_fails(self, tmp_path: Path) -> None:
        path = tmp_path / "latin1.json"
        path.write_bytes(b'{"listings": ["\xff\xfe\xfd"]}')
        assert not validate_export_file(path)

    def test_bracketed_names_are_reported_verbatim(self, tmp_path: Path) -> None:
        path = write_export(
            tmp_path / "brackets.json",
            [
                {"title": "[/b]", "price": -5, "tags": [{"name": "[/x]", "rating": "good"}]},
                {"title": "B", "tags": [{"name": "[/x]", "rating": "excellent"}]},
            ],
        )
        assert not validate_export_file(path)

    def test_bracketed_tag_warning_passes(self, tmp_path: Path) -> None:
        path = write_export(
            tmp_path / "tags.json",
            [
                {"title": "A", "price": 1, "link": "https://a", "tags": [{"name": "[/x]", "rating": "good"}]},
                {"title": "B", "price": 1, "link": "https://b", "tags": [{"name": "[/x]", "rating": "excellent"}]},
            ],
        )
        assert validate_export_file(path)
        assert not validate_export_file(path, strict=True)
