"""Tests for text, timestamp and id utilities."""

from datetime import datetime, timedelta, timezone

import pytest

from propsync.core.ids import (
    DOCUMENT_ID_LENGTH,
    generate_document_id,
    normalize_user_ids,
    same_members,
)
from propsync.core.normalization import (
    format_timestamp,
    normalize_tag_name,
    normalize_title,
    parse_timestamp,
)


class TestNormalizeTitle:
    """Tests for title normalization."""

    def test_lowercase_and_punctuation(self) -> None:
        assert normalize_title("Villa X, Sea View!") == "villa x sea view"

    def test_whitespace_collapsed(self) -> None:
        assert normalize_title("  Villa    X ") == "villa x"

    def test_empty(self) -> None:
        assert normalize_title("") == ""


class TestNormalizeTagName:
    def test_collapses_whitespace_keeps_case(self) -> None:
        assert normalize_tag_name("  Sea   View ") == "Sea View"

    def test_none(self) -> None:
        assert normalize_tag_name(None) == ""


class TestParseTimestamp:
    """Tests for two-pass ISO-8601 parsing."""

    def test_without_fraction(self) -> None:
        assert parse_timestamp("2024-05-01T10:00:00Z") == datetime(2024, 5, 1, 10, tzinfo=timezone.utc)

    def test_with_fraction(self) -> None:
        parsed = parse_timestamp("2024-05-01T10:00:00.123Z")
        assert parsed.microsecond == 123000

    def test_nanoseconds_truncated(self) -> None:
        parsed = parse_timestamp("2024-05-01T10:00:00.123456789Z")
        assert parsed == datetime(2024, 5, 1, 10, 0, 0, 123456, tzinfo=timezone.utc)

    def test_explicit_offset(self) -> None:
        parsed = parse_timestamp("2024-05-01T12:00:00+02:00")
        assert parsed == datetime(2024, 5, 1, 10, tzinfo=timezone.utc)

    def test_naive_datetime_assumed_utc(self) -> None:
        parsed = parse_timestamp(datetime(2024, 5, 1, 10))
        assert parsed.tzinfo is not None
        assert parsed.utcoffset() == timedelta(0)

    def test_string_without_offset_rejected(self) -> None:
        for value in ("2024-05-01T10:00:00", "2024-05-01T10:00:00.123"):
            with pytest.raises(ValueError):
                parse_timestamp(value)

    def test_none(self) -> None:
        assert parse_timestamp(None) is None

    @pytest.mark.parametrize("value", ["not a date", "2024-05-01", "2024-13-01T00:00:00Z", ""])
    def test_invalid_strings_raise(self, value: str) -> None:
        with pytest.raises(ValueError):
            parse_timestamp(value)

    def test_non_string_raises(self) -> None:
        with pytest.raises(ValueError):
            parse_timestamp(12345)  # type: ignore[arg-type]


class TestFormatTimestamp:
    def test_z_suffix(self) -> None:
        assert format_timestamp(datetime(2024, 5, 1, 10, tzinfo=timezone.utc)) == "2024-05-01T10:00:00Z"

    def test_converts_to_utc(self) -> None:
        value = datetime(2024, 5, 1, 12, tzinfo=timezone(timedelta(hours=2)))
        assert format_timestamp(value) == "2024-05-01T10:00:00Z"

    def test_keeps_microseconds(self) -> None:
        value = datetime(2024, 5, 1, 10, 0, 0, 500000, tzinfo=timezone.utc)
        assert format_timestamp(value) == "2024-05-01T10:00:00.500000Z"

    def test_parses_back(self) -> None:
        value = datetime(2024, 5, 1, 10, 0, 0, 250000, tzinfo=timezone.utc)
        assert parse_timestamp(format_timestamp(value)) == value


class TestIds:
    """Tests for document ids and membership helpers."""

    def test_generated_ids(self) -> None:
        first = generate_document_id()
        assert len(first) == DOCUMENT_ID_LENGTH
        assert first.isalnum()
        assert first != generate_document_id()

    def test_normalize_user_ids(self) -> None:
        assert normalize_user_ids(["b", "a", "b", "", "c"]) == ["b", "a", "c"]
        assert normalize_user_ids(None) == []

    def test_same_members_ignores_order(self) -> None:
        assert same_members(["u1", "u2"], ["u2", "u1"])
        assert not same_members(["u1"], ["u1", "u2"])
