"""Core domain models for workspaces, listings, tags and join requests."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar, Dict, List, Optional, Tuple

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_serializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from .errors import DecodeFailure
from .ids import normalize_user_ids
from .normalization import format_timestamp, parse_timestamp

if TYPE_CHECKING:
    from ..store.base import DocumentSnapshot


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PropertyType(str, Enum):
    """Kind of listing. Decoding is case-insensitive."""

    HOUSE = "House"
    APARTMENT = "Apartment"
    CONDO = "Condo"
    TOWNHOUSE = "Townhouse"
    STUDIO = "Studio"
    DUPLEX = "Duplex"
    VILLA = "Villa"
    PENTHOUSE = "Penthouse"
    LOFT = "Loft"
    OTHER = "Other"

    @classmethod
    def _missing_(cls, value: object) -> Optional["PropertyType"]:
        if isinstance(value, str):
            lowered = value.strip().lower()
            for member in cls:
                if member.value.lower() == lowered:
                    return member
        return None


class PropertyRating(str, Enum):
    """How interesting a listing (or tag) is to the workspace."""

    NONE = "none"
    EXCLUDED = "excluded"
    CONSIDERING = "considering"
    GOOD = "good"
    EXCELLENT = "excellent"

    @classmethod
    def _missing_(cls, value: object) -> Optional["PropertyRating"]:
        if isinstance(value, str):
            lowered = value.strip().lower()
            for member in cls:
                if member.value == lowered:
                    return member
        return None

    @property
    def display_name(self) -> str:
        if self is PropertyRating.NONE:
            return "Not Rated"
        return self.value.title()

    @classmethod
    def from_legacy(cls, rating: float, is_favorite: bool = False) -> "PropertyRating":
        """Convert the old 0-5 star rating (plus favorite flag)."""
        if is_favorite and rating >= 3.5:
            return cls.EXCELLENT if rating >= 4.0 else cls.GOOD
        if rating <= 1.0:
            return cls.NONE
        if rating <= 2.5:
            return cls.EXCLUDED
        if rating <= 3.5:
            return cls.CONSIDERING
        if rating <= 4.5:
            return cls.GOOD
        return cls.EXCELLENT

    @property
    def legacy_value(self) -> float:
        return {
            PropertyRating.NONE: 0.0,
            PropertyRating.EXCLUDED: 1.5,
            PropertyRating.CONSIDERING: 3.0,
            PropertyRating.GOOD: 4.0,
            PropertyRating.EXCELLENT: 5.0,
        }[self]


class CamelModel(BaseModel):
    """Base for models whose wire names are camelCase."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class PropertyNote(CamelModel):
    """Free-text note attached to a listing."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    text: str
    date: datetime = Field(default_factory=_utcnow)

    @field_validator("date", mode="before")
    @classmethod
    def _parse_date(cls, v: Any) -> Any:
        return parse_timestamp(v) if v is not None else _utcnow()

    @field_serializer("date", when_used="json")
    def _serialize_date(self, v: datetime) -> str:
        return format_timestamp(v)


class StoredModel(CamelModel):
    """A model persisted as one document. The id lives outside the body."""

    server_timestamp_fields: ClassVar[Tuple[str, ...]] = ()

    id: Optional[str] = Field(None, exclude=True)

    @classmethod
    def from_snapshot(cls, snapshot: "DocumentSnapshot"):
        """Decode a stored document.

        Raises:
            DecodeFailure: If the document body does not fit the model.
        """
        try:
            return cls.model_validate({**snapshot.data, "id": snapshot.id})
        except ValidationError as e:
            raise DecodeFailure(snapshot.collection, snapshot.id, str(e)) from e

    def to_document(self) -> Dict[str, Any]:
        """Document body without the id and without store-assigned timestamps."""
        exclude = {name for name in self.server_timestamp_fields}
        return self.model_dump(by_alias=True, mode="json", exclude=exclude)


def _none_as_empty_list(v: Any) -> Any:
    return [] if v is None else v


def _coerce_enum(enum_cls: type, v: Any) -> Any:
    """Route plain strings through the enum so case-insensitive lookup applies."""
    if isinstance(v, str) and not isinstance(v, Enum):
        try:
            return enum_cls(v)
        except ValueError:
            return v
    return v


class Workspace(StoredModel):
    """Unit of shared access. Membership is a set kept as an ordered list."""

    server_timestamp_fields: ClassVar[Tuple[str, ...]] = ("created_date",)

    member_user_ids: List[str] = Field(default_factory=list)
    created_date: Optional[datetime] = None

    @field_validator("member_user_ids", mode="before")
    @classmethod
    def _dedupe_members(cls, v: Any) -> Any:
        v = _none_as_empty_list(v)
        if isinstance(v, (list, tuple)):
            return normalize_user_ids(v)
        return v

    @field_validator("created_date", mode="before")
    @classmethod
    def _parse_created(cls, v: Any) -> Any:
        return parse_timestamp(v)

    def has_member(self, user_id: str) -> bool:
        return user_id in self.member_user_ids

    @property
    def member_count(self) -> int:
        return len(self.member_user_ids)


class Property(StoredModel):
    """A property listing owned (through its membership list) by one workspace."""

    server_timestamp_fields: ClassVar[Tuple[str, ...]] = ("created_date", "updated_date")
    scalar_fields: ClassVar[Tuple[str, ...]] = (
        "title",
        "location",
        "link",
        "agent_contact",
        "agency",
        "price",
        "size",
        "bedrooms",
        "bathrooms",
        "type",
        "rating",
        "tag_ids",
        "notes",
    )

    title: str = ""
    location: str = ""
    link: str = ""
    agent_contact: str = ""
    agency: Optional[str] = None
    price: float = 0
    size: float = 0
    bedrooms: int = 0
    bathrooms: float = 0
    type: PropertyType = PropertyType.APARTMENT
    rating: PropertyRating = PropertyRating.NONE
    tag_ids: List[str] = Field(default_factory=list)
    notes: List[PropertyNote] = Field(default_factory=list)
    member_user_ids: List[str] = Field(default_factory=list)
    created_date: Optional[datetime] = None
    updated_date: Optional[datetime] = None

    @field_validator("tag_ids", "notes", mode="before")
    @classmethod
    def _null_lists(cls, v: Any) -> Any:
        return _none_as_empty_list(v)

    @field_validator("type", mode="before")
    @classmethod
    def _parse_type(cls, v: Any) -> Any:
        return _coerce_enum(PropertyType, v)

    @field_validator("rating", mode="before")
    @classmethod
    def _parse_rating(cls, v: Any) -> Any:
        return _coerce_enum(PropertyRating, v)

    @field_validator("member_user_ids", mode="before")
    @classmethod
    def _dedupe_members(cls, v: Any) -> Any:
        v = _none_as_empty_list(v)
        if isinstance(v, (list, tuple)):
            return normalize_user_ids(v)
        return v

    @field_validator("created_date", "updated_date", mode="before")
    @classmethod
    def _parse_dates(cls, v: Any) -> Any:
        return parse_timestamp(v)

    def scalar_document(self) -> Dict[str, Any]:
        """Only the user-editable fields, as written on update."""
        return self.model_dump(by_alias=True, mode="json", include=set(self.scalar_fields))

    @property
    def latest_note(self) -> Optional[PropertyNote]:
        if not self.notes:
            return None
        return max(self.notes, key=lambda n: n.date)

    @property
    def price_per_unit(self) -> Optional[float]:
        if self.size <= 0:
            return None
        return self.price / self.size


class Tag(StoredModel):
    """Label shared by listings of one workspace."""

    scalar_fields: ClassVar[Tuple[str, ...]] = ("name", "rating")

    name: str
    rating: PropertyRating = PropertyRating.NONE
    member_user_ids: List[str] = Field(default_factory=list)

    @field_validator("rating", mode="before")
    @classmethod
    def _parse_rating(cls, v: Any) -> Any:
        return _coerce_enum(PropertyRating, v)

    @field_validator("member_user_ids", mode="before")
    @classmethod
    def _dedupe_members(cls, v: Any) -> Any:
        v = _none_as_empty_list(v)
        if isinstance(v, (list, tuple)):
            return normalize_user_ids(v)
        return v

    def scalar_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", include=set(self.scalar_fields))


class JoinRequest(StoredModel):
    """Pending ask by a non-member to join a workspace."""

    server_timestamp_fields: ClassVar[Tuple[str, ...]] = ("created_date",)

    workspace_id: str
    user_id: str
    created_date: Optional[datetime] = None

    @field_validator("created_date", mode="before")
    @classmethod
    def _parse_created(cls, v: Any) -> Any:
        return parse_timestamp(v)


# ---------------------------------------------------------------------------
# Portable export format
# ---------------------------------------------------------------------------


class ListingPayload(CamelModel):
    """Scalar listing fields as exchanged outside the store.

    Missing or null fields fall back to defaults instead of failing.
    """

    title: str = "Untitled Property"
    location: str = "Unknown Location"
    link: str = "Missing link"
    agent_contact: str = ""
    agency: Optional[str] = None
    price: float = 0
    size: float = 0
    bedrooms: int = 0
    bathrooms: float = 0
    type: PropertyType = PropertyType.HOUSE

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data

    @field_validator("type", mode="before")
    @classmethod
    def _parse_type(cls, v: Any) -> Any:
        return _coerce_enum(PropertyType, v)


class ExportedTag(CamelModel):
    """Tag inlined by value inside an exported listing."""

    name: str
    rating: PropertyRating = PropertyRating.NONE

    @field_validator("rating", mode="before")
    @classmethod
    def _parse_rating(cls, v: Any) -> Any:
        return _coerce_enum(PropertyRating, v)


class ExportedListing(ListingPayload):
    """One listing snapshot in a portable export document."""

    rating: PropertyRating = PropertyRating.NONE
    notes: List[PropertyNote] = Field(default_factory=list)
    tags: List[ExportedTag] = Field(default_factory=list)
    created_date: Optional[datetime] = None
    updated_date: Optional[datetime] = None

    @field_validator("rating", mode="before")
    @classmethod
    def _parse_rating(cls, v: Any) -> Any:
        return _coerce_enum(PropertyRating, v)

    @field_validator("created_date", "updated_date", mode="before")
    @classmethod
    def _parse_dates(cls, v: Any) -> Any:
        return parse_timestamp(v)

    @field_serializer("created_date", "updated_date", when_used="json")
    def _serialize_dates(self, v: Optional[datetime]) -> Optional[str]:
        return format_timestamp(v) if v is not None else None


class PortableExportDocument(CamelModel):
    """Transfer document for a listing set. Has no identity of its own."""

    version: str = "1.0"
    export_date: datetime
    listings: List[ExportedListing] = Field(default_factory=list)

    @field_validator("export_date", mode="before")
    @classmethod
    def _parse_export_date(cls, v: Any) -> Any:
        return parse_timestamp(v)

    @field_validator("listings", mode="before")
    @classmethod
    def _null_listings(cls, v: Any) -> Any:
        return _none_as_empty_list(v)

    @field_serializer("export_date", when_used="json")
    def _serialize_export_date(self, v: datetime) -> str:
        return format_timestamp(v)


class ImportResult(BaseModel):
    """Outcome of importing a portable document into a workspace."""

    success: bool
    imported_count: int = 0
    skipped_count: int = 0
    errors: List[str] = Field(default_factory=list)
    message: str = ""


class ValidationResult(BaseModel):
    """Outcome of validating a portable document without importing it."""

    is_valid: bool
    listing_count: int = 0
    error: Optional[str] = None
