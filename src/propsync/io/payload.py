"""Single-listing payloads and shareable links.

A listing can arrive as a small JSON payload (shared from a browser or an
automation) and be passed around inside an import link. Workspaces are
shared with a join link carrying the workspace id.
"""

import base64
import binascii
import json
from typing import Optional, Union
from urllib.parse import parse_qs, quote, urlencode, urlparse

from pydantic import ValidationError

from ..config.settings import settings
from ..core.errors import ValidationFailure
from ..core.models import ListingPayload, Property, PropertyRating, Workspace
from ..services.membership import MembershipWriteService
from ..utils.logging import get_logger

logger = get_logger(__name__)

IMPORT_HOST = "import-property"
JOIN_HOST = "join-workspace"


def parse_listing_payload(text: Union[str, bytes]) -> ListingPayload:
    """Decode a listing payload; missing fields take their defaults.

    Raises:
        ValidationFailure: If the payload is not a JSON object of listing fields.
    """
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValidationFailure(f"Invalid JSON payload: {e}") from e
    if not isinstance(data, dict):
        raise ValidationFailure("Listing payload must be a JSON object")
    try:
        return ListingPayload.model_validate(data)
    except ValidationError as e:
        raise ValidationFailure(f"Invalid listing payload: {e}") from e


def encode_payload_for_url(payload: ListingPayload) -> str:
    """URL-safe base64 of the payload's JSON."""
    raw = payload.model_dump_json(by_alias=True).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii")


def decode_payload_from_url(encoded: str) -> ListingPayload:
    """Inverse of ``encode_payload_for_url``; standard base64 is accepted too."""
    text = encoded.strip().replace(" ", "+")
    text += "=" * (-len(text) % 4)
    try:
        if "-" in text or "_" in text:
            raw = base64.urlsafe_b64decode(text)
        else:
            raw = base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationFailure(f"Invalid base64 payload: {e}") from e
    return parse_listing_payload(raw)


def build_import_link(payload: ListingPayload, scheme: Optional[str] = None) -> str:
    scheme = scheme or settings.deep_link_scheme
    return f"{scheme}://{IMPORT_HOST}?{urlencode({'data': encode_payload_for_url(payload)})}"


def parse_import_link(url: str) -> ListingPayload:
    """Extract the listing payload from an import link.

    Raises:
        ValidationFailure: If the link is not an import link or has no payload.
    """
    parsed = urlparse(url)
    if parsed.netloc != IMPORT_HOST:
        raise ValidationFailure(f"Not an import link: {url}")
    values = parse_qs(parsed.query).get("data")
    if not values:
        raise ValidationFailure("Import link has no data parameter")
    return decode_payload_from_url(values[0])


def build_join_link(workspace_id: str, scheme: Optional[str] = None) -> str:
    if not workspace_id:
        raise ValueError("workspace_id must not be empty")
    scheme = scheme or settings.deep_link_scheme
    return f"{scheme}://{JOIN_HOST}?id={quote(workspace_id, safe='')}"


def parse_join_link(url: str) -> Optional[str]:
    """Workspace id carried by a join link, or None for any other URL."""
    parsed = urlparse(url)
    if parsed.netloc != JOIN_HOST:
        return None
    values = parse_qs(parsed.query).get("id")
    if not values or not values[0]:
        return None
    return values[0]


def payload_to_property(payload: ListingPayload) -> Property:
    """New, unsaved property for a payload. Rating starts at none."""
    return Property(
        title=payload.title,
        location=payload.location,
        link=payload.link,
        agent_contact=payload.agent_contact,
        agency=payload.agency,
        price=payload.price,
        size=payload.size,
        bedrooms=payload.bedrooms,
        bathrooms=payload.bathrooms,
        type=payload.type,
        rating=PropertyRating.NONE,
    )


async def save_listing(
    payload: ListingPayload,
    writer: MembershipWriteService,
    workspace: Optional[Workspace],
) -> str:
    """Store the payload as a new property in ``workspace`` and return its id."""
    property_id = await writer.write_property(payload_to_property(payload), workspace)
    logger.info(f"Saved listing '{payload.title}' as {property_id}")
    return property_id
