"""Text and timestamp normalization utilities."""

import re
from datetime import datetime, timezone
from typing import Optional, Union

# Sub-second precision first, then plain seconds
TIMESTAMP_FORMATS = (
    "%Y-%m-%dT%H:%M:%S.%f%z",
    "%Y-%m-%dT%H:%M:%S%z",
)


def normalize_title(title: str) -> str:
    """Normalize a title for comparison and sorting."""
    if not title:
        return ""
    title = title.lower()
    title = re.sub(r'[^\w\s]', '', title)
    title = ' '.join(title.split())
    return title


def normalize_tag_name(name: Optional[str]) -> str:
    """Collapse whitespace in a tag name; matching stays case-sensitive."""
    if not name:
        return ""
    return ' '.join(name.split())


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp with or without fractional seconds.

    Two passes are attempted: first with sub-second precision, then without.
    A trailing ``Z`` is accepted as UTC. Strings must carry an offset;
    only naive ``datetime`` objects are taken as UTC.

    Raises:
        ValueError: If neither pass can parse the string.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not isinstance(value, str):
        raise ValueError(f"Invalid date value: {value!r}")

    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"

    for fmt in TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue

    # Fractional seconds beyond microseconds (e.g. nanoseconds) are truncated
    match = re.match(r"^(.*\.\d{6})\d+(.*)$", text)
    if match:
        try:
            return datetime.strptime(match.group(1) + match.group(2), TIMESTAMP_FORMATS[0])
        except ValueError:
            pass

    raise ValueError(f"Invalid date format: {value}")


def format_timestamp(value: datetime) -> str:
    """Render a timestamp as ISO-8601 UTC with a ``Z`` suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    text = value.astimezone(timezone.utc).isoformat()
    return text.replace("+00:00", "Z")
