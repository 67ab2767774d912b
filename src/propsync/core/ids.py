"""ID generation and membership list utilities."""

import secrets
import string
from typing import Iterable, List, Optional

_ID_ALPHABET = string.ascii_letters + string.digits
DOCUMENT_ID_LENGTH = 20


def generate_document_id(length: int = DOCUMENT_ID_LENGTH) -> str:
    """Generate a random store-style document id."""
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


def normalize_user_ids(user_ids: Optional[Iterable[str]]) -> List[str]:
    """Drop empty and repeated user ids, keeping first-seen order."""
    if not user_ids:
        return []
    seen = set()
    result: List[str] = []
    for uid in user_ids:
        if not uid or uid in seen:
            continue
        seen.add(uid)
        result.append(uid)
    return result


def same_members(first: Iterable[str], second: Iterable[str]) -> bool:
    """Compare two membership lists as sets."""
    return set(first) == set(second)
