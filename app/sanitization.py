"""
Input sanitization and validation utilities.

All identifiers coming from callers pass through here before reaching the
stores. Dots are rejected in every identifier because published copies are
addressed by dot-joined composite IDs.
"""

import re
from typing import List, Optional


MAX_USER_ID_LENGTH = 255
MAX_MEMORY_ID_LENGTH = 255
MAX_DESTINATION_ID_LENGTH = 100
MAX_TAG_LENGTH = 64
MAX_TAGS = 50

_IDENTIFIER_RE = re.compile(r'^[a-zA-Z0-9_\-@]+$')


def _sanitize_identifier(value: Optional[str], field: str, max_length: int) -> str:
    if value is None or not value.strip():
        raise ValueError(f"{field} cannot be empty")

    value = value.strip()

    if len(value) > max_length:
        raise ValueError(f"{field} exceeds maximum length of {max_length}")

    if "." in value:
        raise ValueError(f"{field} cannot contain dots")

    if not _IDENTIFIER_RE.match(value):
        raise ValueError(f"{field} contains invalid characters")

    return value


def sanitize_user_id(user_id: str) -> str:
    """
    Sanitize user ID to prevent injection attacks.

    Args:
        user_id: User identifier

    Returns:
        Sanitized user ID

    Raises:
        ValueError: If user_id is invalid
    """
    return _sanitize_identifier(user_id, "user_id", MAX_USER_ID_LENGTH)


def sanitize_memory_id(memory_id: str) -> str:
    """
    Sanitize a memory ID.

    Raises:
        ValueError: If memory_id is invalid
    """
    return _sanitize_identifier(memory_id, "memory_id", MAX_MEMORY_ID_LENGTH)


def sanitize_destination_id(destination_id: str, kind: str = "space_id") -> str:
    """
    Sanitize a space or group ID.

    Args:
        destination_id: Space or group identifier
        kind: Field name used in error messages

    Raises:
        ValueError: If the ID is invalid
    """
    return _sanitize_identifier(destination_id, kind, MAX_DESTINATION_ID_LENGTH)


def sanitize_tags(tags: Optional[List[str]]) -> List[str]:
    """
    Normalize tags: strip, drop empties, dedupe preserving order.

    Raises:
        ValueError: If a tag is too long or there are too many tags
    """
    if not tags:
        return []

    cleaned: List[str] = []
    for tag in tags:
        tag = tag.strip()
        if not tag:
            continue
        if len(tag) > MAX_TAG_LENGTH:
            raise ValueError(f"tag exceeds maximum length of {MAX_TAG_LENGTH}")
        if tag not in cleaned:
            cleaned.append(tag)

    if len(cleaned) > MAX_TAGS:
        raise ValueError(f"at most {MAX_TAGS} tags are allowed")
    return cleaned
