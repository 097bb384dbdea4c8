"""
Composite IDs, collection names and tracking-array helpers.

A published copy is addressed as "{owner_id}.{memory_id}", so neither part
may contain a dot.
"""
from typing import Iterable, List, Tuple


COMPOSITE_SEPARATOR = "."

SPACES_COLLECTION = "memories_spaces_public"


class InvalidCompositeIdError(ValueError):
    """Raised when a composite ID cannot be built or parsed."""


def build_composite_id(user_id: str, memory_id: str) -> str:
    if not user_id or not memory_id:
        raise InvalidCompositeIdError("user_id and memory_id must be non-empty")
    if COMPOSITE_SEPARATOR in user_id or COMPOSITE_SEPARATOR in memory_id:
        raise InvalidCompositeIdError(
            f"IDs cannot contain '{COMPOSITE_SEPARATOR}': user_id={user_id!r}, memory_id={memory_id!r}"
        )
    return f"{user_id}{COMPOSITE_SEPARATOR}{memory_id}"


def parse_composite_id(composite_id: str) -> Tuple[str, str]:
    """Split a composite ID into (user_id, memory_id)."""
    parts = composite_id.split(COMPOSITE_SEPARATOR)
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise InvalidCompositeIdError(f"Invalid composite ID: {composite_id!r}")
    return parts[0], parts[1]


def is_composite_id(value: str) -> bool:
    try:
        parse_composite_id(value)
    except InvalidCompositeIdError:
        return False
    return True


def belongs_to_user(composite_id: str, user_id: str) -> bool:
    if not is_composite_id(composite_id):
        return False
    return parse_composite_id(composite_id)[0] == user_id


def user_collection_name(user_id: str) -> str:
    return f"memories_users_{user_id}"


def group_collection_name(group_id: str) -> str:
    return f"memories_groups_{group_id}"


def add_ids(existing: Iterable[str], additions: Iterable[str]) -> List[str]:
    """Append IDs not already present, preserving order."""
    result = list(existing)
    for item in additions:
        if item not in result:
            result.append(item)
    return result


def remove_ids(existing: Iterable[str], removals: Iterable[str]) -> List[str]:
    removals = set(removals)
    return [item for item in existing if item not in removals]
