"""
Trust assignment checks and trust suggestions for new memories.
"""
from typing import List, Optional

from pydantic import BaseModel


LOW_TRUST_WARNING_THRESHOLD = 0.25

PRIVATE_TAGS = {"private", "secret"}
PUBLIC_TAGS = {"public"}

PERSONAL_TYPES = {"journal", "memory", "event", "ghost"}
BUSINESS_TYPES = {
    "system", "audit", "action", "history", "invoice",
    "contract", "email", "conversation", "meeting",
}

# Required trust: private memories are owner-exclusive, public ones open to anyone.
PRIVATE_TRUST = 1.0
PUBLIC_TRUST = 0.0
PERSONAL_TRUST = 0.75
BUSINESS_TRUST = 0.5
DEFAULT_TRUST = 0.25


class TrustValidationResult(BaseModel):
    valid: bool
    warning: Optional[str] = None
    error: Optional[str] = None


def validate_trust_assignment(trust: float) -> TrustValidationResult:
    """Check a trust value an owner wants to assign."""
    if trust < 0 or trust > 1:
        return TrustValidationResult(valid=False, error="Trust must be between 0 and 1")
    if trust < LOW_TRUST_WARNING_THRESHOLD:
        return TrustValidationResult(
            valid=True,
            warning=(
                f"Trust {trust:.2f} is below {LOW_TRUST_WARNING_THRESHOLD:.2f}: "
                "this user will only learn that memories exist."
            ),
        )
    return TrustValidationResult(valid=True)


def suggest_trust_level(content_type: Optional[str] = None, tags: Optional[List[str]] = None) -> float:
    """
    Suggest a required trust for a new memory.

    Tags win over content type; private beats public when both are present.
    """
    tag_set = {tag.lower() for tag in (tags or [])}
    if tag_set & PRIVATE_TAGS:
        return PRIVATE_TRUST
    if tag_set & PUBLIC_TAGS:
        return PUBLIC_TRUST

    content_type = (content_type or "").lower()
    if content_type in PERSONAL_TYPES:
        return PERSONAL_TRUST
    if content_type in BUSINESS_TYPES:
        return BUSINESS_TRUST
    return DEFAULT_TRUST
