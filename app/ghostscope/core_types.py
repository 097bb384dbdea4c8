"""
GhostScope - Canonical Type Definitions

Types shared by the trust engine, escalation tracking, confirmation tokens
and the publication workflow. Domain outcomes (access results, publication
results) are closed pydantic models rather than exceptions.
"""
import uuid
from datetime import datetime, timezone
from typing import Annotated, Optional, Dict, Any, List, Literal, Union
from enum import Enum

from pydantic import BaseModel, Field, field_validator


# ============================================================================
# Enums - Canonical Values
# ============================================================================

class EnforcementMode(str, Enum):
    """Where trust is enforced for ghost conversations."""
    QUERY = "query"
    PROMPT = "prompt"
    HYBRID = "hybrid"


class WriteMode(str, Enum):
    """Who besides the owner may revise a published copy."""
    OWNER_ONLY = "owner_only"
    GROUP_EDITORS = "group_editors"
    ANYONE = "anyone"


class ModerationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    REMOVED = "removed"


class ModerationAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    REMOVE = "remove"


MODERATION_ACTION_STATUS = {
    ModerationAction.APPROVE: ModerationStatus.APPROVED,
    ModerationAction.REJECT: ModerationStatus.REJECTED,
    ModerationAction.REMOVE: ModerationStatus.REMOVED,
}


class DocType(str, Enum):
    MEMORY = "memory"
    RELATIONSHIP = "relationship"


class AccessLevel(str, Enum):
    OWNER = "owner"
    TRUSTED = "trusted"


class TrustTier(str, Enum):
    """Disclosure tiers, strictly descending."""
    FULL_ACCESS = "Full Access"
    PARTIAL_ACCESS = "Partial Access"
    SUMMARY_ONLY = "Summary Only"
    METADATA_ONLY = "Metadata Only"
    EXISTENCE_ONLY = "Existence Only"


class ConfirmationAction(str, Enum):
    PUBLISH_MEMORY = "publish_memory"
    RETRACT_MEMORY = "retract_memory"
    REVISE_MEMORY = "revise_memory"


class ConfirmationStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    DENIED = "denied"
    EXPIRED = "expired"


class DeletedFilter(str, Enum):
    EXCLUDE = "exclude"
    INCLUDE = "include"
    ONLY = "only"


# ============================================================================
# Memories
# ============================================================================

class Location(BaseModel):
    """Where a memory happened. Sensitive: cleared by redaction."""
    gps: Optional[Dict[str, float]] = None  # {latitude, longitude, accuracy}
    address: Optional[str] = None
    source: str = "unavailable"
    confidence: float = Field(ge=0.0, le=1.0, default=0.0)
    is_approximate: bool = True


class MemoryContext(BaseModel):
    """Circumstances of a memory. participants/environment/notes are sensitive."""
    participants: Optional[List[str]] = None
    environment: Optional[str] = None
    notes: Optional[str] = None
    timestamp: Optional[datetime] = None
    source: Optional[str] = None


class Memory(BaseModel):
    """
    A memory owned by exactly one user.

    `trust` is the required trust: the minimum accessor trust needed to see
    anything beyond its existence. `space_ids`/`group_ids` track where the
    memory has been published.
    """
    id: str
    user_id: str
    doc_type: DocType = DocType.MEMORY
    content: str = ""
    title: Optional[str] = None
    summary: Optional[str] = None
    type: str = "note"
    weight: float = Field(ge=0.0, le=1.0, default=0.5)
    trust: float = Field(ge=0.0, le=1.0, default=0.25)
    location: Optional[Location] = None
    context: Optional[MemoryContext] = None
    tags: List[str] = Field(default_factory=list)
    references: Optional[List[str]] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    version: int = 1
    deleted_at: Optional[datetime] = None
    deleted_by: Optional[str] = None
    deletion_reason: Optional[str] = None
    space_ids: List[str] = Field(default_factory=list)
    group_ids: List[str] = Field(default_factory=list)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class RevisionEntry(BaseModel):
    content: str
    revised_at: datetime


class PublishedACL(BaseModel):
    """Write access list attached to a published copy."""
    author_id: str
    owner_id: Optional[str] = None
    write_mode: Optional[WriteMode] = None
    group_ids: List[str] = Field(default_factory=list)
    overwrite_allowed_ids: List[str] = Field(default_factory=list)
    moderation_status: Optional[ModerationStatus] = None
    moderated_by: Optional[str] = None
    moderated_at: Optional[datetime] = None

    @property
    def effective_owner(self) -> str:
        """owner_id overrides author_id once ownership is transferred."""
        return self.owner_id or self.author_id


class PublishedMemory(Memory):
    """
    A copy of a memory living in a space or group collection.

    `id` is the composite ID; `space_ids`/`group_ids` list the destinations
    this copy is currently visible in.
    """
    source_memory_id: str
    author_id: str
    owner_id: Optional[str] = None
    write_mode: Optional[WriteMode] = None
    overwrite_allowed_ids: List[str] = Field(default_factory=list)
    moderation_status: Optional[ModerationStatus] = None
    moderated_by: Optional[str] = None
    moderated_at: Optional[datetime] = None
    published_at: datetime = Field(default_factory=datetime.utcnow)
    discovery_count: int = 0
    attribution: str = "user"
    revision_count: int = 0
    revision_history: List[RevisionEntry] = Field(default_factory=list)
    revised_at: Optional[datetime] = None
    retracted_at: Optional[datetime] = None

    @property
    def acl(self) -> PublishedACL:
        return PublishedACL(
            author_id=self.author_id,
            owner_id=self.owner_id,
            write_mode=self.write_mode,
            group_ids=list(self.group_ids),
            overwrite_allowed_ids=list(self.overwrite_allowed_ids),
            moderation_status=self.moderation_status,
            moderated_by=self.moderated_by,
            moderated_at=self.moderated_at,
        )


# ============================================================================
# Owner trust configuration
# ============================================================================

class GhostConfig(BaseModel):
    """Per-owner trust configuration. Defaults apply until the owner writes one."""
    enabled: bool = False
    public_ghost_enabled: bool = False
    default_friend_trust: float = Field(ge=0.0, le=1.0, default=0.25)
    default_public_trust: float = Field(ge=0.0, le=1.0, default=0.0)
    per_user_trust: Dict[str, float] = Field(default_factory=dict)
    blocked_users: List[str] = Field(default_factory=list)
    enforcement_mode: EnforcementMode = EnforcementMode.QUERY

    @field_validator("per_user_trust")
    @classmethod
    def validate_per_user_trust(cls, v: Dict[str, float]) -> Dict[str, float]:
        for user_id, trust in v.items():
            if trust < 0 or trust > 1:
                raise ValueError(f"trust for {user_id} must be between 0 and 1")
        return v

    @field_validator("blocked_users")
    @classmethod
    def dedupe_blocked_users(cls, v: List[str]) -> List[str]:
        return list(dict.fromkeys(v))


# ============================================================================
# Escalation
# ============================================================================

class AccessAttempt(BaseModel):
    count: int = 0
    last_attempt_at: datetime = Field(default_factory=datetime.utcnow)


class AccessBlock(BaseModel):
    blocked_at: datetime = Field(default_factory=datetime.utcnow)
    reason: str
    attempt_count: int


# ============================================================================
# Credentials and destination configuration
# ============================================================================

class GroupPermissions(BaseModel):
    can_read: bool = True
    can_publish: bool = False
    can_revise: bool = False
    can_propose: bool = False
    can_overwrite: bool = False
    can_comment: bool = False
    can_retract_own: bool = False
    can_retract_any: bool = False
    can_manage_members: bool = False
    can_moderate: bool = False


class GroupMembership(BaseModel):
    group_id: str
    permissions: GroupPermissions = Field(default_factory=GroupPermissions)


class UserCredentials(BaseModel):
    user_id: str
    group_memberships: List[GroupMembership] = Field(default_factory=list)


class SpaceConfig(BaseModel):
    """Moderation and write defaults for one space or group."""
    require_moderation: bool = False
    default_write_mode: WriteMode = WriteMode.OWNER_ONLY


# ============================================================================
# Confirmation tokens
# ============================================================================

class ConfirmationRequest(BaseModel):
    """
    A validated-but-not-yet-executed action.

    `token` is only populated on the object returned by issue(); stores keep
    the hash.
    """
    token: Optional[str] = None
    token_hash: str
    user_id: str
    action: ConfirmationAction
    target_collection: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)
    status: ConfirmationStatus = ConfirmationStatus.PENDING
    created_at: datetime = Field(default_factory=datetime.utcnow)
    expires_at: datetime
    confirmed_at: Optional[datetime] = None


# ============================================================================
# Access results (tagged union)
# ============================================================================

class AccessGranted(BaseModel):
    status: Literal["granted"] = "granted"
    memory: Memory
    access_level: AccessLevel


class AccessInsufficientTrust(BaseModel):
    status: Literal["insufficient_trust"] = "insufficient_trust"
    memory_id: str
    required_trust: float
    actual_trust: float
    attempts_remaining: int


class AccessBlocked(BaseModel):
    status: Literal["blocked"] = "blocked"
    memory_id: str
    reason: str
    blocked_at: datetime


class AccessNoPermission(BaseModel):
    status: Literal["no_permission"] = "no_permission"
    owner_user_id: str
    accessor_user_id: str


class AccessNotFound(BaseModel):
    status: Literal["not_found"] = "not_found"
    memory_id: str


class AccessDeleted(BaseModel):
    status: Literal["deleted"] = "deleted"
    memory_id: str
    deleted_at: datetime


AccessResult = Annotated[
    Union[
        AccessGranted,
        AccessInsufficientTrust,
        AccessBlocked,
        AccessNoPermission,
        AccessNotFound,
        AccessDeleted,
    ],
    Field(discriminator="status"),
]


class DisclosureResult(BaseModel):
    """A memory rendered at the tier an accessor is entitled to."""
    memory_id: str
    tier: TrustTier
    content: str


# ============================================================================
# Search
# ============================================================================

class SearchFilters(BaseModel):
    """Scalar filters applied by memory collections."""
    content_types: Optional[List[str]] = None
    tags: Optional[List[str]] = None  # all must match
    min_weight: Optional[float] = None
    max_weight: Optional[float] = None
    min_trust: Optional[float] = None
    max_trust: Optional[float] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    space_ids: Optional[List[str]] = None  # any must match
    moderation_status: Optional[ModerationStatus] = None
    deleted: DeletedFilter = DeletedFilter.EXCLUDE
    include_comments: bool = False
    doc_type: Optional[DocType] = None

    @field_validator("date_from", "date_to")
    @classmethod
    def to_naive_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Stored timestamps are naive UTC."""
        if v is not None and v.tzinfo is not None:
            return v.astimezone(timezone.utc).replace(tzinfo=None)
        return v


# ============================================================================
# Publication results
# ============================================================================

class PendingConfirmation(BaseModel):
    """Returned by publish/retract/revise: nothing has changed yet."""
    token: str
    action: ConfirmationAction
    expires_at: datetime
    payload: Dict[str, Any]


class DestinationFailure(BaseModel):
    location: str
    error: str


class PublishResult(BaseModel):
    action: Literal["publish_memory"] = "publish_memory"
    success: bool
    composite_id: str
    published_to: List[str] = Field(default_factory=list)
    failed: List[DestinationFailure] = Field(default_factory=list)
    space_ids: List[str] = Field(default_factory=list)
    group_ids: List[str] = Field(default_factory=list)


class RetractResult(BaseModel):
    action: Literal["retract_memory"] = "retract_memory"
    success: bool
    composite_id: str
    retracted_from: List[str] = Field(default_factory=list)
    failed: List[DestinationFailure] = Field(default_factory=list)
    space_ids: List[str] = Field(default_factory=list)
    group_ids: List[str] = Field(default_factory=list)


class RevisionLocationResult(BaseModel):
    location: str
    status: Literal["success", "failed", "skipped"]
    error: Optional[str] = None
    revision_count: Optional[int] = None


class ReviseResult(BaseModel):
    action: Literal["revise_memory"] = "revise_memory"
    success: bool
    composite_id: str
    revised_at: datetime
    locations: List[RevisionLocationResult] = Field(default_factory=list)


ConfirmResult = Annotated[
    Union[PublishResult, RetractResult, ReviseResult],
    Field(discriminator="action"),
]


class ModerationResult(BaseModel):
    memory_id: str
    action: ModerationAction
    moderation_status: ModerationStatus
    moderated_by: str
    moderated_at: datetime
    location: str


class SearchResult(BaseModel):
    spaces_searched: Union[Literal["all_public"], List[str]]
    groups_searched: List[str] = Field(default_factory=list)
    memories: List[PublishedMemory] = Field(default_factory=list)
    total: int = 0
    offset: int = 0
    limit: int = 10


class QueryResult(BaseModel):
    question: str
    spaces_queried: List[str]
    memories: List[PublishedMemory] = Field(default_factory=list)
    total: int = 0


# ============================================================================
# Utility Functions
# ============================================================================

def generate_memory_id() -> str:
    """Generate a memory ID in the format mem_..."""
    return f"mem_{uuid.uuid4().hex[:16]}"
