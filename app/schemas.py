"""
GhostScope API Schemas

Request/Response schemas for the /v1 endpoints. Domain types that are
returned unchanged (GhostConfig, PendingConfirmation, SearchResult, ...)
live in app.ghostscope.core_types.
"""
from datetime import datetime
from typing import Optional, Dict, Any, List

from pydantic import BaseModel, Field

from app.ghostscope.core_types import (
    AccessLevel,
    DeletedFilter,
    DisclosureResult,
    DocType,
    Location,
    Memory,
    MemoryContext,
    ModerationAction,
    ModerationStatus,
    PublishedACL,
    TrustTier,
)


# ============================================================================
# Owner trust configuration (/v1/ghost)
# ============================================================================

class SetTrustRequest(BaseModel):
    trust: float = Field(..., description="Trust granted to the user (0.0 - 1.0)", examples=[0.75])


# ============================================================================
# Memories (/v1/memories)
# ============================================================================

class MemoryCreateRequest(BaseModel):
    content: str = Field(..., min_length=1, description="Memory content", examples=["Met Sam for coffee downtown"])
    title: Optional[str] = Field(None, max_length=500)
    summary: Optional[str] = None
    type: str = Field("note", max_length=50, description="Content type", examples=["note", "journal", "comment"])
    doc_type: DocType = DocType.MEMORY
    weight: float = Field(0.5, ge=0.0, le=1.0)
    trust: Optional[float] = Field(
        None,
        description="Required trust to see this memory. Suggested from type and tags when omitted.",
    )
    tags: List[str] = Field(default_factory=list)
    location: Optional[Location] = None
    context: Optional[MemoryContext] = None
    references: Optional[List[str]] = None


class MemoryCreateResponse(BaseModel):
    memory: Memory
    trust_warning: Optional[str] = None


# ============================================================================
# Access (/v1/access)
# ============================================================================

class AccessCheckRequest(BaseModel):
    owner_id: str = Field(..., description="Owner of the memory", examples=["user123"])
    memory_id: str = Field(..., examples=["mem_0123456789abcdef"])


class AccessCheckResponse(BaseModel):
    """
    Outcome of an access check.

    The memory itself is never returned; `disclosure` carries the rendering
    the caller is entitled to when access is granted.
    """
    status: str
    message: str
    access_level: Optional[AccessLevel] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    disclosure: Optional[DisclosureResult] = None


class WritePermissionRequest(BaseModel):
    acl: PublishedACL
    user_id: Optional[str] = Field(None, description="User to check; defaults to the caller")


class WritePermissionResponse(BaseModel):
    user_id: str
    allowed: bool


class BlockClearedResponse(BaseModel):
    accessor_id: str
    memory_id: str
    cleared: bool = True


# ============================================================================
# Trust helpers (/v1/trust)
# ============================================================================

class TrustValidateRequest(BaseModel):
    trust: float


class TrustSuggestRequest(BaseModel):
    content_type: Optional[str] = None
    tags: Optional[List[str]] = None


class TrustSuggestResponse(BaseModel):
    trust: float
    tier: TrustTier


# ============================================================================
# Publication (/v1/spaces)
# ============================================================================

class PublishRequest(BaseModel):
    memory_id: str
    spaces: List[str] = Field(default_factory=list, examples=[["the_void"]])
    groups: List[str] = Field(default_factory=list)
    additional_tags: List[str] = Field(default_factory=list)


class RetractRequest(BaseModel):
    memory_id: str
    spaces: List[str] = Field(default_factory=list)
    groups: List[str] = Field(default_factory=list)


class ReviseRequest(BaseModel):
    memory_id: str


class TokenRequest(BaseModel):
    token: str = Field(..., min_length=1, description="Confirmation token returned by publish/retract/revise")


class DenyResponse(BaseModel):
    denied: bool = True


class ModerateRequest(BaseModel):
    memory_id: str = Field(..., description="Composite ID of the published copy, or the source memory ID")
    action: ModerationAction
    space_id: Optional[str] = None
    group_id: Optional[str] = None
    reason: Optional[str] = Field(None, max_length=500)


class SearchRequest(BaseModel):
    query: Optional[str] = None
    spaces: List[str] = Field(default_factory=list)
    groups: List[str] = Field(default_factory=list)
    content_type: Optional[str] = None
    tags: Optional[List[str]] = None
    min_weight: Optional[float] = Field(None, ge=0.0, le=1.0)
    max_weight: Optional[float] = Field(None, ge=0.0, le=1.0)
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    moderation_filter: Optional[ModerationStatus] = None
    include_comments: bool = False
    deleted_filter: DeletedFilter = DeletedFilter.EXCLUDE
    limit: Optional[int] = Field(None, ge=1, le=100)
    offset: int = Field(0, ge=0)


class QueryRequest(BaseModel):
    question: str
    spaces: List[str]
    content_type: Optional[str] = None
    tags: Optional[List[str]] = None
    min_weight: Optional[float] = Field(None, ge=0.0, le=1.0)
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    moderation_filter: Optional[ModerationStatus] = None
    include_comments: bool = False
    limit: Optional[int] = Field(None, ge=1, le=100)
