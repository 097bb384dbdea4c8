import uuid
from datetime import datetime

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    JSON,
    Index,
    Boolean,
    Float,
    UniqueConstraint,
)

from app.database import Base


def _uuid_str() -> str:
    return str(uuid.uuid4())


class GhostConfigRecord(Base):
    """Per-owner trust configuration (ghost mode)."""
    __tablename__ = "ghost_configs"

    owner_id = Column(String(255), primary_key=True)
    enabled = Column(Boolean, default=False, nullable=False)
    public_ghost_enabled = Column(Boolean, default=False, nullable=False)
    default_friend_trust = Column(Float, default=0.25, nullable=False)
    default_public_trust = Column(Float, default=0.0, nullable=False)
    per_user_trust = Column(JSON, nullable=False, default=dict)
    blocked_users = Column(JSON, nullable=False, default=list)
    enforcement_mode = Column(String(20), default="query", nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class AccessAttemptRecord(Base):
    __tablename__ = "access_attempts"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    owner_id = Column(String(255), nullable=False)
    accessor_id = Column(String(255), nullable=False)
    memory_id = Column(String(255), nullable=False)
    count = Column(Integer, default=0, nullable=False)
    last_attempt_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("owner_id", "accessor_id", "memory_id", name="uq_access_attempts_triple"),
    )


class AccessBlockRecord(Base):
    __tablename__ = "access_blocks"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    owner_id = Column(String(255), nullable=False)
    accessor_id = Column(String(255), nullable=False)
    memory_id = Column(String(255), nullable=False)
    blocked_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    reason = Column(Text, nullable=False)
    attempt_count = Column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("owner_id", "accessor_id", "memory_id", name="uq_access_blocks_triple"),
    )


class ConfirmationRequestRecord(Base):
    """Pending two-phase action. Only the token hash is stored."""
    __tablename__ = "confirmation_requests"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    token_hash = Column(String(64), unique=True, nullable=False)
    user_id = Column(String(255), nullable=False)
    action = Column(String(50), nullable=False)
    target_collection = Column(String(255), nullable=True)
    payload = Column(JSON, nullable=False)
    status = Column(String(20), default="pending", nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    confirmed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_confirmation_requests_user_status", "user_id", "status"),
    )


class MemoryDocument(Base):
    """
    A memory (or published copy) stored in a named collection.

    Indexed fields are extracted for filtering; the complete object lives in
    `document` as JSON.
    """
    __tablename__ = "memory_documents"

    collection = Column(String(255), primary_key=True)
    id = Column(String(255), primary_key=True)
    user_id = Column(String(255), nullable=False)
    doc_type = Column(String(20), nullable=False)
    content_type = Column(String(50), nullable=True)
    trust = Column(Float, nullable=False)
    weight = Column(Float, nullable=False)
    moderation_status = Column(String(20), nullable=True)
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False)
    version = Column(Integer, default=1, nullable=False)
    document = Column(JSON, nullable=False)

    __table_args__ = (
        Index("idx_memory_documents_collection_created", "collection", "created_at"),
        Index("idx_memory_documents_user", "user_id"),
    )


class SpaceConfigRecord(Base):
    __tablename__ = "space_configs"

    # "space" or "group"
    kind = Column(String(10), primary_key=True)
    target_id = Column(String(255), primary_key=True)
    require_moderation = Column(Boolean, default=False, nullable=False)
    default_write_mode = Column(String(20), default="owner_only", nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class GroupMembershipRecord(Base):
    __tablename__ = "group_memberships"

    user_id = Column(String(255), primary_key=True)
    group_id = Column(String(255), primary_key=True)
    permissions = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class AuditEvent(Base):
    __tablename__ = "audit_events"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)
    event_type = Column(String(50), nullable=False)
    user_id = Column(Text, nullable=True)
    target_user_id = Column(Text, nullable=True)
    memory_id = Column(Text, nullable=True)
    reason_code = Column(String(50), nullable=True)
    meta = Column(JSON, nullable=True)

    __table_args__ = (
        Index("idx_audit_events_user_timestamp", "user_id", "timestamp"),
    )
