"""
GhostScope Access Control

Read access: ownership, owner configuration, per-memory blocks and trust
comparison, in that order, ending in an AccessResult. Insufficient trust is
handed to the EscalationTracker.

Write access: revise/overwrite resolution for published copies against
their ACL and, in group mode, the caller's group credentials.
"""
import logging
import threading
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from sqlalchemy.orm import Session

from app.models import GroupMembershipRecord
from app.ghostscope.composite_ids import user_collection_name
from app.ghostscope.core_types import (
    AccessBlocked,
    AccessDeleted,
    AccessGranted,
    AccessInsufficientTrust,
    AccessLevel,
    AccessNoPermission,
    AccessNotFound,
    AccessResult,
    DisclosureResult,
    GhostConfig,
    GroupMembership,
    GroupPermissions,
    Memory,
    PublishedACL,
    UserCredentials,
    WriteMode,
)
from app.ghostscope.escalation import EscalationTracker
from app.ghostscope.memory_store import MemoryStore
from app.ghostscope.trust_policy import TrustPolicyEngine

logger = logging.getLogger(__name__)

ConfigProvider = Callable[[str], Optional[GhostConfig]]
FriendResolver = Callable[[str, str], bool]


# ============================================================================
# Credentials
# ============================================================================

class CredentialsProvider(Protocol):
    def get_credentials(self, user_id: str) -> UserCredentials: ...


CredentialsFetcher = Callable[[str], UserCredentials]


class StaticCredentialsProvider:
    """In-memory group memberships. Unknown users have none."""

    def __init__(self, memberships: Optional[Dict[str, List[GroupMembership]]] = None):
        self._lock = threading.Lock()
        self._memberships: Dict[str, List[GroupMembership]] = dict(memberships or {})

    def grant(self, user_id: str, group_id: str, permissions: GroupPermissions) -> None:
        with self._lock:
            memberships = [m for m in self._memberships.get(user_id, []) if m.group_id != group_id]
            memberships.append(GroupMembership(group_id=group_id, permissions=permissions))
            self._memberships[user_id] = memberships

    def get_credentials(self, user_id: str) -> UserCredentials:
        with self._lock:
            memberships = [m.model_copy(deep=True) for m in self._memberships.get(user_id, [])]
        return UserCredentials(user_id=user_id, group_memberships=memberships)


class SqlCredentialsProvider:
    def __init__(self, db: Session):
        self.db = db

    def grant(self, user_id: str, group_id: str, permissions: GroupPermissions) -> None:
        record = self.db.get(GroupMembershipRecord, (user_id, group_id))
        if record is None:
            record = GroupMembershipRecord(user_id=user_id, group_id=group_id)
            self.db.add(record)
        record.permissions = permissions.model_dump()
        self.db.commit()

    def get_credentials(self, user_id: str) -> UserCredentials:
        records = self.db.query(GroupMembershipRecord).filter(
            GroupMembershipRecord.user_id == user_id
        ).all()
        return UserCredentials(
            user_id=user_id,
            group_memberships=[
                GroupMembership(
                    group_id=record.group_id,
                    permissions=GroupPermissions(**(record.permissions or {})),
                )
                for record in records
            ],
        )


def has_group_permission(credentials: UserCredentials, group_id: str, permission: str) -> bool:
    for membership in credentials.group_memberships:
        if membership.group_id == group_id:
            return bool(getattr(membership.permissions, permission, False))
    return False


def can_moderate(credentials: UserCredentials, group_id: str) -> bool:
    return has_group_permission(credentials, group_id, "can_moderate")


def can_moderate_any(credentials: UserCredentials) -> bool:
    """Moderator standing in any group grants moderation of public spaces."""
    return any(m.permissions.can_moderate for m in credentials.group_memberships)


# ============================================================================
# Write permissions
# ============================================================================

def _group_write_permission(
    user_id: str,
    acl: PublishedACL,
    credentials_fetcher: Optional[CredentialsFetcher],
    permission: str,
) -> bool:
    if credentials_fetcher is None:
        return False
    credentials = credentials_fetcher(user_id)
    return any(has_group_permission(credentials, group_id, permission) for group_id in acl.group_ids)


def can_revise(
    user_id: str,
    acl: PublishedACL,
    credentials_fetcher: Optional[CredentialsFetcher] = None,
) -> bool:
    """Whether user_id may revise a published copy."""
    if user_id == acl.effective_owner:
        return True

    write_mode = acl.write_mode or WriteMode.OWNER_ONLY
    if write_mode == WriteMode.ANYONE:
        return True
    if write_mode == WriteMode.GROUP_EDITORS:
        return _group_write_permission(user_id, acl, credentials_fetcher, "can_revise")
    return False


def can_overwrite(
    user_id: str,
    acl: PublishedACL,
    credentials_fetcher: Optional[CredentialsFetcher] = None,
) -> bool:
    """Whether user_id may overwrite a published copy. Explicit grants win over write_mode."""
    if user_id == acl.effective_owner:
        return True
    if user_id in acl.overwrite_allowed_ids:
        return True

    write_mode = acl.write_mode or WriteMode.OWNER_ONLY
    if write_mode == WriteMode.ANYONE:
        return True
    if write_mode == WriteMode.GROUP_EDITORS:
        return _group_write_permission(user_id, acl, credentials_fetcher, "can_overwrite")
    return False


# ============================================================================
# Read access
# ============================================================================

def format_access_result_message(result: AccessResult) -> str:
    """User-facing text for an access outcome."""
    if isinstance(result, AccessGranted):
        return f"Access granted ({result.access_level.value})."
    if isinstance(result, AccessInsufficientTrust):
        noun = "attempt" if result.attempts_remaining == 1 else "attempts"
        return (
            f"Insufficient trust level. Required: {result.required_trust:.2f}, "
            f"actual: {result.actual_trust:.2f}. {result.attempts_remaining} {noun} "
            "remaining before access is blocked."
        )
    if isinstance(result, AccessBlocked):
        return f"Access blocked: {result.reason}"
    if isinstance(result, AccessNoPermission):
        return "No permission to access this user's memories."
    if isinstance(result, AccessNotFound):
        return f"Memory {result.memory_id} not found."
    if isinstance(result, AccessDeleted):
        return f"Memory {result.memory_id} was deleted on {result.deleted_at.isoformat()}."
    raise ValueError(f"Unknown access result: {result!r}")


class AccessControlService:
    """
    Access Control Service - trust-gated reads of another user's memories.

    Features:
    - Owners always see their own memories
    - Ghost mode off or accessor blocked by the owner: no permission
    - Per-memory blocks short-circuit every later check
    - Insufficient trust escalates towards a block
    """

    def __init__(
        self,
        config_provider: ConfigProvider,
        escalation: EscalationTracker,
        trust_engine: Optional[TrustPolicyEngine] = None,
        memory_store: Optional[MemoryStore] = None,
        friend_resolver: Optional[FriendResolver] = None,
    ):
        """
        Initialize access control.

        Args:
            config_provider: owner_id -> stored GhostConfig or None
            escalation: Escalation tracker for insufficient-trust outcomes
            trust_engine: Trust policy engine (default instance if omitted)
            memory_store: Needed only for check_access_by_id / view_memory
            friend_resolver: (owner_id, accessor_id) -> is friend
        """
        self.config_provider = config_provider
        self.escalation = escalation
        self.trust_engine = trust_engine or TrustPolicyEngine()
        self.memory_store = memory_store
        self.friend_resolver = friend_resolver

    def _resolve_trust(self, config: GhostConfig, owner_id: str, accessor_id: str) -> float:
        is_friend = bool(self.friend_resolver and self.friend_resolver(owner_id, accessor_id))
        return self.trust_engine.resolve_accessor_trust(config, accessor_id, is_friend=is_friend)

    def check_access(
        self,
        accessor_id: str,
        memory: Optional[Memory],
        memory_id: Optional[str] = None,
    ) -> AccessResult:
        """
        Decide whether accessor_id may read memory.

        Args:
            accessor_id: User asking for access
            memory: The memory, or None when it does not exist
            memory_id: ID reported when memory is None

        Returns:
            AccessResult variant
        """
        if memory is None:
            return AccessNotFound(memory_id=memory_id or "")
        if memory.is_deleted:
            return AccessDeleted(memory_id=memory.id, deleted_at=memory.deleted_at)

        owner_id = memory.user_id
        if accessor_id == owner_id:
            return AccessGranted(memory=memory, access_level=AccessLevel.OWNER)

        config = self.config_provider(owner_id)
        if config is None or not config.enabled:
            return AccessNoPermission(owner_user_id=owner_id, accessor_user_id=accessor_id)

        if accessor_id in config.blocked_users:
            return AccessNoPermission(owner_user_id=owner_id, accessor_user_id=accessor_id)

        block = self.escalation.get_block(owner_id, accessor_id, memory.id)
        if block is not None:
            return AccessBlocked(memory_id=memory.id, reason=block.reason, blocked_at=block.blocked_at)

        accessor_trust = self._resolve_trust(config, owner_id, accessor_id)
        if self.trust_engine.is_trust_sufficient(memory.trust, accessor_trust):
            return AccessGranted(memory=memory, access_level=AccessLevel.TRUSTED)

        return self.escalation.handle_insufficient_trust(
            owner_id, accessor_id, memory.id, memory.trust, accessor_trust
        )

    def check_access_by_id(self, accessor_id: str, owner_id: str, memory_id: str) -> AccessResult:
        """Look the memory up in the owner's collection, then check_access."""
        if self.memory_store is None:
            raise RuntimeError("AccessControlService was built without a memory store")
        memory = self.memory_store.collection(user_collection_name(owner_id)).get(memory_id)
        return self.check_access(accessor_id, memory, memory_id=memory_id)

    def view_memory(
        self,
        accessor_id: str,
        owner_id: str,
        memory_id: str,
    ) -> Tuple[AccessResult, Optional[DisclosureResult]]:
        """Access check plus the rendering the accessor is entitled to when granted."""
        result = self.check_access_by_id(accessor_id, owner_id, memory_id)
        if not isinstance(result, AccessGranted):
            return result, None

        is_self = result.access_level == AccessLevel.OWNER
        if is_self:
            accessor_trust = 1.0
        else:
            config = self.config_provider(owner_id) or GhostConfig()
            accessor_trust = self._resolve_trust(config, owner_id, accessor_id)
        return result, self.trust_engine.render_for_disclosure(result.memory, accessor_trust, is_self)
