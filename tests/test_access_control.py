"""Test read access decisions and write permission resolution."""
from datetime import datetime

import pytest

from app.ghostscope.access_control import (
    AccessControlService,
    StaticCredentialsProvider,
    can_moderate,
    can_moderate_any,
    can_overwrite,
    can_revise,
    format_access_result_message,
)
from app.ghostscope.core_types import (
    AccessBlocked,
    AccessDeleted,
    AccessGranted,
    AccessInsufficientTrust,
    AccessLevel,
    AccessNoPermission,
    AccessNotFound,
    GhostConfig,
    GroupPermissions,
    Memory,
    PublishedACL,
    TrustTier,
    WriteMode,
)
from app.ghostscope.escalation import EscalationTracker, InMemoryEscalationStore
from app.ghostscope.ghost_config import GhostConfigService, InMemoryGhostConfigStore


@pytest.fixture
def config_service():
    return GhostConfigService(InMemoryGhostConfigStore())


@pytest.fixture
def escalation():
    return EscalationTracker(InMemoryEscalationStore())


@pytest.fixture
def access(config_service, escalation, memory_store):
    return AccessControlService(
        config_provider=config_service.get_stored_config,
        escalation=escalation,
        memory_store=memory_store,
    )


@pytest.fixture
def enabled_owner(config_service):
    config_service.update_config("alice", {"enabled": True, "default_public_trust": 0.0})
    return "alice"


class TestCheckAccess:
    """Test the ordered access decision."""

    def test_missing_memory(self, access):
        result = access.check_access("bob", None, memory_id="mem_gone")
        assert result == AccessNotFound(memory_id="mem_gone")

    def test_deleted_memory(self, access, enabled_owner):
        deleted_at = datetime(2026, 1, 1)
        memory = Memory(id="mem_1", user_id="alice", deleted_at=deleted_at)
        result = access.check_access("alice", memory)
        assert isinstance(result, AccessDeleted)
        assert result.deleted_at == deleted_at

    def test_owner_always_granted(self, access):
        """Self-access needs no config and ignores trust."""
        memory = Memory(id="mem_1", user_id="alice", trust=1.0)
        result = access.check_access("alice", memory)
        assert isinstance(result, AccessGranted)
        assert result.access_level == AccessLevel.OWNER

    def test_no_config_means_no_permission(self, access):
        memory = Memory(id="mem_1", user_id="alice", trust=0.0)
        result = access.check_access("bob", memory)
        assert result == AccessNoPermission(owner_user_id="alice", accessor_user_id="bob")

    def test_disabled_config_means_no_permission(self, access, config_service):
        config_service.update_config("alice", {"enabled": False})
        memory = Memory(id="mem_1", user_id="alice", trust=0.0)
        assert isinstance(access.check_access("bob", memory), AccessNoPermission)

    def test_blocked_user_means_no_permission(self, access, config_service, enabled_owner):
        config_service.set_user_trust("alice", "bob", 1.0)
        config_service.block_user("alice", "bob")
        memory = Memory(id="mem_1", user_id="alice", trust=0.0)
        assert isinstance(access.check_access("bob", memory), AccessNoPermission)

    def test_sufficient_trust_granted(self, access, config_service, enabled_owner):
        config_service.set_user_trust("alice", "bob", 0.6)
        memory = Memory(id="mem_1", user_id="alice", trust=0.6)
        result = access.check_access("bob", memory)
        assert isinstance(result, AccessGranted)
        assert result.access_level == AccessLevel.TRUSTED

    def test_insufficient_trust_escalates(self, access, config_service, enabled_owner):
        config_service.set_user_trust("alice", "bob", 0.3)
        memory = Memory(id="mem_1", user_id="alice", trust=0.8)

        results = [access.check_access("bob", memory) for _ in range(3)]

        assert [r.attempts_remaining for r in results[:2]] == [2, 1]
        assert all(isinstance(r, AccessInsufficientTrust) for r in results[:2])
        assert isinstance(results[2], AccessBlocked)

    def test_block_wins_over_later_trust_increase(self, access, config_service, enabled_owner):
        memory = Memory(id="mem_1", user_id="alice", trust=0.8)
        for _ in range(3):
            access.check_access("bob", memory)

        config_service.set_user_trust("alice", "bob", 1.0)
        result = access.check_access("bob", memory)
        assert isinstance(result, AccessBlocked)

    def test_granted_access_does_not_touch_escalation(self, access, escalation, config_service, enabled_owner):
        config_service.set_user_trust("alice", "bob", 0.9)
        memory = Memory(id="mem_1", user_id="alice", trust=0.5)
        access.check_access("bob", memory)
        assert escalation.store.get_attempts("alice", "bob", "mem_1") is None

    def test_friend_resolver_applies_friend_default(self, config_service, escalation):
        config_service.update_config("alice", {"enabled": True, "default_friend_trust": 0.5})
        service = AccessControlService(
            config_provider=config_service.get_stored_config,
            escalation=escalation,
            friend_resolver=lambda owner, accessor: accessor == "bob",
        )
        memory = Memory(id="mem_1", user_id="alice", trust=0.5)
        assert isinstance(service.check_access("bob", memory), AccessGranted)
        assert isinstance(service.check_access("carol", memory), AccessInsufficientTrust)


class TestViewMemory:
    def test_owner_sees_full_content(self, access, make_memory):
        memory = make_memory("alice", trust=1.0, title="Diary")
        result, disclosure = access.view_memory("alice", "alice", memory.id)
        assert isinstance(result, AccessGranted)
        assert disclosure.tier == TrustTier.FULL_ACCESS
        assert memory.content in disclosure.content

    def test_trusted_accessor_sees_tier(self, access, config_service, enabled_owner, make_memory):
        config_service.set_user_trust("alice", "bob", 0.5)
        memory = make_memory("alice", trust=0.5, title="Lunch", summary="Tacos")
        result, disclosure = access.view_memory("bob", "alice", memory.id)
        assert disclosure.tier == TrustTier.SUMMARY_ONLY
        assert memory.content not in disclosure.content

    def test_denied_has_no_disclosure(self, access, enabled_owner, make_memory):
        memory = make_memory("alice", trust=0.9)
        result, disclosure = access.view_memory("bob", "alice", memory.id)
        assert isinstance(result, AccessInsufficientTrust)
        assert disclosure is None

    def test_unknown_memory(self, access):
        result, disclosure = access.view_memory("bob", "alice", "mem_missing")
        assert result == AccessNotFound(memory_id="mem_missing")
        assert disclosure is None


class TestAccessMessages:
    def test_insufficient_trust_message(self):
        message = format_access_result_message(AccessInsufficientTrust(
            memory_id="mem_1", required_trust=0.8, actual_trust=0.2, attempts_remaining=1,
        ))
        assert "Required: 0.80" in message
        assert "1 attempt remaining" in message

    def test_blocked_message(self):
        message = format_access_result_message(AccessBlocked(
            memory_id="mem_1", reason="Access blocked after 3 unauthorized attempts", blocked_at=datetime.utcnow(),
        ))
        assert message == "Access blocked: Access blocked after 3 unauthorized attempts"


# ============================================================================
# Write permissions
# ============================================================================

@pytest.fixture
def provider():
    provider = StaticCredentialsProvider()
    provider.grant("editor", "g1", GroupPermissions(can_revise=True))
    provider.grant("overwriter", "g1", GroupPermissions(can_overwrite=True))
    provider.grant("mod", "g2", GroupPermissions(can_moderate=True))
    return provider


class TestWritePermissions:
    """Test revise/overwrite resolution."""

    def test_author_can_revise_without_write_mode(self):
        acl = PublishedACL(author_id="alice")
        assert can_revise("alice", acl)
        assert not can_revise("bob", acl)

    def test_transferred_owner_replaces_author(self):
        acl = PublishedACL(author_id="alice", owner_id="bob")
        assert can_revise("bob", acl)
        assert not can_revise("alice", acl)

    def test_anyone_mode(self):
        acl = PublishedACL(author_id="alice", write_mode=WriteMode.ANYONE)
        assert can_revise("stranger", acl)
        assert can_overwrite("stranger", acl)

    def test_group_editors_mode(self, provider):
        acl = PublishedACL(author_id="alice", write_mode=WriteMode.GROUP_EDITORS, group_ids=["g1"])
        assert can_revise("editor", acl, provider.get_credentials)
        assert not can_revise("overwriter", acl, provider.get_credentials)
        assert can_overwrite("overwriter", acl, provider.get_credentials)
        assert not can_overwrite("editor", acl, provider.get_credentials)

    def test_group_editors_without_fetcher_denies(self):
        acl = PublishedACL(author_id="alice", write_mode=WriteMode.GROUP_EDITORS, group_ids=["g1"])
        assert not can_revise("editor", acl)

    def test_group_permission_must_be_in_acl_groups(self, provider):
        acl = PublishedACL(author_id="alice", write_mode=WriteMode.GROUP_EDITORS, group_ids=["g9"])
        assert not can_revise("editor", acl, provider.get_credentials)

    def test_explicit_overwrite_grant_beats_owner_only(self):
        acl = PublishedACL(author_id="alice", write_mode=WriteMode.OWNER_ONLY, overwrite_allowed_ids=["bob"])
        assert can_overwrite("bob", acl)
        assert not can_revise("bob", acl)


def test_moderation_helpers(provider):
    mod = provider.get_credentials("mod")
    editor = provider.get_credentials("editor")
    assert can_moderate(mod, "g2")
    assert not can_moderate(mod, "g1")
    assert can_moderate_any(mod)
    assert not can_moderate_any(editor)
    assert not can_moderate_any(provider.get_credentials("nobody"))
