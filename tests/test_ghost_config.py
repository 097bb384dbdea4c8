"""Test owner trust configuration, trust validation and composite IDs."""
import pytest

from app.errors import ValidationError
from app.ghostscope.composite_ids import (
    InvalidCompositeIdError,
    add_ids,
    belongs_to_user,
    build_composite_id,
    group_collection_name,
    is_composite_id,
    parse_composite_id,
    remove_ids,
    user_collection_name,
)
from app.ghostscope.core_types import EnforcementMode, GhostConfig
from app.ghostscope.ghost_config import (
    GhostConfigService,
    InMemoryGhostConfigStore,
    SqlGhostConfigStore,
    validate_ghost_config_update,
)
from app.ghostscope.trust_validator import suggest_trust_level, validate_trust_assignment


@pytest.fixture(params=["memory", "sql"])
def service(request):
    if request.param == "memory":
        return GhostConfigService(InMemoryGhostConfigStore())
    return GhostConfigService(SqlGhostConfigStore(request.getfixturevalue("db_session")))


class TestGhostConfigService:
    def test_defaults_until_written(self, service):
        assert service.get_stored_config("alice") is None
        config = service.get_config("alice")
        assert config == GhostConfig()
        assert config.enabled is False
        assert config.default_friend_trust == 0.25
        assert config.default_public_trust == 0.0
        assert config.enforcement_mode == EnforcementMode.QUERY

    def test_update_config_merges(self, service):
        service.update_config("alice", {"enabled": True})
        config = service.update_config("alice", {"default_friend_trust": 0.5, "enforcement_mode": "hybrid"})
        assert config.enabled is True
        assert config.default_friend_trust == 0.5
        assert config.enforcement_mode == EnforcementMode.HYBRID
        assert service.get_stored_config("alice") == config
        assert service.is_enabled("alice")

    def test_update_config_rejects_bad_values(self, service):
        with pytest.raises(ValidationError) as exc_info:
            service.update_config("alice", {"default_public_trust": 1.5, "colour": "red"})
        errors = exc_info.value.details["errors"]
        assert "default_public_trust must be between 0 and 1" in errors
        assert "Unknown fields: ['colour']" in errors
        assert service.get_stored_config("alice") is None

    def test_set_and_remove_user_trust(self, service):
        service.set_user_trust("alice", "bob", 0.7)
        assert service.get_config("alice").per_user_trust == {"bob": 0.7}
        service.remove_user_trust("alice", "bob")
        assert service.get_config("alice").per_user_trust == {}

    def test_cannot_set_trust_for_self(self, service):
        with pytest.raises(ValidationError, match="yourself"):
            service.set_user_trust("alice", "alice", 0.5)

    def test_trust_out_of_range(self, service):
        with pytest.raises(ValidationError):
            service.set_user_trust("alice", "bob", -0.1)

    def test_block_is_idempotent(self, service):
        service.block_user("alice", "bob")
        config = service.block_user("alice", "bob")
        assert config.blocked_users == ["bob"]
        config = service.unblock_user("alice", "bob")
        assert config.blocked_users == []
        assert service.unblock_user("alice", "bob").blocked_users == []

    def test_cannot_block_self(self, service):
        with pytest.raises(ValidationError, match="Cannot block yourself"):
            service.block_user("alice", "alice")


def test_validate_update_booleans():
    assert validate_ghost_config_update({"enabled": "yes"}) == ["enabled must be a boolean"]
    assert validate_ghost_config_update({"enabled": True, "public_ghost_enabled": False}) == []


class TestTrustValidator:
    def test_out_of_range_is_invalid(self):
        result = validate_trust_assignment(1.2)
        assert not result.valid
        assert result.error

    def test_low_trust_warns(self):
        result = validate_trust_assignment(0.1)
        assert result.valid
        assert "0.25" in result.warning

    def test_normal_trust(self):
        result = validate_trust_assignment(0.5)
        assert result.valid
        assert result.warning is None

    @pytest.mark.parametrize(
        "content_type, tags, expected",
        [
            ("note", ["Private"], 1.0),
            ("note", ["secret", "public"], 1.0),
            ("journal", ["public"], 0.0),
            ("journal", None, 0.75),
            ("meeting", [], 0.5),
            ("note", None, 0.25),
            (None, None, 0.25),
        ],
    )
    def test_suggest_trust_level(self, content_type, tags, expected):
        assert suggest_trust_level(content_type, tags) == expected


class TestCompositeIds:
    def test_build_and_parse(self):
        composite_id = build_composite_id("alice", "mem_1")
        assert composite_id == "alice.mem_1"
        assert parse_composite_id(composite_id) == ("alice", "mem_1")
        assert belongs_to_user(composite_id, "alice")
        assert not belongs_to_user(composite_id, "bob")

    def test_dots_rejected(self):
        with pytest.raises(InvalidCompositeIdError):
            build_composite_id("al.ice", "mem_1")
        assert not is_composite_id("a.b.c")
        assert not is_composite_id("mem_1")

    def test_collection_names(self):
        assert user_collection_name("alice") == "memories_users_alice"
        assert group_collection_name("g1") == "memories_groups_g1"

    def test_tracking_arrays(self):
        assert add_ids(["a", "b"], ["b", "c"]) == ["a", "b", "c"]
        assert remove_ids(["a", "b", "c"], ["b", "x"]) == ["a", "c"]
