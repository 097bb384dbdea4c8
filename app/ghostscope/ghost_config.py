"""
Owner trust configuration ("ghost mode").

Only the owner mutates their configuration. Until they write one, reads
return the defaults, and access checks treat the owner as having ghost
mode disabled.
"""
import logging
import threading
from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy.orm import Session

from app.errors import ValidationError
from app.models import GhostConfigRecord
from app.ghostscope.core_types import EnforcementMode, GhostConfig

logger = logging.getLogger(__name__)

_TRUST_FIELDS = ("default_friend_trust", "default_public_trust")
_BOOL_FIELDS = ("enabled", "public_ghost_enabled")


class GhostConfigStore(Protocol):
    def get(self, owner_id: str) -> Optional[GhostConfig]: ...

    def save(self, owner_id: str, config: GhostConfig) -> None: ...


class InMemoryGhostConfigStore:
    def __init__(self):
        self._lock = threading.Lock()
        self._configs: Dict[str, GhostConfig] = {}

    def get(self, owner_id):
        with self._lock:
            config = self._configs.get(owner_id)
            return config.model_copy(deep=True) if config else None

    def save(self, owner_id, config):
        with self._lock:
            self._configs[owner_id] = config.model_copy(deep=True)


class SqlGhostConfigStore:
    def __init__(self, db: Session):
        self.db = db

    def get(self, owner_id):
        record = self.db.get(GhostConfigRecord, owner_id)
        if record is None:
            return None
        return GhostConfig(
            enabled=record.enabled,
            public_ghost_enabled=record.public_ghost_enabled,
            default_friend_trust=record.default_friend_trust,
            default_public_trust=record.default_public_trust,
            per_user_trust=dict(record.per_user_trust or {}),
            blocked_users=list(record.blocked_users or []),
            enforcement_mode=record.enforcement_mode,
        )

    def save(self, owner_id, config):
        record = self.db.get(GhostConfigRecord, owner_id)
        if record is None:
            record = GhostConfigRecord(owner_id=owner_id)
            self.db.add(record)
        record.enabled = config.enabled
        record.public_ghost_enabled = config.public_ghost_enabled
        record.default_friend_trust = config.default_friend_trust
        record.default_public_trust = config.default_public_trust
        # Reassign so the JSON columns register as changed
        record.per_user_trust = dict(config.per_user_trust)
        record.blocked_users = list(config.blocked_users)
        record.enforcement_mode = config.enforcement_mode.value
        self.db.commit()


def validate_ghost_config_update(update: Dict[str, Any]) -> List[str]:
    """
    Validate a partial configuration update.

    Returns:
        List of error messages (empty when valid)
    """
    errors = []
    for field in _TRUST_FIELDS:
        if field in update:
            value = update[field]
            if not isinstance(value, (int, float)) or isinstance(value, bool) or not 0 <= value <= 1:
                errors.append(f"{field} must be between 0 and 1")
    for field in _BOOL_FIELDS:
        if field in update and not isinstance(update[field], bool):
            errors.append(f"{field} must be a boolean")
    if "enforcement_mode" in update:
        valid_modes = [mode.value for mode in EnforcementMode]
        if update["enforcement_mode"] not in valid_modes:
            errors.append(f"enforcement_mode must be one of {valid_modes}")
    unknown = set(update) - set(_TRUST_FIELDS) - set(_BOOL_FIELDS) - {"enforcement_mode"}
    if unknown:
        errors.append(f"Unknown fields: {sorted(unknown)}")
    return errors


class GhostConfigService:
    """Owner-facing operations on a trust configuration."""

    def __init__(self, store: GhostConfigStore):
        self.store = store

    def get_stored_config(self, owner_id: str) -> Optional[GhostConfig]:
        """Configuration as written by the owner, or None if never written."""
        return self.store.get(owner_id)

    def get_config(self, owner_id: str) -> GhostConfig:
        """Configuration with defaults applied."""
        return self.store.get(owner_id) or GhostConfig()

    def is_enabled(self, owner_id: str) -> bool:
        return self.get_config(owner_id).enabled

    def update_config(self, owner_id: str, update: Dict[str, Any]) -> GhostConfig:
        errors = validate_ghost_config_update(update)
        if errors:
            raise ValidationError("Invalid ghost config update", details={"errors": errors})

        config = GhostConfig.model_validate({**self.get_config(owner_id).model_dump(), **update})
        self.store.save(owner_id, config)
        logger.info(
            "Ghost config updated",
            extra={"owner_id": owner_id, "fields": sorted(update)},
        )
        return config

    def set_user_trust(self, owner_id: str, target_user_id: str, trust: float) -> GhostConfig:
        if target_user_id == owner_id:
            raise ValidationError("Cannot set trust for yourself")
        if trust < 0 or trust > 1:
            raise ValidationError("Trust level must be between 0 and 1", details={"trust": trust})

        config = self.get_config(owner_id)
        config.per_user_trust[target_user_id] = trust
        self.store.save(owner_id, config)
        logger.info("Per-user trust set", extra={"owner_id": owner_id, "target_user_id": target_user_id})
        return config

    def remove_user_trust(self, owner_id: str, target_user_id: str) -> GhostConfig:
        config = self.get_config(owner_id)
        config.per_user_trust.pop(target_user_id, None)
        self.store.save(owner_id, config)
        return config

    def block_user(self, owner_id: str, target_user_id: str) -> GhostConfig:
        if target_user_id == owner_id:
            raise ValidationError("Cannot block yourself")

        config = self.get_config(owner_id)
        if target_user_id not in config.blocked_users:
            config.blocked_users.append(target_user_id)
            self.store.save(owner_id, config)
            logger.info("User blocked", extra={"owner_id": owner_id, "target_user_id": target_user_id})
        return config

    def unblock_user(self, owner_id: str, target_user_id: str) -> GhostConfig:
        config = self.get_config(owner_id)
        if target_user_id in config.blocked_users:
            config.blocked_users = [u for u in config.blocked_users if u != target_user_id]
            self.store.save(owner_id, config)
            logger.info("User unblocked", extra={"owner_id": owner_id, "target_user_id": target_user_id})
        return config
