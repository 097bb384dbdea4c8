"""
Moderation and write-mode settings for spaces and groups.

A space or group without a stored config behaves as
require_moderation=False, default_write_mode=owner_only.
"""
import threading
from typing import Dict, Optional, Protocol, Tuple

from sqlalchemy.orm import Session

from app.models import SpaceConfigRecord
from app.ghostscope.core_types import SpaceConfig

SPACE = "space"
GROUP = "group"


class SpaceConfigStore(Protocol):
    def get(self, kind: str, target_id: str) -> Optional[SpaceConfig]: ...

    def save(self, kind: str, target_id: str, config: SpaceConfig) -> None: ...


class InMemorySpaceConfigStore:
    def __init__(self):
        self._lock = threading.Lock()
        self._configs: Dict[Tuple[str, str], SpaceConfig] = {}

    def get(self, kind, target_id):
        with self._lock:
            config = self._configs.get((kind, target_id))
            return config.model_copy() if config else None

    def save(self, kind, target_id, config):
        with self._lock:
            self._configs[(kind, target_id)] = config.model_copy()


class SqlSpaceConfigStore:
    def __init__(self, db: Session):
        self.db = db

    def get(self, kind, target_id):
        record = self.db.get(SpaceConfigRecord, (kind, target_id))
        if record is None:
            return None
        return SpaceConfig(
            require_moderation=record.require_moderation,
            default_write_mode=record.default_write_mode,
        )

    def save(self, kind, target_id, config):
        record = self.db.get(SpaceConfigRecord, (kind, target_id))
        if record is None:
            record = SpaceConfigRecord(kind=kind, target_id=target_id)
            self.db.add(record)
        record.require_moderation = config.require_moderation
        record.default_write_mode = config.default_write_mode.value
        self.db.commit()


def get_space_config(store: SpaceConfigStore, space_id: str) -> SpaceConfig:
    return store.get(SPACE, space_id) or SpaceConfig()


def get_group_config(store: SpaceConfigStore, group_id: str) -> SpaceConfig:
    return store.get(GROUP, group_id) or SpaceConfig()


def set_space_config(store: SpaceConfigStore, space_id: str, config: SpaceConfig) -> SpaceConfig:
    store.save(SPACE, space_id, config)
    return config


def set_group_config(store: SpaceConfigStore, group_id: str, config: SpaceConfig) -> SpaceConfig:
    store.save(GROUP, group_id, config)
    return config
