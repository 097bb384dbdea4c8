"""Test memory collections against both store implementations."""
from datetime import datetime, timedelta

import pytest

from app.errors import ConflictError, NotFoundError
from app.ghostscope.core_types import (
    DeletedFilter,
    Memory,
    ModerationStatus,
    PublishedMemory,
    SearchFilters,
)
from app.ghostscope.memory_store import InMemoryMemoryStore, SqlMemoryStore, score_memory


@pytest.fixture(params=["memory", "sql"])
def collection(request):
    if request.param == "memory":
        store = InMemoryMemoryStore()
    else:
        store = SqlMemoryStore(request.getfixturevalue("db_session"))
    return store.collection("memories_users_alice")


def _memory(memory_id="mem_1", **fields):
    fields.setdefault("content", "Coffee with Sam at the corner cafe")
    return Memory(id=memory_id, user_id="alice", **fields)


def _copy(memory_id, status=None, **fields):
    fields.setdefault("content", "Shared thought")
    return PublishedMemory(
        id=memory_id,
        user_id="alice",
        source_memory_id=memory_id.split(".")[-1],
        author_id="alice",
        moderation_status=status,
        **fields,
    )


class TestWrites:
    def test_insert_and_get(self, collection):
        collection.insert(_memory(tags=["cafe"]))
        memory = collection.get("mem_1")
        assert memory.content == "Coffee with Sam at the corner cafe"
        assert memory.tags == ["cafe"]
        assert memory.version == 1
        assert not memory.is_deleted

    def test_get_missing(self, collection):
        assert collection.get("mem_missing") is None

    def test_insert_duplicate(self, collection):
        collection.insert(_memory())
        with pytest.raises(ConflictError):
            collection.insert(_memory())

    def test_upsert_replaces(self, collection):
        collection.upsert(_memory(content="first"))
        collection.upsert(_memory(content="second"))
        assert collection.get("mem_1").content == "second"

    def test_update_bumps_version(self, collection):
        collection.insert(_memory())
        updated = collection.update("mem_1", {"title": "Coffee"})
        assert updated.version == 2
        assert collection.get("mem_1").title == "Coffee"
        assert collection.get("mem_1").version == 2

    def test_mutate_missing(self, collection):
        with pytest.raises(NotFoundError):
            collection.update("mem_missing", {"title": "x"})

    def test_update_tracking(self, collection):
        collection.insert(_memory())
        collection.update_tracking("mem_1", add_spaces=["the_void"], add_groups=["g1", "g2"])
        collection.update_tracking("mem_1", add_spaces=["the_void"], remove_groups=["g1"])
        memory = collection.get("mem_1")
        assert memory.space_ids == ["the_void"]
        assert memory.group_ids == ["g2"]

    def test_soft_delete(self, collection):
        collection.insert(_memory())
        deleted = collection.soft_delete("mem_1", "alice", "cleanup")
        assert deleted.is_deleted
        assert deleted.deleted_by == "alice"
        assert deleted.deletion_reason == "cleanup"
        assert collection.get("mem_1").is_deleted

    def test_soft_delete_twice(self, collection):
        collection.insert(_memory())
        collection.soft_delete("mem_1", "alice")
        with pytest.raises(ConflictError):
            collection.soft_delete("mem_1", "alice")

    def test_published_copy_round_trips(self, collection):
        collection.insert(_copy("alice.mem_1", ModerationStatus.PENDING, space_ids=["the_void"]))
        copy = collection.get("alice.mem_1")
        assert isinstance(copy, PublishedMemory)
        assert copy.source_memory_id == "mem_1"
        assert copy.moderation_status == ModerationStatus.PENDING


class TestSearch:
    def test_deleted_filter(self, collection):
        collection.insert(_memory("mem_1"))
        collection.insert(_memory("mem_2"))
        collection.soft_delete("mem_2", "alice")

        def ids(deleted):
            return sorted(m.id for m, _ in collection.search(None, SearchFilters(deleted=deleted)))

        assert ids(DeletedFilter.EXCLUDE) == ["mem_1"]
        assert ids(DeletedFilter.ONLY) == ["mem_2"]
        assert ids(DeletedFilter.INCLUDE) == ["mem_1", "mem_2"]

    def test_comments_excluded_by_default(self, collection):
        collection.insert(_memory("mem_1"))
        collection.insert(_memory("mem_2", type="comment"))

        assert [m.id for m, _ in collection.search(None, SearchFilters())] == ["mem_1"]
        assert len(collection.search(None, SearchFilters(include_comments=True))) == 2
        only_comments = collection.search(None, SearchFilters(content_types=["comment"]))
        assert [m.id for m, _ in only_comments] == ["mem_2"]

    def test_tags_must_all_match(self, collection):
        collection.insert(_memory("mem_1", tags=["work", "travel"]))
        collection.insert(_memory("mem_2", tags=["work"]))
        results = collection.search(None, SearchFilters(tags=["work", "travel"]))
        assert [m.id for m, _ in results] == ["mem_1"]

    def test_weight_and_date_range(self, collection):
        now = datetime.utcnow()
        collection.insert(_memory("mem_1", weight=0.9, created_at=now - timedelta(days=10)))
        collection.insert(_memory("mem_2", weight=0.2, created_at=now))

        heavy = collection.search(None, SearchFilters(min_weight=0.5))
        recent = collection.search(None, SearchFilters(date_from=now - timedelta(days=1)))
        assert [m.id for m, _ in heavy] == ["mem_1"]
        assert [m.id for m, _ in recent] == ["mem_2"]

    def test_approved_matches_unmoderated(self, collection):
        collection.insert(_copy("alice.mem_1"))
        collection.insert(_copy("alice.mem_2", ModerationStatus.APPROVED))
        collection.insert(_copy("alice.mem_3", ModerationStatus.PENDING))

        approved = collection.search(None, SearchFilters(moderation_status=ModerationStatus.APPROVED))
        pending = collection.search(None, SearchFilters(moderation_status=ModerationStatus.PENDING))
        assert sorted(m.id for m, _ in approved) == ["alice.mem_1", "alice.mem_2"]
        assert [m.id for m, _ in pending] == ["alice.mem_3"]

    def test_space_filter_matches_any(self, collection):
        collection.insert(_copy("alice.mem_1", space_ids=["the_void", "the_library"]))
        collection.insert(_copy("alice.mem_2", space_ids=["the_library"]))
        results = collection.search(None, SearchFilters(space_ids=["the_void"]))
        assert [m.id for m, _ in results] == ["alice.mem_1"]

    def test_query_drops_non_matches(self, collection):
        collection.insert(_memory("mem_1", content="Hiking the ridge trail"))
        collection.insert(_memory("mem_2", content="Grocery list"))
        results = collection.search("ridge hiking", SearchFilters())
        assert [m.id for m, _ in results] == ["mem_1"]
        assert results[0][1] == 1.0


@pytest.mark.parametrize("backend", ["memory", "sql"])
def test_collections_are_isolated(backend, request):
    if backend == "memory":
        store = InMemoryMemoryStore()
    else:
        store = SqlMemoryStore(request.getfixturevalue("db_session"))
    store.collection("memories_users_alice").insert(_memory())

    assert store.collection("memories_users_bob").get("mem_1") is None
    assert store.collection("memories_users_alice").get("mem_1") is not None
    store.collection("memories_users_bob").insert(_memory())


def test_score_memory():
    memory = Memory(id="mem_1", user_id="alice", content="Sunset at the pier", tags=["beach"], title="Evening")
    assert score_memory(memory, None) == 1.0
    assert score_memory(memory, "sunset beach") == 1.0
    assert score_memory(memory, "sunset mountains") == 0.5
    assert score_memory(memory, "evening") == 1.0
    assert score_memory(memory, "glacier") == 0.0
