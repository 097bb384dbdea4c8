"""
GhostScope memory collections.

A MemoryStore hands out named collections (one per owner, one shared public
spaces collection, one per group). Every mutation goes through a
read-modify-write that is atomic per document: a lock for the in-memory
store, a version compare-and-set for the SQL store.
"""
import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Tuple, Union

from sqlalchemy import and_, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.errors import ConflictError, NotFoundError
from app.models import MemoryDocument
from app.ghostscope.composite_ids import add_ids, remove_ids
from app.ghostscope.core_types import (
    DeletedFilter,
    Memory,
    ModerationStatus,
    PublishedMemory,
    SearchFilters,
)

logger = logging.getLogger(__name__)

AnyMemory = Union[Memory, PublishedMemory]
Mutation = Callable[[AnyMemory], AnyMemory]

MAX_CAS_RETRIES = 5
COMMENT_TYPE = "comment"


def document_to_memory(document: Dict[str, Any]) -> AnyMemory:
    """Published copies carry source_memory_id; everything else is a plain Memory."""
    if "source_memory_id" in document:
        return PublishedMemory.model_validate(document)
    return Memory.model_validate(document)


def matches_filters(memory: AnyMemory, filters: SearchFilters) -> bool:
    """Scalar filter predicate shared by every collection implementation."""
    if filters.deleted == DeletedFilter.EXCLUDE and memory.is_deleted:
        return False
    if filters.deleted == DeletedFilter.ONLY and not memory.is_deleted:
        return False
    if filters.doc_type is not None and memory.doc_type != filters.doc_type:
        return False
    if filters.content_types:
        if memory.type not in filters.content_types:
            return False
    elif not filters.include_comments and memory.type == COMMENT_TYPE:
        return False
    if filters.tags and not all(tag in memory.tags for tag in filters.tags):
        return False
    if filters.min_weight is not None and memory.weight < filters.min_weight:
        return False
    if filters.max_weight is not None and memory.weight > filters.max_weight:
        return False
    if filters.min_trust is not None and memory.trust < filters.min_trust:
        return False
    if filters.max_trust is not None and memory.trust > filters.max_trust:
        return False
    if filters.date_from is not None and memory.created_at < filters.date_from:
        return False
    if filters.date_to is not None and memory.created_at > filters.date_to:
        return False
    if filters.space_ids is not None and not set(filters.space_ids) & set(memory.space_ids):
        return False
    if filters.moderation_status is not None:
        status = getattr(memory, "moderation_status", None)
        if filters.moderation_status == ModerationStatus.APPROVED:
            # Copies published without moderation never got a status
            if status not in (None, ModerationStatus.APPROVED):
                return False
        elif status != filters.moderation_status:
            return False
    return True


def score_memory(memory: AnyMemory, query: Optional[str]) -> float:
    """
    Deterministic term-overlap score.

    Fraction of query terms found in title, summary, content or tags.
    An empty query scores every memory 1.0.
    """
    terms = [term for term in (query or "").lower().split() if term]
    if not terms:
        return 1.0
    haystack = " ".join([
        memory.title or "",
        memory.summary or "",
        memory.content,
        " ".join(memory.tags),
    ]).lower()
    return sum(1 for term in terms if term in haystack) / len(terms)


def rank(memories: Iterable[AnyMemory], query: Optional[str]) -> List[Tuple[AnyMemory, float]]:
    scored = [(memory, score_memory(memory, query)) for memory in memories]
    if query and query.strip():
        scored = [item for item in scored if item[1] > 0]
    scored.sort(key=lambda item: (item[1], item[0].created_at), reverse=True)
    return scored


def _tracking_mutation(
    add_spaces: Iterable[str],
    add_groups: Iterable[str],
    remove_spaces: Iterable[str],
    remove_groups: Iterable[str],
) -> Mutation:
    def mutate(memory: AnyMemory) -> AnyMemory:
        memory.space_ids = remove_ids(add_ids(memory.space_ids, add_spaces), remove_spaces)
        memory.group_ids = remove_ids(add_ids(memory.group_ids, add_groups), remove_groups)
        return memory
    return mutate


def _soft_delete_mutation(deleted_by: str, reason: Optional[str]) -> Mutation:
    def mutate(memory: AnyMemory) -> AnyMemory:
        if memory.is_deleted:
            raise ConflictError(f"Memory already deleted: {memory.id}")
        memory.deleted_at = datetime.utcnow()
        memory.deleted_by = deleted_by
        memory.deletion_reason = reason
        return memory
    return mutate


class MemoryCollection(Protocol):
    name: str

    def get(self, memory_id: str) -> Optional[AnyMemory]: ...

    def insert(self, memory: AnyMemory) -> AnyMemory: ...

    def upsert(self, memory: AnyMemory) -> AnyMemory: ...

    def mutate(self, memory_id: str, mutation: Mutation) -> AnyMemory:
        """Apply mutation atomically; bumps version and updated_at."""
        ...

    def update(self, memory_id: str, changes: Dict[str, Any]) -> AnyMemory: ...

    def update_tracking(
        self,
        memory_id: str,
        add_spaces: Iterable[str] = (),
        add_groups: Iterable[str] = (),
        remove_spaces: Iterable[str] = (),
        remove_groups: Iterable[str] = (),
    ) -> AnyMemory: ...

    def soft_delete(self, memory_id: str, deleted_by: str, reason: Optional[str] = None) -> AnyMemory: ...

    def search(self, query: Optional[str], filters: SearchFilters) -> List[Tuple[AnyMemory, float]]: ...


class MemoryStore(Protocol):
    def collection(self, name: str) -> MemoryCollection: ...


class _CollectionHelpers:
    """Operations expressed in terms of mutate()."""

    def update(self, memory_id: str, changes: Dict[str, Any]) -> AnyMemory:
        def apply(memory: AnyMemory) -> AnyMemory:
            return memory.model_copy(update=changes)
        return self.mutate(memory_id, apply)

    def update_tracking(self, memory_id, add_spaces=(), add_groups=(), remove_spaces=(), remove_groups=()):
        return self.mutate(
            memory_id,
            _tracking_mutation(list(add_spaces), list(add_groups), list(remove_spaces), list(remove_groups)),
        )

    def soft_delete(self, memory_id, deleted_by, reason=None):
        return self.mutate(memory_id, _soft_delete_mutation(deleted_by, reason))


# ============================================================================
# In-memory implementation
# ============================================================================

class InMemoryCollection(_CollectionHelpers):
    def __init__(self, name: str, lock: threading.RLock, documents: Dict[str, Dict[str, Any]]):
        self.name = name
        self._lock = lock
        self._documents = documents

    def get(self, memory_id):
        with self._lock:
            document = self._documents.get(memory_id)
            return document_to_memory(document) if document else None

    def insert(self, memory):
        with self._lock:
            if memory.id in self._documents:
                raise ConflictError(f"Memory {memory.id} already exists in {self.name}")
            self._documents[memory.id] = memory.model_dump(mode="json")
            return document_to_memory(self._documents[memory.id])

    def upsert(self, memory):
        with self._lock:
            self._documents[memory.id] = memory.model_dump(mode="json")
            return document_to_memory(self._documents[memory.id])

    def mutate(self, memory_id, mutation):
        with self._lock:
            document = self._documents.get(memory_id)
            if document is None:
                raise NotFoundError(message=f"Memory {memory_id} not found in {self.name}")
            current = document_to_memory(document)
            updated = mutation(current)
            updated.version = current.version + 1
            updated.updated_at = datetime.utcnow()
            self._documents[memory_id] = updated.model_dump(mode="json")
            return document_to_memory(self._documents[memory_id])

    def search(self, query, filters):
        with self._lock:
            memories = [document_to_memory(doc) for doc in self._documents.values()]
        return rank((m for m in memories if matches_filters(m, filters)), query)


class InMemoryMemoryStore:
    def __init__(self):
        self._lock = threading.RLock()
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def collection(self, name: str) -> InMemoryCollection:
        with self._lock:
            documents = self._collections.setdefault(name, {})
        return InMemoryCollection(name, self._lock, documents)


# ============================================================================
# SQL implementation
# ============================================================================

def _indexed_columns(memory: AnyMemory) -> Dict[str, Any]:
    moderation_status = getattr(memory, "moderation_status", None)
    return {
        "user_id": memory.user_id,
        "doc_type": memory.doc_type.value,
        "content_type": memory.type,
        "trust": memory.trust,
        "weight": memory.weight,
        "moderation_status": moderation_status.value if moderation_status else None,
        "deleted_at": memory.deleted_at,
        "created_at": memory.created_at,
        "version": memory.version,
        "document": memory.model_dump(mode="json"),
    }


class SqlMemoryCollection(_CollectionHelpers):
    def __init__(self, db: Session, name: str):
        self.db = db
        self.name = name

    def _record(self, memory_id: str) -> Optional[MemoryDocument]:
        return self.db.get(MemoryDocument, (self.name, memory_id))

    def get(self, memory_id):
        record = self._record(memory_id)
        return document_to_memory(record.document) if record else None

    def insert(self, memory):
        self.db.add(MemoryDocument(collection=self.name, id=memory.id, **_indexed_columns(memory)))
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise ConflictError(f"Memory {memory.id} already exists in {self.name}") from e
        return memory

    def upsert(self, memory):
        record = self._record(memory.id)
        if record is None:
            try:
                return self.insert(memory)
            except ConflictError:
                record = self._record(memory.id)
        for key, value in _indexed_columns(memory).items():
            setattr(record, key, value)
        self.db.commit()
        return memory

    def mutate(self, memory_id, mutation):
        for attempt in range(MAX_CAS_RETRIES):
            record = self._record(memory_id)
            if record is None:
                raise NotFoundError(message=f"Memory {memory_id} not found in {self.name}")
            expected_version = record.version
            current = document_to_memory(record.document)
            updated = mutation(current)
            updated.version = expected_version + 1
            updated.updated_at = datetime.utcnow()

            result = self.db.execute(
                update(MemoryDocument)
                .where(and_(
                    MemoryDocument.collection == self.name,
                    MemoryDocument.id == memory_id,
                    MemoryDocument.version == expected_version,
                ))
                .values(**_indexed_columns(updated))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                self.db.commit()
                return updated

            # Someone else won; reload and reapply
            self.db.rollback()
            logger.info(
                f"Version conflict on {self.name}/{memory_id}, retrying",
                extra={"attempt": attempt + 1},
            )

        raise ConflictError(f"Concurrent updates to memory {memory_id}; try again")

    def search(self, query, filters):
        q = self.db.query(MemoryDocument).filter(MemoryDocument.collection == self.name)

        # Narrow on indexed columns; matches_filters applies the rest.
        if filters.deleted == DeletedFilter.EXCLUDE:
            q = q.filter(MemoryDocument.deleted_at.is_(None))
        elif filters.deleted == DeletedFilter.ONLY:
            q = q.filter(MemoryDocument.deleted_at.isnot(None))
        if filters.doc_type is not None:
            q = q.filter(MemoryDocument.doc_type == filters.doc_type.value)
        if filters.content_types:
            q = q.filter(MemoryDocument.content_type.in_(filters.content_types))
        if filters.min_trust is not None:
            q = q.filter(MemoryDocument.trust >= filters.min_trust)
        if filters.max_trust is not None:
            q = q.filter(MemoryDocument.trust <= filters.max_trust)
        if filters.min_weight is not None:
            q = q.filter(MemoryDocument.weight >= filters.min_weight)
        if filters.max_weight is not None:
            q = q.filter(MemoryDocument.weight <= filters.max_weight)
        if filters.date_from is not None:
            q = q.filter(MemoryDocument.created_at >= filters.date_from)
        if filters.date_to is not None:
            q = q.filter(MemoryDocument.created_at <= filters.date_to)
        if filters.moderation_status == ModerationStatus.APPROVED:
            q = q.filter(or_(
                MemoryDocument.moderation_status.is_(None),
                MemoryDocument.moderation_status == ModerationStatus.APPROVED.value,
            ))
        elif filters.moderation_status is not None:
            q = q.filter(MemoryDocument.moderation_status == filters.moderation_status.value)

        memories = [document_to_memory(record.document) for record in q.all()]
        return rank((m for m in memories if matches_filters(m, filters)), query)


class SqlMemoryStore:
    def __init__(self, db: Session):
        self.db = db

    def collection(self, name: str) -> SqlMemoryCollection:
        return SqlMemoryCollection(self.db, name)
