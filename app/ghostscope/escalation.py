"""
Escalation tracking for repeated insufficient-trust access attempts.

Attempts are counted per (owner, accessor, memory). Once a triple reaches
MAX_ATTEMPTS_BEFORE_BLOCK the memory is blocked for that accessor until the
owner clears it. Escalation writes are committed immediately and are never
rolled back with the surrounding request.
"""
import logging
import threading
from datetime import datetime
from typing import Dict, Optional, Protocol, Tuple

from sqlalchemy import and_, delete, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models import AccessAttemptRecord, AccessBlockRecord
from app.ghostscope.core_types import (
    AccessAttempt,
    AccessBlock,
    AccessBlocked,
    AccessInsufficientTrust,
)

logger = logging.getLogger(__name__)

TRUST_PENALTY = 0.1
MAX_ATTEMPTS_BEFORE_BLOCK = 3


class EscalationStore(Protocol):
    def get_block(self, owner_id: str, accessor_id: str, memory_id: str) -> Optional[AccessBlock]: ...

    def set_block(self, owner_id: str, accessor_id: str, memory_id: str, block: AccessBlock) -> None: ...

    def remove_block(self, owner_id: str, accessor_id: str, memory_id: str) -> None: ...

    def get_attempts(self, owner_id: str, accessor_id: str, memory_id: str) -> Optional[AccessAttempt]: ...

    def increment_attempts(self, owner_id: str, accessor_id: str, memory_id: str) -> AccessAttempt:
        """Atomically add one attempt and return the new record."""
        ...

    def reset_attempts(self, owner_id: str, accessor_id: str, memory_id: str) -> None: ...


Triple = Tuple[str, str, str]


class InMemoryEscalationStore:
    """Lock-guarded dict store, used in tests and single-process deployments."""

    def __init__(self):
        self._lock = threading.Lock()
        self._attempts: Dict[Triple, AccessAttempt] = {}
        self._blocks: Dict[Triple, AccessBlock] = {}

    def get_block(self, owner_id, accessor_id, memory_id):
        with self._lock:
            block = self._blocks.get((owner_id, accessor_id, memory_id))
            return block.model_copy() if block else None

    def set_block(self, owner_id, accessor_id, memory_id, block):
        with self._lock:
            self._blocks[(owner_id, accessor_id, memory_id)] = block.model_copy()

    def remove_block(self, owner_id, accessor_id, memory_id):
        with self._lock:
            self._blocks.pop((owner_id, accessor_id, memory_id), None)

    def get_attempts(self, owner_id, accessor_id, memory_id):
        with self._lock:
            attempt = self._attempts.get((owner_id, accessor_id, memory_id))
            return attempt.model_copy() if attempt else None

    def increment_attempts(self, owner_id, accessor_id, memory_id):
        key = (owner_id, accessor_id, memory_id)
        with self._lock:
            current = self._attempts.get(key)
            attempt = AccessAttempt(
                count=(current.count if current else 0) + 1,
                last_attempt_at=datetime.utcnow(),
            )
            self._attempts[key] = attempt
            return attempt.model_copy()

    def reset_attempts(self, owner_id, accessor_id, memory_id):
        with self._lock:
            self._attempts.pop((owner_id, accessor_id, memory_id), None)


class SqlEscalationStore:
    """Escalation state in access_attempts / access_blocks."""

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def _match(model, owner_id: str, accessor_id: str, memory_id: str):
        return and_(
            model.owner_id == owner_id,
            model.accessor_id == accessor_id,
            model.memory_id == memory_id,
        )

    def get_block(self, owner_id, accessor_id, memory_id):
        record = self.db.query(AccessBlockRecord).filter(
            self._match(AccessBlockRecord, owner_id, accessor_id, memory_id)
        ).first()
        if record is None:
            return None
        return AccessBlock(
            blocked_at=record.blocked_at,
            reason=record.reason,
            attempt_count=record.attempt_count,
        )

    def set_block(self, owner_id, accessor_id, memory_id, block):
        values = {
            "blocked_at": block.blocked_at,
            "reason": block.reason,
            "attempt_count": block.attempt_count,
        }
        result = self.db.execute(
            update(AccessBlockRecord)
            .where(self._match(AccessBlockRecord, owner_id, accessor_id, memory_id))
            .values(**values)
        )
        if result.rowcount == 0:
            self.db.add(AccessBlockRecord(
                owner_id=owner_id,
                accessor_id=accessor_id,
                memory_id=memory_id,
                **values,
            ))
        try:
            self.db.commit()
        except IntegrityError:
            # Concurrent writer created the block first
            self.db.rollback()

    def remove_block(self, owner_id, accessor_id, memory_id):
        self.db.execute(
            delete(AccessBlockRecord).where(
                self._match(AccessBlockRecord, owner_id, accessor_id, memory_id)
            )
        )
        self.db.commit()

    def get_attempts(self, owner_id, accessor_id, memory_id):
        record = self.db.query(AccessAttemptRecord).filter(
            self._match(AccessAttemptRecord, owner_id, accessor_id, memory_id)
        ).first()
        if record is None:
            return None
        return AccessAttempt(count=record.count, last_attempt_at=record.last_attempt_at)

    def increment_attempts(self, owner_id, accessor_id, memory_id):
        now = datetime.utcnow()
        # Update-then-insert; a lost insert race falls back to the update.
        for _ in range(3):
            row = self.db.execute(
                update(AccessAttemptRecord)
                .where(self._match(AccessAttemptRecord, owner_id, accessor_id, memory_id))
                .values(count=AccessAttemptRecord.count + 1, last_attempt_at=now)
                .returning(AccessAttemptRecord.count)
            ).first()
            if row is not None:
                self.db.commit()
                return AccessAttempt(count=row[0], last_attempt_at=now)

            self.db.add(AccessAttemptRecord(
                owner_id=owner_id,
                accessor_id=accessor_id,
                memory_id=memory_id,
                count=1,
                last_attempt_at=now,
            ))
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                continue
            return AccessAttempt(count=1, last_attempt_at=now)

        raise RuntimeError(f"Could not record access attempt on memory {memory_id}")

    def reset_attempts(self, owner_id, accessor_id, memory_id):
        self.db.execute(
            delete(AccessAttemptRecord).where(
                self._match(AccessAttemptRecord, owner_id, accessor_id, memory_id)
            )
        )
        self.db.commit()


class EscalationTracker:
    """
    Escalation Tracker - insufficient trust turns into a block.

    Features:
    - Attempts counted independently per memory and per accessor
    - Reported trust is penalized per failed attempt (messaging only)
    - Block after MAX_ATTEMPTS_BEFORE_BLOCK attempts
    """

    def __init__(self, store: EscalationStore):
        self.store = store

    def get_block(self, owner_id: str, accessor_id: str, memory_id: str) -> Optional[AccessBlock]:
        return self.store.get_block(owner_id, accessor_id, memory_id)

    def is_blocked(self, owner_id: str, accessor_id: str, memory_id: str) -> bool:
        return self.store.get_block(owner_id, accessor_id, memory_id) is not None

    def handle_insufficient_trust(
        self,
        owner_id: str,
        accessor_id: str,
        memory_id: str,
        required_trust: float,
        raw_trust: float,
    ):
        """
        Record a failed attempt and decide between a warning and a block.

        Returns:
            AccessBlocked once the threshold is reached, else AccessInsufficientTrust
        """
        attempt = self.store.increment_attempts(owner_id, accessor_id, memory_id)

        if attempt.count >= MAX_ATTEMPTS_BEFORE_BLOCK:
            block = AccessBlock(
                blocked_at=datetime.utcnow(),
                reason=f"Access blocked after {attempt.count} unauthorized attempts",
                attempt_count=attempt.count,
            )
            self.store.set_block(owner_id, accessor_id, memory_id, block)
            logger.warning(
                f"Memory {memory_id} blocked for accessor after {attempt.count} attempts",
                extra={
                    "owner_id": owner_id,
                    "accessor_id": accessor_id,
                    "memory_id": memory_id,
                    "attempt_count": attempt.count,
                },
            )
            return AccessBlocked(
                memory_id=memory_id,
                reason=block.reason,
                blocked_at=block.blocked_at,
            )

        logger.info(
            f"Insufficient trust for memory {memory_id} (attempt {attempt.count})",
            extra={"owner_id": owner_id, "accessor_id": accessor_id, "memory_id": memory_id},
        )
        return AccessInsufficientTrust(
            memory_id=memory_id,
            required_trust=required_trust,
            actual_trust=max(0.0, raw_trust - TRUST_PENALTY),
            attempts_remaining=MAX_ATTEMPTS_BEFORE_BLOCK - attempt.count,
        )

    def clear_block(self, owner_id: str, accessor_id: str, memory_id: str) -> None:
        """Owner lifts a block; the attempt counter starts over."""
        self.store.remove_block(owner_id, accessor_id, memory_id)
        self.store.reset_attempts(owner_id, accessor_id, memory_id)
        logger.info(
            f"Block cleared on memory {memory_id}",
            extra={"owner_id": owner_id, "accessor_id": accessor_id, "memory_id": memory_id},
        )
