"""
GhostScope Confirmation Tokens

Two-phase commit ledger. issue() records a pending action and hands back
an opaque token; confirm() or deny() consume it. Consumption is a single
compare-and-set from pending, so a token is used at most once even when
confirm and deny race. The service knows nothing about what actions do:
callers pass the executors at confirm time.
"""
import logging
import threading
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Mapping, Optional, Protocol

from sqlalchemy import and_, delete, or_, update
from sqlalchemy.orm import Session

from app.config import settings
from app.errors import InvalidOrExpiredTokenError, TokenNotFoundError, ValidationError
from app.models import ConfirmationRequestRecord
from app.utils import generate_confirmation_token, hash_confirmation_token
from app.ghostscope.core_types import (
    ConfirmationAction,
    ConfirmationRequest,
    ConfirmationStatus,
)

logger = logging.getLogger(__name__)

Executor = Callable[[ConfirmationRequest], Any]


class ConfirmationStore(Protocol):
    def create(self, request: ConfirmationRequest) -> None: ...

    def get(self, token_hash: str) -> Optional[ConfirmationRequest]: ...

    def transition(
        self,
        token_hash: str,
        user_id: str,
        to_status: ConfirmationStatus,
        now: datetime,
    ) -> Optional[ConfirmationRequest]:
        """
        Atomically move a pending, unexpired request owned by user_id to
        to_status. Returns None when the request is not in that state.
        """
        ...

    def mark_expired(self, token_hash: str, now: datetime) -> None: ...

    def purge(self, now: datetime, user_id: Optional[str] = None) -> int:
        """Drop consumed and expired requests, optionally for one user only. Returns the count."""
        ...


class InMemoryConfirmationStore:
    def __init__(self):
        self._lock = threading.Lock()
        self._requests: Dict[str, ConfirmationRequest] = {}

    def create(self, request):
        with self._lock:
            self._requests[request.token_hash] = request.model_copy(update={"token": None})

    def get(self, token_hash):
        with self._lock:
            request = self._requests.get(token_hash)
            return request.model_copy() if request else None

    def transition(self, token_hash, user_id, to_status, now):
        with self._lock:
            request = self._requests.get(token_hash)
            if (
                request is None
                or request.user_id != user_id
                or request.status != ConfirmationStatus.PENDING
                or request.expires_at <= now
            ):
                return None
            request.status = to_status
            if to_status == ConfirmationStatus.CONFIRMED:
                request.confirmed_at = now
            return request.model_copy()

    def mark_expired(self, token_hash, now):
        with self._lock:
            request = self._requests.get(token_hash)
            if request and request.status == ConfirmationStatus.PENDING and request.expires_at <= now:
                request.status = ConfirmationStatus.EXPIRED

    def purge(self, now, user_id=None):
        with self._lock:
            stale = [
                token_hash for token_hash, request in self._requests.items()
                if (user_id is None or request.user_id == user_id)
                and (request.status != ConfirmationStatus.PENDING or request.expires_at <= now)
            ]
            for token_hash in stale:
                del self._requests[token_hash]
            return len(stale)


class SqlConfirmationStore:
    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def _to_request(record: ConfirmationRequestRecord) -> ConfirmationRequest:
        return ConfirmationRequest(
            token_hash=record.token_hash,
            user_id=record.user_id,
            action=record.action,
            target_collection=record.target_collection,
            payload=record.payload or {},
            status=record.status,
            created_at=record.created_at,
            expires_at=record.expires_at,
            confirmed_at=record.confirmed_at,
        )

    def create(self, request):
        self.db.add(ConfirmationRequestRecord(
            token_hash=request.token_hash,
            user_id=request.user_id,
            action=request.action.value,
            target_collection=request.target_collection,
            payload=request.payload,
            status=request.status.value,
            created_at=request.created_at,
            expires_at=request.expires_at,
        ))
        self.db.commit()

    def get(self, token_hash):
        record = self.db.query(ConfirmationRequestRecord).filter(
            ConfirmationRequestRecord.token_hash == token_hash
        ).first()
        return self._to_request(record) if record else None

    def transition(self, token_hash, user_id, to_status, now):
        values = {"status": to_status.value}
        if to_status == ConfirmationStatus.CONFIRMED:
            values["confirmed_at"] = now

        result = self.db.execute(
            update(ConfirmationRequestRecord)
            .where(and_(
                ConfirmationRequestRecord.token_hash == token_hash,
                ConfirmationRequestRecord.user_id == user_id,
                ConfirmationRequestRecord.status == ConfirmationStatus.PENDING.value,
                ConfirmationRequestRecord.expires_at > now,
            ))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            return None
        self.db.commit()
        return self.get(token_hash)

    def mark_expired(self, token_hash, now):
        self.db.execute(
            update(ConfirmationRequestRecord)
            .where(and_(
                ConfirmationRequestRecord.token_hash == token_hash,
                ConfirmationRequestRecord.status == ConfirmationStatus.PENDING.value,
                ConfirmationRequestRecord.expires_at <= now,
            ))
            .values(status=ConfirmationStatus.EXPIRED.value)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()

    def purge(self, now, user_id=None):
        stmt = delete(ConfirmationRequestRecord).where(or_(
            ConfirmationRequestRecord.status != ConfirmationStatus.PENDING.value,
            ConfirmationRequestRecord.expires_at <= now,
        ))
        if user_id is not None:
            stmt = stmt.where(ConfirmationRequestRecord.user_id == user_id)
        result = self.db.execute(stmt.execution_options(synchronize_session=False))
        self.db.commit()
        return result.rowcount


class ConfirmationTokenService:
    """
    Confirmation Token Service - validated-but-not-yet-executed actions.

    Features:
    - Opaque single-use tokens, stored only as hashes
    - Expiry (default 5 minutes) independent of confirm/deny
    - Tokens are scoped to the user they were issued to
    - Consumed and expired requests are purged; issuing a token purges the
      issuer's stale requests so the ledger stays bounded per user
    """

    def __init__(self, store: ConfirmationStore, ttl_seconds: Optional[int] = None):
        self.store = store
        if ttl_seconds is None:
            ttl_seconds = settings.confirmation_token_ttl_seconds
        self.ttl = timedelta(seconds=ttl_seconds)

    def issue(
        self,
        action: ConfirmationAction,
        payload: Dict[str, Any],
        issued_by: str,
        target_collection: Optional[str] = None,
    ) -> ConfirmationRequest:
        """
        Record a pending action. Nothing is executed.

        Returns:
            The pending request, with `token` set. The token is not retrievable later.
        """
        now = datetime.utcnow()
        self.store.purge(now, user_id=issued_by)

        token = generate_confirmation_token()
        request = ConfirmationRequest(
            token=token,
            token_hash=hash_confirmation_token(token),
            user_id=issued_by,
            action=action,
            target_collection=target_collection,
            payload=payload,
            status=ConfirmationStatus.PENDING,
            created_at=now,
            expires_at=now + self.ttl,
        )
        self.store.create(request)
        logger.info(
            f"Confirmation token issued for {action.value}",
            extra={"user_id": issued_by, "action": action.value, "expires_at": request.expires_at.isoformat()},
        )
        return request

    def purge_stale(self, user_id: Optional[str] = None) -> int:
        """Delete consumed and expired requests. Returns how many were removed."""
        removed = self.store.purge(datetime.utcnow(), user_id=user_id)
        if removed:
            logger.info(f"Purged {removed} stale confirmation requests", extra={"user_id": user_id})
        return removed

    def validate(self, token: str, user_id: str) -> Optional[ConfirmationRequest]:
        """Pending request for token, or None. Expired requests are marked as such."""
        token_hash = hash_confirmation_token(token)
        request = self.store.get(token_hash)
        if request is None or request.user_id != user_id:
            return None
        if request.status != ConfirmationStatus.PENDING:
            return None
        now = datetime.utcnow()
        if request.expires_at <= now:
            self.store.mark_expired(token_hash, now)
            return None
        return request

    def confirm(self, token: str, user_id: str, executors: Mapping[ConfirmationAction, Executor]):
        """
        Consume the token and run the executor registered for its action.

        Raises:
            InvalidOrExpiredTokenError: token missing, consumed, expired or not the caller's
            ValidationError: no executor for the action (token left pending)
        """
        pending = self.validate(token, user_id)
        if pending is None:
            raise InvalidOrExpiredTokenError()

        executor = executors.get(pending.action)
        if executor is None:
            raise ValidationError(f"Unknown action type: {pending.action.value}")

        request = self.store.transition(
            pending.token_hash, user_id, ConfirmationStatus.CONFIRMED, datetime.utcnow()
        )
        if request is None:
            # Lost the race to another confirm/deny, or expired in between
            raise InvalidOrExpiredTokenError()

        logger.info(
            f"Confirmation token confirmed for {request.action.value}",
            extra={"user_id": user_id, "action": request.action.value},
        )
        return executor(request)

    def deny(self, token: str, user_id: str) -> None:
        """
        Discard a pending action without executing it.

        Raises:
            TokenNotFoundError: token unknown, already consumed or expired
        """
        token_hash = hash_confirmation_token(token)
        now = datetime.utcnow()
        request = self.store.transition(token_hash, user_id, ConfirmationStatus.DENIED, now)
        if request is None:
            self.store.mark_expired(token_hash, now)
            raise TokenNotFoundError()
        logger.info(
            f"Confirmation token denied for {request.action.value}",
            extra={"user_id": user_id, "action": request.action.value},
        )
