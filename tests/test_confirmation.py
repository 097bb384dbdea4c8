"""Test confirmation tokens: single use, expiry and caller scoping."""
from datetime import datetime, timedelta

import pytest

from app.config import settings
from app.errors import InvalidOrExpiredTokenError, TokenNotFoundError, ValidationError
from app.ghostscope.confirmation import (
    ConfirmationTokenService,
    InMemoryConfirmationStore,
    SqlConfirmationStore,
)
from app.ghostscope.core_types import ConfirmationAction, ConfirmationStatus
from app.utils import hash_confirmation_token


@pytest.fixture(params=["memory", "sql"])
def store(request):
    if request.param == "memory":
        return InMemoryConfirmationStore()
    return SqlConfirmationStore(request.getfixturevalue("db_session"))


@pytest.fixture
def service(store):
    return ConfirmationTokenService(store, ttl_seconds=300)


@pytest.fixture
def calls():
    return []


@pytest.fixture
def executors(calls):
    def publish(request):
        calls.append(request)
        return {"published": request.payload["memory_id"]}
    return {ConfirmationAction.PUBLISH_MEMORY: publish}


def _issue(service, user_id="alice"):
    return service.issue(ConfirmationAction.PUBLISH_MEMORY, {"memory_id": "mem_1"}, user_id)


def _expire(store, request):
    """Move a pending request's expiry into the past."""
    past = datetime.utcnow() - timedelta(seconds=1)
    if isinstance(store, InMemoryConfirmationStore):
        store._requests[request.token_hash].expires_at = past
    else:
        from app.models import ConfirmationRequestRecord
        record = store.db.query(ConfirmationRequestRecord).filter_by(token_hash=request.token_hash).one()
        record.expires_at = past
        store.db.commit()


def test_issue_does_not_execute(service, store, calls):
    request = _issue(service)
    assert request.token
    assert request.status == ConfirmationStatus.PENDING
    assert request.expires_at - request.created_at == timedelta(seconds=300)
    assert calls == []


def test_only_hash_is_stored(service, store):
    request = _issue(service)
    stored = store.get(hash_confirmation_token(request.token))
    assert stored is not None
    assert stored.token is None
    assert stored.payload == {"memory_id": "mem_1"}


def test_confirm_executes_once(service, executors, calls):
    request = _issue(service)
    result = service.confirm(request.token, "alice", executors)
    assert result == {"published": "mem_1"}
    assert len(calls) == 1
    assert calls[0].status == ConfirmationStatus.CONFIRMED

    with pytest.raises(InvalidOrExpiredTokenError):
        service.confirm(request.token, "alice", executors)
    assert len(calls) == 1


def test_deny_after_confirm_fails(service, executors):
    request = _issue(service)
    service.confirm(request.token, "alice", executors)
    with pytest.raises(TokenNotFoundError):
        service.deny(request.token, "alice")


def test_confirm_after_deny_fails(service, executors, calls):
    request = _issue(service)
    service.deny(request.token, "alice")
    with pytest.raises(InvalidOrExpiredTokenError):
        service.confirm(request.token, "alice", executors)
    assert calls == []


def test_deny_twice_fails(service):
    request = _issue(service)
    service.deny(request.token, "alice")
    with pytest.raises(TokenNotFoundError):
        service.deny(request.token, "alice")


def test_unknown_token(service, executors):
    with pytest.raises(InvalidOrExpiredTokenError):
        service.confirm("not-a-token", "alice", executors)
    with pytest.raises(TokenNotFoundError):
        service.deny("not-a-token", "alice")


def test_token_scoped_to_issuer(service, executors, calls):
    request = _issue(service, user_id="alice")
    with pytest.raises(InvalidOrExpiredTokenError):
        service.confirm(request.token, "mallory", executors)
    with pytest.raises(TokenNotFoundError):
        service.deny(request.token, "mallory")
    assert service.confirm(request.token, "alice", executors) == {"published": "mem_1"}


def test_expired_token_rejected(service, store, executors, calls):
    request = _issue(service)
    _expire(store, request)

    assert service.validate(request.token, "alice") is None
    with pytest.raises(InvalidOrExpiredTokenError):
        service.confirm(request.token, "alice", executors)
    assert calls == []
    assert store.get(request.token_hash).status == ConfirmationStatus.EXPIRED


def test_expired_token_cannot_be_denied(service, store):
    request = _issue(service)
    _expire(store, request)
    with pytest.raises(TokenNotFoundError):
        service.deny(request.token, "alice")


def test_missing_executor_leaves_token_pending(service, store):
    request = _issue(service)
    with pytest.raises(ValidationError):
        service.confirm(request.token, "alice", {})
    assert store.get(request.token_hash).status == ConfirmationStatus.PENDING


def test_zero_ttl_is_not_replaced_by_default(store, executors, calls):
    service = ConfirmationTokenService(store, ttl_seconds=0)
    request = _issue(service)
    assert request.expires_at == request.created_at
    with pytest.raises(InvalidOrExpiredTokenError):
        service.confirm(request.token, "alice", executors)
    assert calls == []


def test_default_ttl_from_settings(store):
    request = _issue(ConfirmationTokenService(store))
    assert request.expires_at - request.created_at == timedelta(seconds=settings.confirmation_token_ttl_seconds)


def test_purge_drops_consumed_and_expired(service, store, executors):
    confirmed = _issue(service)
    denied = _issue(service)
    expired = _issue(service)
    pending = _issue(service)
    service.confirm(confirmed.token, "alice", executors)
    service.deny(denied.token, "alice")
    _expire(store, expired)

    assert service.purge_stale() == 3
    assert store.get(confirmed.token_hash) is None
    assert store.get(denied.token_hash) is None
    assert store.get(expired.token_hash) is None
    assert store.get(pending.token_hash).status == ConfirmationStatus.PENDING


def test_issue_purges_only_the_issuers_stale_requests(service, store):
    mine = _issue(service, user_id="alice")
    theirs = _issue(service, user_id="bob")
    service.deny(mine.token, "alice")
    service.deny(theirs.token, "bob")

    _issue(service, user_id="alice")

    assert store.get(mine.token_hash) is None
    assert store.get(theirs.token_hash).status == ConfirmationStatus.DENIED
