import os

# Settings are read at import time; configure before importing the app.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AUTH_TEST_MODE", "true")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("LOG_FORMAT", "text")

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from app.database import Base, get_db
from app.main import app
from app.ghostscope.access_control import StaticCredentialsProvider
from app.ghostscope.confirmation import ConfirmationTokenService, InMemoryConfirmationStore
from app.ghostscope.core_types import Memory
from app.ghostscope.memory_store import InMemoryMemoryStore
from app.ghostscope.publication import PublicationWorkflow
from app.ghostscope.space_config import InMemorySpaceConfigStore
from app.ghostscope.composite_ids import user_collection_name


@pytest.fixture(scope="session")
def test_db_engine():
    """Create test database engine and tables."""
    engine = create_engine(
        os.environ.get("DATABASE_URL_TEST", "sqlite://"),
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def test_db(test_db_engine):
    """Create a test database session factory for each test function."""
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_db_engine)

    # Clean all tables before each test
    with test_db_engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(text(f"DELETE FROM {table.name};"))

    def override_get_db():
        try:
            db = TestingSessionLocal()
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestingSessionLocal
    app.dependency_overrides.clear()


@pytest.fixture
def db_session(test_db):
    """A session bound to the test database."""
    db = test_db()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def client(test_db):
    """Create a test client."""
    return TestClient(app)


@pytest.fixture
def user_headers():
    """Authorization headers for a user (test mode: the token is the user id)."""
    def _headers(user_id: str) -> dict:
        return {"Authorization": f"Bearer {user_id}"}
    return _headers


# ============================================================================
# In-memory fixtures for service-level tests
# ============================================================================

@pytest.fixture
def memory_store():
    return InMemoryMemoryStore()


@pytest.fixture
def credentials():
    return StaticCredentialsProvider()


@pytest.fixture
def space_configs():
    return InMemorySpaceConfigStore()


@pytest.fixture
def token_service():
    return ConfirmationTokenService(InMemoryConfirmationStore(), ttl_seconds=300)


@pytest.fixture
def make_memory(memory_store):
    """Insert a memory into its owner's collection."""
    counter = {"n": 0}

    def _make(user_id: str = "alice", **fields) -> Memory:
        counter["n"] += 1
        fields.setdefault("id", f"mem_test{counter['n']:04d}")
        fields.setdefault("content", "Walked along the river at dawn")
        memory = Memory(user_id=user_id, **fields)
        memory_store.collection(user_collection_name(user_id)).insert(memory)
        return memory
    return _make


@pytest.fixture
def workflow_for(memory_store, token_service, space_configs, credentials):
    """Build a PublicationWorkflow for a caller over the shared in-memory stores."""
    def _workflow(user_id: str, supported_spaces=("the_void", "the_library")) -> PublicationWorkflow:
        return PublicationWorkflow(
            user_id=user_id,
            memory_store=memory_store,
            token_service=token_service,
            space_configs=space_configs,
            supported_spaces=list(supported_spaces),
            credentials=credentials,
        )
    return _workflow
