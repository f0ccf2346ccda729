"""
Test configuration and fixtures for lakesync tests.
"""
import os

# Must be set before lakesync.core.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ["SQL_DEBUG"] = "false"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from lakesync.main import app
from lakesync.core.jwt_auth import create_access_token
from lakesync.db.database import get_db
from lakesync.db.models import Base, User
from lakesync.services import groups
from lakesync.services.background import BackgroundQueue, get_background_queue, register_default_handlers
from lakesync.services.entity_store import EntityStore
from lakesync.services.vault import VaultService
from lakesync.storage.local_storage import LocalStorage, get_storage


@pytest.fixture(scope="session")
def test_db_url():
    """Create a test database URL using SQLite in memory."""
    return "sqlite:///:memory:"


@pytest.fixture(scope="function")
def test_db_engine(test_db_url):
    """Create a test database engine for each test function."""
    engine = create_engine(
        test_db_url,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False  # Set to True for SQL debugging
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def test_db_session(test_db_engine):
    """Create a test database session for each test function."""
    TestingSessionLocal = sessionmaker(
        autocommit=False, autoflush=False, bind=test_db_engine
    )
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def storage(tmp_path):
    """Local storage collaborator rooted in a temporary directory."""
    return LocalStorage(str(tmp_path / "storage"))


@pytest.fixture
def background():
    """Background queue without a worker thread; tests drain it with run_pending()."""
    return register_default_handlers(BackgroundQueue())


@pytest.fixture
def store(test_db_session, storage, background):
    return EntityStore(test_db_session, storage, background)


@pytest.fixture
def vault(store):
    return VaultService(store)


@pytest.fixture
def make_user(test_db_session):
    """Factory creating committed users."""
    def _make(username):
        user = User(username=username)
        test_db_session.add(user)
        test_db_session.commit()
        test_db_session.refresh(user)
        return user
    return _make


@pytest.fixture
def alice(make_user):
    return make_user("alice")


@pytest.fixture
def bob(make_user):
    return make_user("bob")


@pytest.fixture
def mallory(make_user):
    """A user outside every group."""
    return make_user("mallory")


@pytest.fixture
def team_folder(test_db_session, alice, bob):
    """Group folder 'Team' shared by alice and bob through one group."""
    group = groups.create_group(test_db_session, "team")
    groups.add_member(test_db_session, group.group_id, alice.user_id)
    groups.add_member(test_db_session, group.group_id, bob.user_id)
    group_folder = groups.create_group_folder(test_db_session, "Team")
    groups.grant_access(test_db_session, group_folder.group_folder_id, group.group_id)
    return group_folder


@pytest.fixture
def envelope():
    return {"cipher": "c" * 48, "iv": "i" * 16, "salt": "s" * 32}


@pytest.fixture
def client(test_db_session, storage, background):
    """Create a test client with isolated database session and storage."""
    def override_get_db():
        try:
            yield test_db_session
        finally:
            pass

    original_overrides = app.dependency_overrides.copy()
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_background_queue] = lambda: background

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides = original_overrides


@pytest.fixture
def auth_headers():
    """Bearer headers for a user."""
    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token(user.user_id)}"}
    return _headers
