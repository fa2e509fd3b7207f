"""Shared fixtures: a fresh SQLite file store per test, seeded users, an API client."""

import os
import tempfile

# Set environment before importing application code
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="civiceye-uploads-")
os.environ.pop("SUPABASE_URL", None)
os.environ.pop("SUPABASE_SERVICE_ROLE", None)

import pytest
from fastapi.testclient import TestClient

from civiceye.core.config import Settings
from civiceye.core.security import make_access_token
from civiceye.db.base import Base
from civiceye.db.session import build_store
from civiceye.main import create_app
from civiceye.models import User, UserRole
from civiceye.services.issue_store import IssueStore
from civiceye.services.storage import MediaStorage

BANGALORE = (12.9716, 77.5946)


@pytest.fixture
def store(tmp_path):
    s = build_store(f"sqlite:///{tmp_path / 'civiceye.db'}", timeout=5.0)
    Base.metadata.create_all(bind=s.engine)
    yield s
    s.dispose()


@pytest.fixture
def db(store):
    session = store.session()
    yield session
    session.close()


@pytest.fixture
def users(store):
    """alice and bob are citizens, sam is staff, ada is an admin."""
    seed = {
        "alice": User(email="alice@example.com", name="Alice", role=UserRole.citizen),
        "bob": User(email="bob@example.com", name="Bob", avatar="bob.png", role=UserRole.citizen),
        "sam": User(email="sam@example.com", name="Sam", role=UserRole.staff),
        "ada": User(email="ada@example.com", name="Ada", role=UserRole.admin),
    }
    session = store.session()
    session.add_all(seed.values())
    session.commit()
    session.close()
    return seed


@pytest.fixture
def media(tmp_path):
    return MediaStorage(Settings(UPLOAD_DIR=str(tmp_path / "uploads"), SUPABASE_URL=None,
                                 SUPABASE_SERVICE_ROLE=None))


@pytest.fixture
def issues(db, store, media):
    return IssueStore(db, store.locks, media)


@pytest.fixture
def make_issue(issues):
    def _make(reporter, **overrides):
        fields = {
            "title": "Pothole on 5th Main",
            "description": "Deep pothole near the bus stop",
            "category": "INFRASTRUCTURE",
            "latitude": BANGALORE[0],
            "longitude": BANGALORE[1],
        }
        fields.update(overrides)
        return issues.create(reporter, fields)
    return _make


@pytest.fixture
def client(store, media):
    app = create_app(store=store, media=media)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth(users):
    def _headers(name: str) -> dict:
        user = users[name]
        return {"Authorization": f"Bearer {make_access_token(user.email, user.role.value)}"}
    return _headers
