"""
Shared fixtures: an in-memory SQLite database per test, an app wired to it,
seeded users and bearer headers for both roles.
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from supportchat.auth import create_admin_token, create_user_token
from supportchat.main import create_app
from supportchat.storage.db import Base, make_engine, make_session_factory
from supportchat.storage.models import User

ADMIN_ID = 900


@pytest.fixture
def engine():
    # one shared connection so every session (and thread) sees the same in-memory db
    eng = make_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def file_session_factory(tmp_path):
    """Sessions over a file database, each on its own connection, for tests that race two writers."""
    eng = make_engine(f"sqlite:///{tmp_path / 'race.db'}")
    Base.metadata.create_all(eng)
    yield make_session_factory(eng)
    eng.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def upload_dir(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture
def app(session_factory, upload_dir):
    return create_app(session_factory, run_cleanup=False, upload_dir=upload_dir)


@pytest.fixture
def client(app):
    """Test client; the context manager keeps one event loop for HTTP and websockets."""
    with TestClient(app) as test_client:
        yield test_client


def _make_user(db, **kw) -> User:
    u = User(**kw)
    db.add(u)
    db.commit()
    db.refresh(u)
    return u


@pytest.fixture
def alice(db) -> User:
    return _make_user(db, full_name="Alice Nguyen", username="alice", email="alice@example.com",
                      phone_number="0901000001")


@pytest.fixture
def bob(db) -> User:
    return _make_user(db, full_name="Bob Tran", username="bob", email="bob@example.com",
                      phone_number="0901000002")


@pytest.fixture
def alice_token(alice) -> str:
    return create_user_token(alice.id)


@pytest.fixture
def admin_token() -> str:
    return create_admin_token(ADMIN_ID)


@pytest.fixture
def auth_headers_alice(alice_token) -> dict:
    return {"Authorization": f"Bearer {alice_token}"}


@pytest.fixture
def auth_headers_bob(bob) -> dict:
    return {"Authorization": f"Bearer {create_user_token(bob.id)}"}


@pytest.fixture
def auth_headers_admin(admin_token) -> dict:
    return {"Authorization": f"Bearer {admin_token}"}
