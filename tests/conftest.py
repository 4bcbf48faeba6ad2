"""
Pytest Configuration and Shared Fixtures

Every test gets its own in-memory SQLite database; the API client is wired
to it through a ``get_db`` override.
"""

from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import auth
from database import Base, Transaction, get_db

TEST_PASSCODE = "open-sesame"
TEST_SECRET = "test-secret-long-enough-for-an-hs256-signing-key"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_transaction(db):
    """Insert a transaction row directly, bypassing gateway validation."""

    def _make(**overrides) -> Transaction:
        values = {
            "type": "expense",
            "amount": 10.0,
            "description": "",
            "date": datetime(2024, 1, 1),
            "category": "Food",
            "is_recurring": False,
            "frequency": "monthly",
            "status": "active",
        }
        values.update(overrides)
        transaction = Transaction(**values)
        db.add(transaction)
        db.commit()
        db.refresh(transaction)
        return transaction

    return _make


@pytest.fixture
def client(session_factory, monkeypatch):
    from fastapi.testclient import TestClient

    from api_server import app

    monkeypatch.setattr(auth, "PASSCODE", TEST_PASSCODE)
    monkeypatch.setattr(auth, "PASSCODE_HASH", None)
    monkeypatch.setattr(auth, "JWT_SECRET", TEST_SECRET)

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    # Not entered as a context manager: no startup hooks, so no scheduler
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(client):
    response = client.post("/auth/login", json={"passcode": TEST_PASSCODE})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['token']}"}
