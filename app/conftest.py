"""
Shared fixtures: in-memory SQLite database, API client and bearer tokens.
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("APP_SECRET_STRING", "test-secret-key-with-enough-length-for-hs256")

import pytest
from fastapi.testclient import TestClient

from app.database.database import Base, SessionLocal, sync_engine
from app.main import app
from app.modules.auth.utils import create_access_token


@pytest.fixture
def db():
    """Fresh schema per test; the session is closed before tables are dropped."""
    Base.metadata.create_all(bind=sync_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=sync_engine)


@pytest.fixture
def client(db):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_headers():
    def _make(store_id=1, role="owner", user_id="user-1"):
        token = create_access_token({"sub": user_id, "store_id": store_id, "role": role})
        return {"Authorization": f"Bearer {token}"}
    return _make


@pytest.fixture
def auth_headers(make_headers):
    return make_headers()
