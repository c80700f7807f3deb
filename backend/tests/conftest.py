"""
Pytest configuration and shared fixtures.

Settings are read from the environment when mealmind.core.config is first
imported, so the test environment is set up before any mealmind import.
"""

import os

os.environ["JWT_SECRET"] = "test-secret"
os.environ["JWT_ISSUER"] = "test-issuer"
os.environ["JWT_AUDIENCE"] = "test-aud"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["STORAGE_BACKEND"] = "memory"
# Cheap argon2 parameters keep the suite fast
os.environ["ARGON2_TIME_COST"] = "1"
os.environ["ARGON2_MEMORY_COST_KIB"] = "1024"
os.environ["ARGON2_PARALLELISM"] = "1"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from mealmind.api.dependencies import get_storage
from mealmind.core.database import Base, get_db
from mealmind.main import app
from mealmind.storage.object_storage import InMemoryObjectStorage


@pytest.fixture
def engine():
    # One shared in-memory database per test
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
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def storage():
    return InMemoryObjectStorage("test-bucket")


@pytest.fixture
def client(session_factory, storage):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def register(client, email="a@b.com", password="password1"):
    """Register a user and return the parsed response body"""
    response = client.post("/api/v1/auth/register", json={"email": email, "password": password})
    assert response.status_code == 201, response.text
    return response.json()


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
