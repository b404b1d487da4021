"""
Pytest configuration and shared fixtures.

Test settings are put in the environment here, before any usermessages
module is imported, so the engine binds to the test database.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_user_messages.db")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient

# Clear settings cache before any app imports to ensure test env vars are used
from usermessages.config import get_settings
get_settings.cache_clear()

from usermessages.main import app
from usermessages.storage import SessionLocal, Base, engine


@pytest.fixture(scope="function")
def client():
    """Create test client with fresh database for each test."""
    Base.metadata.create_all(bind=engine)

    with TestClient(app) as test_client:
        yield test_client

    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db():
    """Database session on a fresh schema, for store and query tests."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def post_message(client):
    """Helper to create a message via the API and return the JSON record."""
    def _post(content="Hello", sender=1234567890, recipient=1234567891, **extra):
        body = {"senderNumber": sender, "recipientNumber": recipient, "messageContent": content}
        body.update(extra)
        response = client.post("/messages", json=body)
        assert response.status_code == 201, response.text
        return response.json()

    return _post
