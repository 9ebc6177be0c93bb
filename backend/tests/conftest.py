"""Shared test fixtures and configuration for backend tests."""
import pytest
from fastapi.testclient import TestClient

from app.config import AppConfig, StorageSettings
from app.main import create_app

TOKEN_TIMESTAMP = "1700000000000"


def bearer(user_id: str) -> dict:
    """Authorization header for a mock token issued to *user_id*."""
    return {"Authorization": f"Bearer mock_token_{user_id}_{TOKEN_TIMESTAMP}"}


@pytest.fixture
def test_config():
    """Config backed by an in-memory DuckDB."""
    return AppConfig(storage=StorageSettings(db_path=":memory:"))


@pytest.fixture
def test_app(test_config):
    return create_app(test_config)


@pytest.fixture
def api_client(test_app):
    """TestClient with the lifespan running and three users seeded.

    Users:
        alice, bob: regular users
        root: admin (elevated role)
    """
    with TestClient(test_app) as client:
        directory = test_app.state.user_directory
        directory.add_user("alice", "alice", account_id="acct-1")
        directory.add_user("bob", "bob", account_id="acct-2")
        directory.add_user("root", "root", role="admin")
        yield client

