"""
Pytest configuration and shared fixtures.

Each test gets its own in-memory store; tests that need a real file
(WAL, migrations) use ``file_store`` under ``tmp_path``.
"""

import pytest
from fastapi.testclient import TestClient

# Clear settings cache before any app imports to ensure test env vars are used
from openmessages.config import get_settings
get_settings.cache_clear()

from openmessages.main import create_app
from openmessages.storage import Store


@pytest.fixture
def store():
    """Fresh in-memory store."""
    with Store("sqlite://") as s:
        yield s


@pytest.fixture
def file_store(tmp_path):
    """Store backed by a database file."""
    with Store(f"sqlite:///{tmp_path / 'messages.db'}") as s:
        yield s


@pytest.fixture
def client(store):
    """API test client serving from the per-test store."""
    app = create_app(store=store)
    with TestClient(app) as test_client:
        yield test_client
