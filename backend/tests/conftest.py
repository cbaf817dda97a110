"""
Research Gate Backend — Test Configuration (conftest.py)
==========================================================

What:  Shared pytest fixtures for the entire test suite.
Why:   Provides reusable test infrastructure (fake MongoDB driver, app, client).
How:   pytest auto-discovers conftest.py and makes fixtures available to all tests.
Who:   Used by all test files in the tests/ directory.

Fixture Hierarchy:
    ├── settings:              Settings pointed at a temp upload dir, no MONGO_URI
    ├── collections:           name → fake collection (AsyncMock driver methods)
    ├── mongo_client:          fake AsyncMongoClient (ping ok, default db)
    ├── persistence:           PersistenceHandle using the fake client, not connected
    ├── connected_persistence: same handle after its connect task settled
    ├── app / connected_app:   create_app() around the handles above
    └── test_client / connected_client: HTTPX AsyncClient over ASGITransport
"""

import os
import tempfile
from collections import defaultdict
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from bson import ObjectId
from httpx import ASGITransport, AsyncClient


# ══════════════════════════════════════════════════════════════════════════
# Environment Setup
# ══════════════════════════════════════════════════════════════════════════

# Must run BEFORE any research_gate import: settings load at import time
os.environ["MONGO_URI"] = ""
os.environ["ENVIRONMENT"] = "development"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="research_gate_test_")
os.environ["LOG_LEVEL"] = "WARNING"

from research_gate.config import Settings  # noqa: E402
from research_gate.database import PersistenceHandle  # noqa: E402


# ══════════════════════════════════════════════════════════════════════════
# Fake driver objects
# ══════════════════════════════════════════════════════════════════════════


def make_cursor(documents=None):
    """Chainable cursor: find().sort().skip().limit().to_list()."""
    cursor = MagicMock()
    cursor.sort.return_value = cursor
    cursor.skip.return_value = cursor
    cursor.limit.return_value = cursor
    cursor.to_list = AsyncMock(return_value=list(documents or []))
    return cursor


def make_collection():
    collection = MagicMock()
    collection.find_one = AsyncMock(return_value=None)
    collection.insert_one = AsyncMock(return_value=MagicMock(inserted_id=ObjectId()))
    collection.update_one = AsyncMock(return_value=MagicMock(matched_count=1, modified_count=1))
    collection.update_many = AsyncMock(return_value=MagicMock(matched_count=0, modified_count=0))
    collection.delete_one = AsyncMock(return_value=MagicMock(deleted_count=1))
    collection.find_one_and_update = AsyncMock(return_value=None)
    collection.count_documents = AsyncMock(return_value=0)
    collection.find.return_value = make_cursor()
    return collection


# ══════════════════════════════════════════════════════════════════════════
# Function-Scoped Fixtures (created fresh for each test)
# ══════════════════════════════════════════════════════════════════════════


@pytest.fixture
def upload_dir(tmp_path):
    path = tmp_path / "uploads"
    path.mkdir()
    return str(path)


@pytest.fixture
def settings(upload_dir):
    """Development settings: error detail exposed, no database URI."""
    return Settings(_env_file=None, upload_dir=upload_dir, environment="development", mongo_uri="")


@pytest.fixture
def production_settings(upload_dir):
    return Settings(_env_file=None, upload_dir=upload_dir, environment="production", mongo_uri="")


@pytest.fixture
def collections():
    """
    Provides fake collections keyed by name.

    Usage:
        def test_x(collections):
            collections["users"].find_one.return_value = {...}
    """
    return defaultdict(make_collection)


@pytest.fixture
def mongo_client(collections):
    """A fake AsyncMongoClient whose ping succeeds and whose default db is `researchdb`."""
    database = MagicMock()
    database.name = "researchdb"
    database.__getitem__.side_effect = lambda name: collections[name]

    client = MagicMock()
    client.admin.command = AsyncMock(return_value={"ok": 1})
    client.get_default_database.return_value = database
    client.close = AsyncMock()
    return client


@pytest.fixture
def client_factory(mongo_client):
    return MagicMock(return_value=mongo_client)


@pytest.fixture
def persistence(client_factory):
    return PersistenceHandle(client_factory=client_factory)


@pytest_asyncio.fixture
async def connected_persistence(persistence):
    await persistence.connect("mongodb://localhost:27017/researchdb")
    assert persistence.is_connected
    yield persistence
    await persistence.close()


@pytest.fixture
def verification_sender():
    sender = MagicMock()
    sender.send = AsyncMock()
    return sender


@pytest.fixture
def app(settings, persistence, verification_sender):
    from research_gate.main import create_app
    return create_app(settings=settings, persistence=persistence, verification_sender=verification_sender)


@pytest.fixture
def connected_app(settings, connected_persistence, verification_sender):
    from research_gate.main import create_app
    return create_app(
        settings=settings,
        persistence=connected_persistence,
        verification_sender=verification_sender,
    )


async def _client_for(application):
    transport = ASGITransport(app=application)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def test_client(app):
    """
    HTTPX AsyncClient talking to an app whose database is not connected.

    The lifespan is not run; tests drive the PersistenceHandle directly.
    """
    async for client in _client_for(app):
        yield client


@pytest_asyncio.fixture
async def connected_client(connected_app):
    """HTTPX AsyncClient talking to an app backed by the fake MongoDB."""
    async for client in _client_for(connected_app):
        yield client
