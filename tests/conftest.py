"""
Pytest configuration and shared fixtures for MDB_MODEL tests.

This module provides:
- Mock motor collection / database fixtures
- Sample model declarations
- Testcontainers fixtures (real MongoDB for integration tests)
"""

import os
from typing import Any, Dict, Iterable, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorCollection

from mdb_model.observability import get_metrics_collector


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "integration: tests that need a real MongoDB (Docker + testcontainers)"
    )


# ============================================================================
# MOCK MONGODB FIXTURES
# ============================================================================


class FakeCursor:
    """Stand-in for a motor cursor: supports `to_list` and `async for`."""

    def __init__(self, documents: Iterable[Dict[str, Any]] = (), error: Optional[Exception] = None):
        self.documents: List[Dict[str, Any]] = [dict(d) for d in documents]
        self.error = error

    async def to_list(self, length: Optional[int] = None) -> List[Dict[str, Any]]:
        if self.error is not None:
            raise self.error
        return list(self.documents)

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for document in self.documents:
            yield document
        if self.error is not None:
            raise self.error


@pytest.fixture
def make_cursor():
    """Factory for fake cursors: make_cursor(documents, error=None)."""
    return FakeCursor


@pytest.fixture
def id_index() -> Dict[str, Any]:
    return {"v": 2, "key": {"_id": 1}, "name": "_id_"}


@pytest.fixture
def mock_collection(id_index) -> MagicMock:
    """Create a mock motor collection with async CRUD and index methods."""
    collection = MagicMock(spec=AsyncIOMotorCollection)
    collection.name = "user"
    collection.find = MagicMock(return_value=FakeCursor())
    collection.find_one = AsyncMock(return_value=None)
    collection.insert_one = AsyncMock(return_value=MagicMock(inserted_id=ObjectId()))
    collection.insert_many = AsyncMock(
        return_value=MagicMock(inserted_ids=[ObjectId(), ObjectId()])
    )
    collection.find_one_and_update = AsyncMock(return_value=None)
    collection.find_one_and_delete = AsyncMock(return_value=None)
    collection.update_many = AsyncMock(
        return_value=MagicMock(matched_count=2, modified_count=2, upserted_id=None)
    )
    collection.delete_many = AsyncMock(return_value=MagicMock(deleted_count=2))
    collection.count_documents = AsyncMock(return_value=0)
    collection.distinct = AsyncMock(return_value=[])
    collection.aggregate = MagicMock(return_value=FakeCursor())
    collection.list_indexes = MagicMock(return_value=FakeCursor([id_index]))
    collection.create_index = AsyncMock(side_effect=lambda keys, **kwargs: kwargs["name"])
    collection.drop_index = AsyncMock()
    return collection


@pytest.fixture
def mock_db(mock_collection) -> MagicMock:
    """Create a mock motor database whose every collection is `mock_collection`."""
    db = MagicMock()
    db.name = "test_db"
    db.__getitem__.return_value = mock_collection
    return db


# ============================================================================
# ENVIRONMENT / GLOBAL STATE
# ============================================================================


@pytest.fixture(autouse=True)
def reset_environment(monkeypatch):
    """Reset environment variables before each test."""
    for var in [
        "MONGO_URI",
        "DB_NAME",
        "MONGO_SERVER_SELECTION_TIMEOUT_MS",
        "MONGO_MAX_POOL_SIZE",
        "MONGO_MIN_POOL_SIZE",
        "MDB_MODEL_SYNC_INDEXES",
    ]:
        monkeypatch.delenv(var, raising=False)
    yield


@pytest.fixture(autouse=True)
def reset_metrics():
    """Start every test with an empty global metrics collector."""
    get_metrics_collector().reset()
    yield
    get_metrics_collector().reset()


# ============================================================================
# TESTCONTAINERS FIXTURES (Real MongoDB for Integration Tests)
# ============================================================================


@pytest.fixture(scope="session")
def mongodb_container():
    """
    Start MongoDB Atlas Local container for integration tests.

    Session-scoped: container starts once and is reused for all integration
    tests. The Atlas Local image runs as a single-node replica set, so
    transactions are available.
    """
    try:
        from testcontainers.mongodb import MongoDbContainer
    except ImportError:
        pytest.skip("testcontainers not installed. Install with: pip install -e '.[test]'")

    try:
        container = MongoDbContainer(image="mongodb/mongodb-atlas-local:latest")
        container.start()
    except Exception as e:  # Docker missing or not running
        pytest.skip(f"Could not start MongoDB container: {e}")

    yield container
    container.stop()


@pytest.fixture
def mongodb_connection_string(mongodb_container) -> str:
    """
    Connection string for the test container.

    MongoDB Atlas Local containers must be reached through localhost and the
    exposed port with a direct connection.
    """
    exposed_port = mongodb_container.get_exposed_port(27017)
    return f"mongodb://localhost:{exposed_port}/?directConnection=true"


@pytest_asyncio.fixture
async def real_mongo_client(mongodb_connection_string):
    """Real motor client connected to the test container."""
    from motor.motor_asyncio import AsyncIOMotorClient

    client = AsyncIOMotorClient(mongodb_connection_string)
    try:
        await client.admin.command("ping")
    except (RuntimeError, OSError) as e:
        pytest.fail(f"Failed to connect to MongoDB container: {e}")

    yield client
    client.close()


@pytest_asyncio.fixture
async def real_mongo_db(real_mongo_client):
    """
    Fresh database per test, dropped afterwards.
    """
    db_name = f"test_db_{os.getpid()}_{ObjectId()}"
    db = real_mongo_client[db_name]

    yield db

    await real_mongo_client.drop_database(db_name)
