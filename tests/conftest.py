"""
Pytest configuration and shared fixtures for MDB_REPOSITORY tests.

This module provides:
- In-memory and call-recording store clients
- Mock Motor client fixtures
- Testcontainers fixtures for a real MongoDB
"""

import os
from typing import Any, Dict, List
from unittest.mock import AsyncMock, MagicMock

import pytest
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase

from mdb_repository.observability import get_metrics_collector
from mdb_repository.store import InMemoryStoreClient

# ============================================================================
# STORE FIXTURES
# ============================================================================


class RecordingStoreClient(InMemoryStoreClient):
    """InMemoryStoreClient that records the name of every call it receives."""

    def __init__(self, latency: float = 0.0):
        super().__init__(latency=latency)
        self.calls: List[str] = []

    def calls_to(self, name: str) -> int:
        return self.calls.count(name)

    async def query_databases(self, name):
        self.calls.append("query_databases")
        return await super().query_databases(name)

    async def create_database(self, name):
        self.calls.append("create_database")
        return await super().create_database(name)

    async def query_collections(self, database, name):
        self.calls.append("query_collections")
        return await super().query_collections(database, name)

    async def create_collection(self, database, name):
        self.calls.append("create_collection")
        return await super().create_collection(database, name)

    async def delete_collection(self, collection):
        self.calls.append("delete_collection")
        return await super().delete_collection(collection)

    async def create_document(self, collection, document):
        self.calls.append("create_document")
        return await super().create_document(collection, document)

    async def upsert_document(self, collection, document):
        self.calls.append("upsert_document")
        return await super().upsert_document(collection, document)

    async def replace_document(self, collection, document):
        self.calls.append("replace_document")
        return await super().replace_document(collection, document)

    async def read_document(self, collection, document_id):
        self.calls.append("read_document")
        return await super().read_document(collection, document_id)

    async def delete_document(self, collection, document_id):
        self.calls.append("delete_document")
        return await super().delete_document(collection, document_id)

    async def count_documents(self, collection, filter=None):
        self.calls.append("count_documents")
        return await super().count_documents(collection, filter)

    async def query_documents(self, collection, pipeline):
        self.calls.append("query_documents")
        async for document in super().query_documents(collection, pipeline):
            yield document


@pytest.fixture
def store() -> InMemoryStoreClient:
    """Provide an empty in-memory store."""
    return InMemoryStoreClient()


@pytest.fixture
def recording_store() -> RecordingStoreClient:
    """Provide an in-memory store that records calls."""
    return RecordingStoreClient()


@pytest.fixture
def slow_recording_store() -> RecordingStoreClient:
    """Recording store whose every call yields to the event loop for a while."""
    return RecordingStoreClient(latency=0.01)


# ============================================================================
# MOCK MOTOR FIXTURES
# ============================================================================


class AsyncCursor:
    """Stand-in for a Motor cursor: iterable with ``async for``."""

    def __init__(self, documents: List[Dict[str, Any]]):
        self._documents = list(documents)
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for document in self._documents:
            yield document

    async def close(self):
        self.closed = True


@pytest.fixture
def async_cursor():
    """Provide the AsyncCursor class for building aggregate results."""
    return AsyncCursor


def make_mock_collection(name: str) -> MagicMock:
    """Create a mock Motor collection with async CRUD methods."""
    collection = MagicMock(spec=AsyncIOMotorCollection)
    collection.name = name
    collection.insert_one = AsyncMock(return_value=MagicMock(inserted_id="test_id"))
    collection.replace_one = AsyncMock(
        return_value=MagicMock(matched_count=1, modified_count=1, upserted_id=None)
    )
    collection.find_one = AsyncMock(return_value=None)
    collection.delete_one = AsyncMock(return_value=MagicMock(deleted_count=1))
    collection.count_documents = AsyncMock(return_value=0)
    collection.aggregate = MagicMock(return_value=AsyncCursor([]))
    return collection


@pytest.fixture
def mock_motor_client() -> MagicMock:
    """
    Create a mock Motor client.

    ``client[db][coll]`` returns the same mock for the same names, so tests
    can configure and inspect collection calls.
    """
    client = MagicMock(spec=AsyncIOMotorClient)
    client.admin = MagicMock()
    client.admin.command = AsyncMock(return_value={"ok": 1})
    client.list_database_names = AsyncMock(return_value=[])
    databases: Dict[str, MagicMock] = {}

    def get_database(self, db_name):
        if db_name not in databases:
            db = MagicMock(spec=AsyncIOMotorDatabase)
            db.name = db_name
            db.list_collection_names = AsyncMock(return_value=[])
            db.create_collection = AsyncMock()
            db.drop_collection = AsyncMock()
            collections: Dict[str, MagicMock] = {}

            def get_collection(self, name):
                if name not in collections:
                    collections[name] = make_mock_collection(name)
                return collections[name]

            db.__getitem__ = get_collection
            databases[db_name] = db
        return databases[db_name]

    client.__getitem__ = get_database
    return client


# ============================================================================
# GLOBAL STATE
# ============================================================================


@pytest.fixture(autouse=True)
def reset_observability():
    """Start every test with empty metrics."""
    get_metrics_collector().reset()
    yield
    get_metrics_collector().reset()


@pytest.fixture(autouse=True)
def reset_environment(monkeypatch):
    """Reset environment variables before each test."""
    for var in list(os.environ):
        if var.startswith("MDB_REPOSITORY_"):
            monkeypatch.delenv(var, raising=False)
    yield


# ============================================================================
# TESTCONTAINERS FIXTURES (Real MongoDB for Integration Tests)
# ============================================================================


@pytest.fixture(scope="session")
def mongodb_container():
    """
    Start a MongoDB container for integration tests.

    Session-scoped: the container starts once and is reused for all
    integration tests.
    """
    try:
        from testcontainers.mongodb import MongoDbContainer
    except ImportError:
        pytest.skip("testcontainers not installed. Install with: pip install -e '.[test]'")

    with MongoDbContainer(image="mongodb/mongodb-atlas-local:latest") as container:
        yield container


@pytest.fixture
def mongodb_connection_string(mongodb_container) -> str:
    """Connection string for the test container, via its exposed port."""
    exposed_port = mongodb_container.get_exposed_port(27017)
    return f"mongodb://localhost:{exposed_port}/?directConnection=true"


@pytest.fixture
async def real_mongo_client(mongodb_connection_string):
    """
    Create a real Motor client connected to the test container.

    Automatically closes the client after the test.
    """
    client = AsyncIOMotorClient(mongodb_connection_string)

    try:
        await client.admin.command("ping")
    except (RuntimeError, OSError) as e:
        pytest.fail(f"Failed to connect to MongoDB container: {e}")

    yield client

    client.close()


@pytest.fixture
async def real_database_name(real_mongo_client):
    """
    Unique database name per test, dropped afterwards.
    """
    db_name = f"test_db_{os.getpid()}_{id(real_mongo_client)}"

    yield db_name

    await real_mongo_client.drop_database(db_name)
