"""
Unit tests for MotorStoreClient.

Tests identity mapping, pipeline rewriting and driver error translation
against a mocked Motor client.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from pymongo.errors import (
    AutoReconnect,
    CollectionInvalid,
    DuplicateKeyError,
    NetworkTimeout,
    NotPrimaryError,
    OperationFailure,
)

from mdb_repository.exceptions import ResourceExistsError, StoreFatalError, StoreTransientError
from mdb_repository.store import CollectionHandle, DatabaseHandle, MotorStoreClient
from mdb_repository.store.motor_client import (
    from_native,
    is_transient,
    native_filter,
    native_pipeline,
    to_native,
)

DATABASE = DatabaseHandle("people_db")
COLLECTION = CollectionHandle(DATABASE, "Person")


@pytest.fixture
def client(mock_motor_client) -> MotorStoreClient:
    return MotorStoreClient(mock_motor_client)


@pytest.fixture
def motor_collection(mock_motor_client) -> MagicMock:
    return mock_motor_client["people_db"]["Person"]


class TestIdentityMapping:
    """Test id <-> _id conversion."""

    def test_to_native_moves_identity(self):
        assert to_native({"id": "1", "name": "a"}) == {"_id": "1", "name": "a"}

    def test_to_native_assigns_missing_identity(self):
        native = to_native({"name": "a"})
        assert isinstance(native["_id"], str) and len(native["_id"]) == 24

    def test_from_native(self):
        assert from_native({"_id": "1", "name": "a"}) == {"id": "1", "name": "a"}
        assert from_native(None) is None

    def test_native_filter(self):
        assert native_filter({"id": {"$eq": "1"}}) == {"_id": {"$eq": "1"}}
        assert native_filter(
            {"$or": [{"id": {"$in": ["1"]}}, {"name": {"$eq": "x"}}]}
        ) == {"$or": [{"_id": {"$in": ["1"]}}, {"name": {"$eq": "x"}}]}
        assert native_filter(None) == {}

    def test_native_filter_leaves_nested_ids(self):
        """Test ids of nested elements are not rewritten."""
        spec = {"phones": {"$elemMatch": {"id": {"$eq": "p1"}}}}
        assert native_filter(spec) == spec
        assert native_filter({"owner.id": "x"}) == {"owner.id": "x"}

    def test_native_pipeline(self):
        pipeline = [
            {"$match": {"id": {"$ne": "1"}}},
            {"$sort": {"id": 1}},
            {"$project": {"id": 1, "name": 1}},
        ]
        assert native_pipeline(pipeline) == [
            {"$match": {"_id": {"$ne": "1"}}},
            {"$sort": {"_id": 1}},
            {"$project": {"_id": 1, "name": 1}},
        ]

    def test_native_pipeline_after_replace_root(self):
        """Test stages addressing nested items are left alone."""
        pipeline = [
            {"$unwind": "$phones"},
            {"$replaceRoot": {"newRoot": "$phones"}},
            {"$project": {"id": 1}},
        ]
        assert native_pipeline(pipeline) == [
            {"$unwind": "$phones"},
            {"$replaceRoot": {"newRoot": "$phones"}},
            {"$project": {"id": 1, "_id": 0}},
        ]

    def test_projection_hides_native_id(self):
        assert native_pipeline([{"$project": {"name": 1}}]) == [
            {"$project": {"name": 1, "_id": 0}}
        ]


class TestErrorClassification:
    """Test which driver errors are transient."""

    @pytest.mark.parametrize(
        "error",
        [
            AutoReconnect("reconnecting"),
            NotPrimaryError("stepped down"),
            NetworkTimeout("timed out"),
            OperationFailure("shutting down", code=91),
            OperationFailure("throttled", code=16500),
        ],
    )
    def test_transient(self, error):
        assert is_transient(error)

    @pytest.mark.parametrize(
        "error",
        [
            OperationFailure("bad value", code=2),
            DuplicateKeyError("dup", code=11000),
        ],
    )
    def test_fatal(self, error):
        assert not is_transient(error)

    def test_error_label(self):
        error = OperationFailure("retry me", code=1, details={"errorLabels": ["RetryableWriteError"]})
        assert is_transient(error)


class TestResources:
    """Test database and collection calls."""

    @pytest.mark.asyncio
    async def test_query_databases(self, client, mock_motor_client):
        mock_motor_client.list_database_names = AsyncMock(return_value=["people_db"])
        assert await client.query_databases("people_db") == DATABASE
        mock_motor_client.list_database_names.assert_awaited_once_with(
            filter={"name": "people_db"}
        )

    @pytest.mark.asyncio
    async def test_query_missing_database(self, client):
        assert await client.query_databases("people_db") is None

    @pytest.mark.asyncio
    async def test_create_database_returns_handle(self, client):
        assert await client.create_database("people_db") == DATABASE

    @pytest.mark.asyncio
    async def test_query_collections(self, client, mock_motor_client):
        db = mock_motor_client["people_db"]
        db.list_collection_names = AsyncMock(return_value=["Person"])
        assert await client.query_collections(DATABASE, "Person") == COLLECTION

    @pytest.mark.asyncio
    async def test_create_collection(self, client, mock_motor_client):
        assert await client.create_collection(DATABASE, "Person") == COLLECTION
        mock_motor_client["people_db"].create_collection.assert_awaited_once_with("Person")

    @pytest.mark.asyncio
    async def test_create_existing_collection(self, client, mock_motor_client):
        db = mock_motor_client["people_db"]
        db.create_collection = AsyncMock(side_effect=CollectionInvalid("collection exists"))
        with pytest.raises(ResourceExistsError):
            await client.create_collection(DATABASE, "Person")

    @pytest.mark.asyncio
    async def test_delete_missing_collection(self, client, mock_motor_client):
        assert await client.delete_collection(COLLECTION) is False
        mock_motor_client["people_db"].drop_collection.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_delete_collection(self, client, mock_motor_client):
        db = mock_motor_client["people_db"]
        db.list_collection_names = AsyncMock(return_value=["Person"])
        assert await client.delete_collection(COLLECTION) is True
        db.drop_collection.assert_awaited_once_with("Person")


class TestDocuments:
    """Test document calls."""

    @pytest.mark.asyncio
    async def test_create_document(self, client, motor_collection):
        stored = await client.create_document(COLLECTION, {"id": "1", "name": "a"})

        assert stored == {"id": "1", "name": "a"}
        motor_collection.insert_one.assert_awaited_once_with({"_id": "1", "name": "a"})

    @pytest.mark.asyncio
    async def test_create_duplicate(self, client, motor_collection):
        motor_collection.insert_one = AsyncMock(side_effect=DuplicateKeyError("dup", code=11000))
        with pytest.raises(StoreFatalError) as exc_info:
            await client.create_document(COLLECTION, {"id": "1"})
        assert exc_info.value.code == 11000
        assert isinstance(exc_info.value.__cause__, DuplicateKeyError)

    @pytest.mark.asyncio
    async def test_upsert_document(self, client, motor_collection):
        stored = await client.upsert_document(COLLECTION, {"id": "1", "name": "a"})

        assert stored == {"id": "1", "name": "a"}
        motor_collection.replace_one.assert_awaited_once_with(
            {"_id": "1"}, {"_id": "1", "name": "a"}, upsert=True
        )

    @pytest.mark.asyncio
    async def test_upsert_without_identity(self, client):
        stored = await client.upsert_document(COLLECTION, {"name": "a"})
        assert len(stored["id"]) == 24

    @pytest.mark.asyncio
    async def test_replace_missing_document(self, client, motor_collection):
        motor_collection.replace_one = AsyncMock(return_value=MagicMock(matched_count=0))
        with pytest.raises(StoreFatalError):
            await client.replace_document(COLLECTION, {"id": "1"})

    @pytest.mark.asyncio
    async def test_replace_requires_identity(self, client, motor_collection):
        with pytest.raises(StoreFatalError):
            await client.replace_document(COLLECTION, {"name": "a"})
        motor_collection.replace_one.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_read_document(self, client, motor_collection):
        motor_collection.find_one = AsyncMock(return_value={"_id": "1", "name": "a"})
        assert await client.read_document(COLLECTION, "1") == {"id": "1", "name": "a"}
        motor_collection.find_one.assert_awaited_once_with({"_id": "1"})

    @pytest.mark.asyncio
    async def test_read_missing_document(self, client):
        assert await client.read_document(COLLECTION, "1") is None

    @pytest.mark.asyncio
    async def test_delete_document(self, client, motor_collection):
        assert await client.delete_document(COLLECTION, "1") is True
        motor_collection.delete_one = AsyncMock(return_value=MagicMock(deleted_count=0))
        assert await client.delete_document(COLLECTION, "1") is False

    @pytest.mark.asyncio
    async def test_transient_error(self, client, motor_collection):
        motor_collection.find_one = AsyncMock(side_effect=AutoReconnect("connection reset"))
        with pytest.raises(StoreTransientError) as exc_info:
            await client.read_document(COLLECTION, "1")
        assert exc_info.value.operation == "read_document"

    @pytest.mark.asyncio
    async def test_fatal_operation_failure(self, client, motor_collection):
        motor_collection.delete_one = AsyncMock(side_effect=OperationFailure("unauthorized", code=13))
        with pytest.raises(StoreFatalError) as exc_info:
            await client.delete_document(COLLECTION, "1")
        assert exc_info.value.code == 13


class TestQueries:
    """Test aggregation and counting."""

    @pytest.mark.asyncio
    async def test_query_documents(self, client, motor_collection, async_cursor):
        cursor = async_cursor([{"_id": "1", "name": "a"}, {"_id": "2", "name": "b"}])
        motor_collection.aggregate = MagicMock(return_value=cursor)

        results = [d async for d in client.query_documents(COLLECTION, [{"$match": {"id": "1"}}])]

        assert results == [{"id": "1", "name": "a"}, {"id": "2", "name": "b"}]
        motor_collection.aggregate.assert_called_once_with([{"$match": {"_id": "1"}}])
        assert cursor.closed

    @pytest.mark.asyncio
    async def test_query_documents_closes_cursor_on_early_exit(
        self, client, motor_collection, async_cursor
    ):
        cursor = async_cursor([{"_id": "1"}, {"_id": "2"}])
        motor_collection.aggregate = MagicMock(return_value=cursor)

        stream = client.query_documents(COLLECTION, [])
        assert await stream.__anext__() == {"id": "1"}
        await stream.aclose()

        assert cursor.closed

    @pytest.mark.asyncio
    async def test_query_documents_error(self, client, motor_collection):
        motor_collection.aggregate = MagicMock(side_effect=OperationFailure("bad stage", code=40324))
        with pytest.raises(StoreFatalError):
            [d async for d in client.query_documents(COLLECTION, [])]

    @pytest.mark.asyncio
    async def test_count_documents(self, client, motor_collection):
        motor_collection.count_documents = AsyncMock(return_value=3)
        assert await client.count_documents(COLLECTION, {"id": {"$ne": "1"}}) == 3
        motor_collection.count_documents.assert_awaited_once_with({"_id": {"$ne": "1"}})

    @pytest.mark.asyncio
    async def test_close(self, client, mock_motor_client):
        await client.close()
        mock_motor_client.close.assert_called_once()
