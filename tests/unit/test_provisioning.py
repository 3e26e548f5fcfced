"""
Unit tests for ProvisioningCache.

Tests query-then-create, memoization, concurrent first use and
reconciliation of creation races.
"""

import asyncio

import pytest

from mdb_repository.exceptions import StoreFatalError
from mdb_repository.provisioning import LazyState, ProvisioningCache
from mdb_repository.store import CollectionHandle, DatabaseHandle


@pytest.mark.unit
class TestProvisioningCache:
    """Test lazy provisioning of database and collection."""

    @pytest.mark.asyncio
    async def test_creates_missing_resources(self, recording_store):
        cache = ProvisioningCache(recording_store, "people_db", "Person")

        collection = await cache.get_or_create_collection()

        assert collection == CollectionHandle(DatabaseHandle("people_db"), "Person")
        assert collection.link == "dbs/people_db/colls/Person"
        assert recording_store.calls == [
            "query_databases",
            "create_database",
            "query_collections",
            "create_collection",
        ]

    @pytest.mark.asyncio
    async def test_uses_existing_resources(self, recording_store):
        database = await recording_store.create_database("people_db")
        await recording_store.create_collection(database, "Person")
        recording_store.calls.clear()

        cache = ProvisioningCache(recording_store, "people_db", "Person")
        await cache.get_or_create_collection()

        assert recording_store.calls == ["query_databases", "query_collections"]

    @pytest.mark.asyncio
    async def test_handles_are_memoized(self, recording_store):
        cache = ProvisioningCache(recording_store, "people_db", "Person")
        first = await cache.get_or_create_collection()
        recording_store.calls.clear()

        second = await cache.get_or_create_collection()

        assert first == second
        assert recording_store.calls == []
        assert cache.collection_state is LazyState.READY
        assert cache.database_state is LazyState.READY

    @pytest.mark.asyncio
    async def test_concurrent_first_use_provisions_once(self, slow_recording_store):
        """Test concurrent callers trigger exactly one query/create sequence."""
        cache = ProvisioningCache(slow_recording_store, "people_db", "Person")

        handles = await asyncio.gather(*(cache.get_or_create_collection() for _ in range(25)))

        assert len(set(handles)) == 1
        assert slow_recording_store.calls_to("query_databases") == 1
        assert slow_recording_store.calls_to("create_database") == 1
        assert slow_recording_store.calls_to("query_collections") == 1
        assert slow_recording_store.calls_to("create_collection") == 1

    @pytest.mark.asyncio
    async def test_invalidate_collection_reprovisions(self, recording_store):
        cache = ProvisioningCache(recording_store, "people_db", "Person")
        handle = await cache.get_or_create_collection()
        await recording_store.delete_collection(handle)
        recording_store.calls.clear()

        cache.invalidate_collection()
        assert cache.collection_state is LazyState.INVALIDATED
        await cache.get_or_create_collection()

        # The database handle is still cached; only the collection is redone.
        assert recording_store.calls == ["query_collections", "create_collection"]

    @pytest.mark.asyncio
    async def test_reconciles_concurrent_creation(self, recording_store):
        """Test a name taken between query and create is re-queried."""
        original_create = recording_store.create_collection

        async def create_racing(database, name):
            # Another process wins the race, then our create fails.
            await original_create(database, name)
            return await original_create(database, name)

        recording_store.create_collection = create_racing
        cache = ProvisioningCache(recording_store, "people_db", "Person")

        collection = await cache.get_or_create_collection()

        assert collection.name == "Person"
        assert recording_store.calls_to("query_collections") == 2

    @pytest.mark.asyncio
    async def test_failure_is_retried_by_next_caller(self, recording_store):
        original_create = recording_store.create_collection
        attempts = []

        async def create_failing_once(database, name):
            attempts.append(name)
            if len(attempts) == 1:
                raise StoreFatalError("denied", operation="create_collection")
            return await original_create(database, name)

        recording_store.create_collection = create_failing_once
        cache = ProvisioningCache(recording_store, "people_db", "Person")

        with pytest.raises(StoreFatalError):
            await cache.get_or_create_collection()
        assert cache.collection_state is LazyState.UNINITIALIZED

        collection = await cache.get_or_create_collection()
        assert collection.name == "Person"
        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_invalidate_while_provisioning_discards_stale_handle(self, recording_store):
        """Test a collection dropped during provisioning is provisioned again."""
        database = await recording_store.create_database("people_db")
        existing = await recording_store.create_collection(database, "Person")
        original_query = recording_store.query_collections
        released = asyncio.Event()

        async def query_held(database, name):
            found = await original_query(database, name)
            await released.wait()
            return found

        recording_store.query_collections = query_held
        cache = ProvisioningCache(recording_store, "people_db", "Person")
        pending = asyncio.create_task(cache.get_or_create_collection())
        await asyncio.sleep(0.01)
        assert cache.collection_state is LazyState.PENDING

        assert await recording_store.delete_collection(existing) is True
        cache.invalidate_collection()
        released.set()

        assert (await pending).name == "Person"
        assert cache.collection_state is LazyState.INVALIDATED

        recording_store.query_collections = original_query
        recording_store.calls.clear()
        await cache.get_or_create_collection()

        assert recording_store.calls == ["query_collections", "create_collection"]
        assert await recording_store.query_collections(database, "Person") is not None
        assert cache.collection_state is LazyState.READY
