"""
Lazy provisioning of a repository's database and collection.

The first operation that needs the collection queries the store for it and
creates it when missing. The resulting handles are memoized in AsyncLazy
values, so concurrent first use in one process runs a single
query-then-create sequence per resource.
"""

from collections.abc import Awaitable, Callable
from typing import Optional, TypeVar

from ..exceptions import ResourceExistsError
from ..observability import get_logger
from ..store.base import CollectionHandle, DatabaseHandle, StoreClient
from .lazy import AsyncLazy, LazyState

logger = get_logger(__name__)

H = TypeVar("H")


async def _query_or_create(
    kind: str,
    name: str,
    query: Callable[[], Awaitable[Optional[H]]],
    create: Callable[[], Awaitable[H]],
) -> H:
    existing = await query()
    if existing is not None:
        logger.debug(f"Using existing {kind} '{name}'")
        return existing

    try:
        created = await create()
    except ResourceExistsError:
        # Another process created it between our query and create.
        logger.info(f"{kind.capitalize()} '{name}' was created concurrently; re-querying")
        existing = await query()
        if existing is None:
            raise
        return existing

    logger.info(f"Provisioned {kind} '{name}'")
    return created


class ProvisioningCache:
    """
    Memoized database and collection handles for one repository.

    Example:
        cache = ProvisioningCache(client, "people_db", "Person")
        collection = await cache.get_or_create_collection()
    """

    def __init__(self, client: StoreClient, database_name: str, collection_name: str):
        self._client = client
        self.database_name = database_name
        self.collection_name = collection_name
        self._database: AsyncLazy[DatabaseHandle] = AsyncLazy(
            self._provision_database, name=f"database:{database_name}"
        )
        self._collection: AsyncLazy[CollectionHandle] = AsyncLazy(
            self._provision_collection, name=f"collection:{database_name}/{collection_name}"
        )

    @property
    def database_state(self) -> LazyState:
        return self._database.state

    @property
    def collection_state(self) -> LazyState:
        return self._collection.state

    async def get_or_create_database(self) -> DatabaseHandle:
        return await self._database.get()

    async def get_or_create_collection(self) -> CollectionHandle:
        return await self._collection.get()

    def invalidate_collection(self) -> None:
        """Forget the collection handle; the next access provisions it again."""
        self._collection.invalidate()

    async def _provision_database(self) -> DatabaseHandle:
        return await _query_or_create(
            "database",
            self.database_name,
            lambda: self._client.query_databases(self.database_name),
            lambda: self._client.create_database(self.database_name),
        )

    async def _provision_collection(self) -> CollectionHandle:
        database = await self.get_or_create_database()
        return await _query_or_create(
            "collection",
            f"{database.name}/{self.collection_name}",
            lambda: self._client.query_collections(database, self.collection_name),
            lambda: self._client.create_collection(database, self.collection_name),
        )
