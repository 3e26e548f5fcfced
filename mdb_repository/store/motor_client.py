"""
MongoDB Store Client

StoreClient implementation on top of Motor (asyncio MongoDB driver).

Documents keep their identity under ``id`` above this layer; here it is
moved to MongoDB's ``_id`` on the way in and back on the way out, including
inside filters, sorts and projections of query pipelines.

Usage:
    from motor.motor_asyncio import AsyncIOMotorClient
    from mdb_repository.store import MotorStoreClient

    store = MotorStoreClient(AsyncIOMotorClient("mongodb://localhost:27017"))
"""

from collections.abc import AsyncIterator, Iterator
from contextlib import contextmanager
from typing import Any

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection
from pymongo.errors import (
    CollectionInvalid,
    ConnectionFailure,
    DuplicateKeyError,
    ExecutionTimeout,
    OperationFailure,
    PyMongoError,
    WTimeoutError,
)

from ..constants import (
    IDENTITY_ATTRIBUTE,
    NATIVE_IDENTITY_KEY,
    TRANSIENT_ERROR_CODES,
    TRANSIENT_ERROR_LABELS,
)
from ..exceptions import ResourceExistsError, StoreFatalError, StoreTransientError
from ..observability import get_logger
from .base import CollectionHandle, DatabaseHandle, StoreClient

logger = get_logger(__name__)


def is_transient(error: PyMongoError) -> bool:
    """Classify a driver error as worth retrying."""
    if isinstance(error, (ConnectionFailure, ExecutionTimeout, WTimeoutError)):
        return True
    if any(error.has_error_label(label) for label in TRANSIENT_ERROR_LABELS):
        return True
    if isinstance(error, OperationFailure) and error.code in TRANSIENT_ERROR_CODES:
        return True
    return False


@contextmanager
def translate_errors(operation: str) -> Iterator[None]:
    """Re-raise driver errors as StoreError subclasses."""
    try:
        yield
    except CollectionInvalid as e:
        raise ResourceExistsError(str(e), operation=operation) from e
    except DuplicateKeyError as e:
        raise StoreFatalError(f"Duplicate identity: {e}", operation=operation, code=e.code) from e
    except PyMongoError as e:
        code = getattr(e, "code", None)
        if is_transient(e):
            logger.warning(f"Transient MongoDB error during {operation}: {e}")
            raise StoreTransientError(str(e), operation=operation, code=code) from e
        logger.error(f"MongoDB error during {operation}: {e}")
        raise StoreFatalError(str(e), operation=operation, code=code) from e


# ============================================================================
# IDENTITY MAPPING
# ============================================================================


def _native_path(path: str) -> str:
    head, _, rest = path.partition(".")
    if head != IDENTITY_ATTRIBUTE:
        return path
    return f"{NATIVE_IDENTITY_KEY}.{rest}" if rest else NATIVE_IDENTITY_KEY


def native_filter(filter: dict[str, Any] | None) -> dict[str, Any]:
    """Rewrite root field paths of a filter from ``id`` to ``_id``."""
    native: dict[str, Any] = {}
    for key, value in (filter or {}).items():
        if key in ("$and", "$or", "$nor"):
            native[key] = [native_filter(sub) for sub in value]
        elif key.startswith("$"):
            native[key] = value
        else:
            # $elemMatch bodies are relative to array elements and stay as-is.
            native[_native_path(key)] = value
    return native


def native_pipeline(pipeline: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """
    Rewrite identity paths of a pipeline for MongoDB.

    Stages before the first ``$replaceRoot`` still address entity documents
    and are rewritten; later stages address nested items and are not.
    """
    native = []
    rooted = True
    for stage in pipeline:
        name, spec = next(iter(stage.items()))
        if name == "$project":
            spec = {(_native_path(k) if rooted else k): v for k, v in spec.items()}
            spec.setdefault(NATIVE_IDENTITY_KEY, 0)
        elif rooted and name == "$match":
            spec = native_filter(spec)
        elif rooted and name == "$sort":
            spec = {_native_path(k): v for k, v in spec.items()}
        elif rooted and name == "$unwind":
            spec = "$" + _native_path(spec.lstrip("$"))
        elif rooted and name == "$replaceRoot":
            spec = {"newRoot": "$" + _native_path(spec["newRoot"].lstrip("$"))}
            rooted = False
        native.append({name: spec})
    return native


def to_native(document: dict[str, Any]) -> dict[str, Any]:
    native = dict(document)
    identity = native.pop(IDENTITY_ATTRIBUTE, None)
    native[NATIVE_IDENTITY_KEY] = str(identity) if identity else str(ObjectId())
    return native


def from_native(document: dict[str, Any] | None) -> dict[str, Any] | None:
    if document is None:
        return None
    converted = dict(document)
    if NATIVE_IDENTITY_KEY in converted:
        converted[IDENTITY_ATTRIBUTE] = str(converted.pop(NATIVE_IDENTITY_KEY))
    return converted


class MotorStoreClient(StoreClient):
    """
    StoreClient backed by a Motor ``AsyncIOMotorClient``.

    MongoDB has no explicit database creation: a database exists once it
    holds a collection, so ``create_database`` only returns the handle and
    the database materializes with its first collection.
    """

    def __init__(self, client: AsyncIOMotorClient):
        """
        Args:
            client: Motor client (connection pool) to issue commands through
        """
        self._client = client

    @property
    def client(self) -> AsyncIOMotorClient:
        return self._client

    def _collection(self, collection: CollectionHandle) -> AsyncIOMotorCollection:
        return self._client[collection.database.name][collection.name]

    # --- Databases -----------------------------------------------------------

    async def query_databases(self, name: str) -> DatabaseHandle | None:
        with translate_errors("query_databases"):
            names = await self._client.list_database_names(filter={"name": name})
        return DatabaseHandle(name) if name in names else None

    async def create_database(self, name: str) -> DatabaseHandle:
        logger.debug(f"Database '{name}' will be created with its first collection")
        return DatabaseHandle(name)

    # --- Collections ---------------------------------------------------------

    async def query_collections(
        self, database: DatabaseHandle, name: str
    ) -> CollectionHandle | None:
        with translate_errors("query_collections"):
            names = await self._client[database.name].list_collection_names(
                filter={"name": name}
            )
        return CollectionHandle(database, name) if name in names else None

    async def create_collection(self, database: DatabaseHandle, name: str) -> CollectionHandle:
        with translate_errors("create_collection"):
            await self._client[database.name].create_collection(name)
        logger.info(f"Created collection '{name}' in database '{database.name}'")
        return CollectionHandle(database, name)

    async def delete_collection(self, collection: CollectionHandle) -> bool:
        if await self.query_collections(collection.database, collection.name) is None:
            return False
        with translate_errors("delete_collection"):
            await self._client[collection.database.name].drop_collection(collection.name)
        logger.info(f"Dropped collection '{collection.link}'")
        return True

    # --- Documents -----------------------------------------------------------

    async def create_document(
        self, collection: CollectionHandle, document: dict[str, Any]
    ) -> dict[str, Any]:
        native = to_native(document)
        with translate_errors("create_document"):
            await self._collection(collection).insert_one(native)
        return from_native(native)

    async def upsert_document(
        self, collection: CollectionHandle, document: dict[str, Any]
    ) -> dict[str, Any]:
        native = to_native(document)
        with translate_errors("upsert_document"):
            await self._collection(collection).replace_one(
                {NATIVE_IDENTITY_KEY: native[NATIVE_IDENTITY_KEY]}, native, upsert=True
            )
        return from_native(native)

    async def replace_document(
        self, collection: CollectionHandle, document: dict[str, Any]
    ) -> dict[str, Any]:
        if not document.get(IDENTITY_ATTRIBUTE):
            raise StoreFatalError(
                "Cannot replace a document without an identity", operation="replace_document"
            )
        native = to_native(document)
        with translate_errors("replace_document"):
            result = await self._collection(collection).replace_one(
                {NATIVE_IDENTITY_KEY: native[NATIVE_IDENTITY_KEY]}, native
            )
        if result.matched_count == 0:
            raise StoreFatalError(
                f"Document '{native[NATIVE_IDENTITY_KEY]}' does not exist",
                operation="replace_document",
            )
        return from_native(native)

    async def read_document(
        self, collection: CollectionHandle, document_id: str
    ) -> dict[str, Any] | None:
        with translate_errors("read_document"):
            found = await self._collection(collection).find_one(
                {NATIVE_IDENTITY_KEY: str(document_id)}
            )
        return from_native(found)

    async def delete_document(self, collection: CollectionHandle, document_id: str) -> bool:
        with translate_errors("delete_document"):
            result = await self._collection(collection).delete_one(
                {NATIVE_IDENTITY_KEY: str(document_id)}
            )
        return result.deleted_count > 0

    # --- Queries -------------------------------------------------------------

    async def query_documents(
        self, collection: CollectionHandle, pipeline: list[dict[str, Any]]
    ) -> AsyncIterator[dict[str, Any]]:
        with translate_errors("query_documents"):
            cursor = self._collection(collection).aggregate(native_pipeline(pipeline))
            try:
                async for document in cursor:
                    yield from_native(document)
            finally:
                await cursor.close()

    async def count_documents(
        self, collection: CollectionHandle, filter: dict[str, Any] | None = None
    ) -> int:
        with translate_errors("count_documents"):
            return await self._collection(collection).count_documents(native_filter(filter))

    async def close(self) -> None:
        self._client.close()
