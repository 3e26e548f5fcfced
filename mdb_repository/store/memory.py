"""
In-memory store client.

Dictionary-backed StoreClient with the same observable behaviour as the
MongoDB client, useful for unit tests and local development without a
database server. Documents are deep-copied on the way in and out, so callers
never share state with the store.
"""

import asyncio
import copy
import logging
from collections.abc import AsyncIterator
from datetime import datetime
from typing import Any

from bson import ObjectId

from ..constants import IDENTITY_ATTRIBUTE
from ..exceptions import ResourceExistsError, StoreFatalError
from ..query.matching import matches, resolve_path
from .base import CollectionHandle, DatabaseHandle, StoreClient

logger = logging.getLogger(__name__)

# Error codes mirroring the MongoDB server's, so tests can treat both alike.
DUPLICATE_KEY_CODE = 11000
NAMESPACE_EXISTS_CODE = 48
NOT_FOUND_CODE = 404


class InMemoryStoreClient(StoreClient):
    """
    StoreClient keeping everything in process memory.

    Args:
        latency: Seconds to sleep in every call, to make interleavings of
            concurrent callers observable in tests
    """

    def __init__(self, latency: float = 0.0):
        self._latency = latency
        self._databases: dict[str, dict[str, dict[str, dict[str, Any]]]] = {}

    async def _pause(self) -> None:
        await asyncio.sleep(self._latency)

    def _documents(self, collection: CollectionHandle) -> dict[str, dict[str, Any]] | None:
        database = self._databases.get(collection.database.name)
        if database is None:
            return None
        return database.get(collection.name)

    def _require_documents(
        self, collection: CollectionHandle, operation: str
    ) -> dict[str, dict[str, Any]]:
        documents = self._documents(collection)
        if documents is None:
            raise StoreFatalError(
                f"Collection '{collection.link}' does not exist",
                operation=operation,
                code=NOT_FOUND_CODE,
            )
        return documents

    # --- Databases -----------------------------------------------------------

    async def query_databases(self, name: str) -> DatabaseHandle | None:
        await self._pause()
        return DatabaseHandle(name) if name in self._databases else None

    async def create_database(self, name: str) -> DatabaseHandle:
        await self._pause()
        if name in self._databases:
            raise ResourceExistsError(
                f"Database '{name}' already exists",
                operation="create_database",
                code=NAMESPACE_EXISTS_CODE,
            )
        self._databases[name] = {}
        logger.debug(f"Created in-memory database '{name}'")
        return DatabaseHandle(name)

    # --- Collections ---------------------------------------------------------

    async def query_collections(
        self, database: DatabaseHandle, name: str
    ) -> CollectionHandle | None:
        await self._pause()
        collections = self._databases.get(database.name, {})
        return CollectionHandle(database, name) if name in collections else None

    async def create_collection(self, database: DatabaseHandle, name: str) -> CollectionHandle:
        await self._pause()
        collections = self._databases.get(database.name)
        if collections is None:
            raise StoreFatalError(
                f"Database '{database.name}' does not exist",
                operation="create_collection",
                code=NOT_FOUND_CODE,
            )
        if name in collections:
            raise ResourceExistsError(
                f"Collection '{database.link}/colls/{name}' already exists",
                operation="create_collection",
                code=NAMESPACE_EXISTS_CODE,
            )
        collections[name] = {}
        logger.debug(f"Created in-memory collection '{name}' in '{database.name}'")
        return CollectionHandle(database, name)

    async def delete_collection(self, collection: CollectionHandle) -> bool:
        await self._pause()
        collections = self._databases.get(collection.database.name, {})
        return collections.pop(collection.name, None) is not None

    # --- Documents -----------------------------------------------------------

    async def create_document(
        self, collection: CollectionHandle, document: dict[str, Any]
    ) -> dict[str, Any]:
        await self._pause()
        documents = self._require_documents(collection, "create_document")
        stored = copy.deepcopy(document)
        if not stored.get(IDENTITY_ATTRIBUTE):
            stored[IDENTITY_ATTRIBUTE] = str(ObjectId())
        document_id = str(stored[IDENTITY_ATTRIBUTE])
        if document_id in documents:
            raise StoreFatalError(
                f"Duplicate identity '{document_id}'",
                operation="create_document",
                code=DUPLICATE_KEY_CODE,
            )
        stored[IDENTITY_ATTRIBUTE] = document_id
        documents[document_id] = stored
        return copy.deepcopy(stored)

    async def upsert_document(
        self, collection: CollectionHandle, document: dict[str, Any]
    ) -> dict[str, Any]:
        await self._pause()
        documents = self._require_documents(collection, "upsert_document")
        stored = copy.deepcopy(document)
        if not stored.get(IDENTITY_ATTRIBUTE):
            stored[IDENTITY_ATTRIBUTE] = str(ObjectId())
        stored[IDENTITY_ATTRIBUTE] = str(stored[IDENTITY_ATTRIBUTE])
        documents[stored[IDENTITY_ATTRIBUTE]] = stored
        return copy.deepcopy(stored)

    async def replace_document(
        self, collection: CollectionHandle, document: dict[str, Any]
    ) -> dict[str, Any]:
        await self._pause()
        documents = self._require_documents(collection, "replace_document")
        document_id = str(document.get(IDENTITY_ATTRIBUTE) or "")
        if document_id not in documents:
            raise StoreFatalError(
                f"Document '{document_id}' does not exist",
                operation="replace_document",
                code=NOT_FOUND_CODE,
            )
        stored = copy.deepcopy(document)
        stored[IDENTITY_ATTRIBUTE] = document_id
        documents[document_id] = stored
        return copy.deepcopy(stored)

    async def read_document(
        self, collection: CollectionHandle, document_id: str
    ) -> dict[str, Any] | None:
        await self._pause()
        documents = self._documents(collection) or {}
        found = documents.get(str(document_id))
        return copy.deepcopy(found) if found is not None else None

    async def delete_document(self, collection: CollectionHandle, document_id: str) -> bool:
        await self._pause()
        documents = self._documents(collection)
        if documents is None:
            return False
        return documents.pop(str(document_id), None) is not None

    # --- Queries -------------------------------------------------------------

    async def query_documents(
        self, collection: CollectionHandle, pipeline: list[dict[str, Any]]
    ) -> AsyncIterator[dict[str, Any]]:
        await self._pause()
        documents = [copy.deepcopy(d) for d in (self._documents(collection) or {}).values()]
        for stage in pipeline:
            documents = _run_stage(stage, documents)
        for document in documents:
            yield document

    async def count_documents(
        self, collection: CollectionHandle, filter: dict[str, Any] | None = None
    ) -> int:
        await self._pause()
        documents = (self._documents(collection) or {}).values()
        return sum(1 for d in documents if matches(d, filter))


# ============================================================================
# PIPELINE STAGES
# ============================================================================


def _run_stage(stage: dict[str, Any], documents: list[dict[str, Any]]) -> list[dict[str, Any]]:
    name, spec = next(iter(stage.items()))

    if name == "$match":
        return [d for d in documents if matches(d, spec)]
    if name == "$sort":
        return _sort(documents, spec)
    if name == "$skip":
        return documents[spec:]
    if name == "$limit":
        return documents[:spec]
    if name == "$project":
        return [_project(d, spec) for d in documents]
    if name == "$unwind":
        return _unwind(documents, spec.lstrip("$"))
    if name == "$replaceRoot":
        return [_replace_root(d, spec["newRoot"].lstrip("$")) for d in documents]
    if name == "$count":
        return [{spec: len(documents)}] if documents else []
    raise StoreFatalError(f"Unsupported pipeline stage '{name}'", operation="query_documents")


def _sort_key(value: Any) -> tuple[int, Any]:
    # BSON comparison order: null < numbers < strings < objects < arrays < booleans < dates
    if value is None:
        return (0, 0)
    if isinstance(value, bool):
        return (5, value)
    if isinstance(value, (int, float)):
        return (1, value)
    if isinstance(value, str):
        return (2, value)
    if isinstance(value, dict):
        return (3, str(sorted(value.items())))
    if isinstance(value, list):
        return (4, str(value))
    if isinstance(value, datetime):
        return (6, value)
    return (7, str(value))


def _sort(documents: list[dict[str, Any]], spec: dict[str, int]) -> list[dict[str, Any]]:
    ordered = list(documents)
    for path, direction in reversed(list(spec.items())):
        ordered.sort(
            key=lambda d: _sort_key(next(iter(resolve_path(d, path)), None)),
            reverse=direction < 0,
        )
    return ordered


def _set_path(document: dict[str, Any], path: str, value: Any) -> None:
    *parents, leaf = path.split(".")
    target = document
    for segment in parents:
        target = target.setdefault(segment, {})
    target[leaf] = value


def _project(document: dict[str, Any], spec: dict[str, int]) -> dict[str, Any]:
    projected: dict[str, Any] = {}
    for path, include in spec.items():
        if not include:
            continue
        values = resolve_path(document, path)
        if values:
            _set_path(projected, path, values[0])
    return projected


def _unwind(documents: list[dict[str, Any]], path: str) -> list[dict[str, Any]]:
    unwound = []
    for document in documents:
        values = resolve_path(document, path)
        if not values:
            continue
        items = values[0] if isinstance(values[0], list) else [values[0]]
        for item in items:
            clone = copy.deepcopy(document)
            _set_path(clone, path, copy.deepcopy(item))
            unwound.append(clone)
    return unwound


def _replace_root(document: dict[str, Any], path: str) -> dict[str, Any]:
    values = resolve_path(document, path)
    if not values or not isinstance(values[0], dict):
        raise StoreFatalError(
            f"'newRoot' expression '{path}' must evaluate to an object",
            operation="query_documents",
        )
    return values[0]
