"""
Document Repository Implementation

Typed CRUD and query access to one collection of a document store.

The repository is bound at construction to a database name, a collection
name and the entity type. The identity field is resolved right away, with no
store call, so a misconfigured entity type fails before anything touches the
network. The database and collection are provisioned lazily by the first
operation that needs them.

Usage:
    from mdb_repository import DocumentRepository, F, InMemoryStoreClient

    people = DocumentRepository(InMemoryStoreClient(), "people_db", Person)
    jack = await people.add_or_update(Person(first_name="Jack", last_name="Smith"))
    smiths = await people.where(F("last_name") == "Smith").to_list()
"""

import logging
import time
from collections.abc import Callable
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from bson import ObjectId

from ..constants import (
    IDENTITY_ATTRIBUTE,
    MAX_COLLECTION_NAME_LENGTH,
    RESERVED_COLLECTION_PREFIXES,
)
from ..entities.descriptor import EntityDescriptor, describe
from ..entities.identity import resolve_identity_field
from ..entities.merge import merge_fields
from ..exceptions import ConfigurationError
from ..observability import get_logger, log_operation, operation_context, timed_operation
from ..provisioning.cache import ProvisioningCache
from ..query.fields import FieldResolver
from ..query.predicates import Predicate, ensure_predicate
from ..query.queryable import Queryable
from ..store.base import CollectionHandle, StoreClient
from .base import Repository

logger = get_logger(__name__)

T = TypeVar("T")


class UpsertStrategy(str, Enum):
    """How ``add_or_update`` writes an entity."""

    NATIVE = "native"
    """Single create-or-replace call keyed by identity."""

    MERGE = "merge"
    """Read the stored entity, copy incoming fields onto it, then replace."""


def _validate_collection_name(name: Any) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ConfigurationError(
            "Collection name must be a non-empty string",
            config_key="collection_name",
            config_value=name,
        )
    if len(name) > MAX_COLLECTION_NAME_LENGTH:
        raise ConfigurationError(
            f"Collection name exceeds {MAX_COLLECTION_NAME_LENGTH} characters",
            config_key="collection_name",
            config_value=name,
        )
    if name.startswith(RESERVED_COLLECTION_PREFIXES):
        raise ConfigurationError(
            f"Collection name '{name}' uses a reserved prefix",
            config_key="collection_name",
            config_value=name,
        )
    if "$" in name or "\0" in name:
        raise ConfigurationError(
            f"Collection name '{name}' contains an invalid character",
            config_key="collection_name",
            config_value=name,
        )
    return name


def _require_id(id: Any) -> str:
    if id is None or (isinstance(id, str) and not id.strip()):
        raise ValueError("id must be a non-empty value")
    return str(id)


class DocumentRepository(Repository[T], Generic[T]):
    """
    Repository over one collection of entities of type ``T``.

    Example:
        class Person(BaseModel):
            id: Optional[str] = None
            first_name: str
            last_name: str

        repo = DocumentRepository(client, "people_db", Person)
        saved = await repo.add_or_update(Person(first_name="Jack", last_name="Smith"))
        assert await repo.get_by_id(saved.id) == saved
    """

    def __init__(
        self,
        client: StoreClient,
        database_name: str,
        entity_type: type[T],
        *,
        collection_name: Optional[str] = None,
        collection_name_factory: Optional[Callable[[type], str]] = None,
        id_field: Optional[str] = None,
        upsert_strategy: UpsertStrategy | str = UpsertStrategy.NATIVE,
    ):
        """
        Initialize the repository.

        Args:
            client: Store client to issue calls through
            database_name: Database holding the collection
            entity_type: Pydantic model or dataclass stored in the collection
            collection_name: Collection name (defaults to the type's name)
            collection_name_factory: Derives the collection name from the
                entity type; mutually exclusive with ``collection_name``
            id_field: Field to use as identity instead of the one stored as ``id``
            upsert_strategy: How ``add_or_update`` writes entities

        Raises:
            ConfigurationError: If any argument is invalid
            IdentityResolutionError: If the entity type has no usable identity field
        """
        if client is None:
            raise ConfigurationError("A store client is required", config_key="client")
        if not isinstance(database_name, str) or not database_name.strip():
            raise ConfigurationError(
                "Database name must be a non-empty string",
                config_key="database_name",
                config_value=database_name,
            )
        if collection_name is not None and collection_name_factory is not None:
            raise ConfigurationError(
                "Pass either collection_name or collection_name_factory, not both",
                config_key="collection_name",
            )

        self._descriptor: EntityDescriptor[T] = describe(entity_type)
        self._identity_field = resolve_identity_field(self._descriptor, id_field)

        if collection_name_factory is not None:
            collection_name = collection_name_factory(entity_type)
        elif collection_name is None:
            collection_name = entity_type.__name__

        try:
            self._upsert_strategy = UpsertStrategy(upsert_strategy)
        except ValueError as e:
            raise ConfigurationError(
                f"Unknown upsert strategy: {upsert_strategy!r}",
                config_key="upsert_strategy",
                config_value=upsert_strategy,
            ) from e

        self._client = client
        self._entity_type = entity_type
        self._database_name = database_name
        self._collection_name = _validate_collection_name(collection_name)
        self._cache = ProvisioningCache(client, database_name, self._collection_name)

        self._fields = FieldResolver(self._descriptor)

        logger.debug(
            f"Repository for {self._descriptor.type_name} bound to "
            f"{self._database_name}/{self._collection_name} "
            f"(identity field '{self._identity_field}', "
            f"upsert strategy {self._upsert_strategy.value})"
        )

    def __repr__(self) -> str:
        return (
            f"DocumentRepository({self._descriptor.type_name}, "
            f"database={self._database_name!r}, collection={self._collection_name!r})"
        )

    @property
    def entity_type(self) -> type[T]:
        return self._entity_type

    @property
    def database_name(self) -> str:
        return self._database_name

    @property
    def collection_name(self) -> str:
        return self._collection_name

    @property
    def identity_field(self) -> str:
        return self._identity_field

    @property
    def upsert_strategy(self) -> UpsertStrategy:
        return self._upsert_strategy

    @property
    def descriptor(self) -> EntityDescriptor[T]:
        return self._descriptor

    @property
    def provisioning(self) -> ProvisioningCache:
        return self._cache

    @property
    def metric_tags(self) -> dict[str, str]:
        """Tags attached to the metrics of this repository's operations."""
        return {"database": self._database_name, "collection": self._collection_name}

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @timed_operation("repository.add_or_update")
    async def add_or_update(self, entity: T) -> T:
        if entity is None:
            raise ValueError("entity must not be None")
        if not isinstance(entity, self._entity_type):
            raise TypeError(
                f"Expected {self._descriptor.type_name}, got {type(entity).__name__}"
            )

        with self._operation("add_or_update"):
            start = time.perf_counter()
            collection = await self._collection()
            document = self._descriptor.to_document(entity)
            identity = document.pop(IDENTITY_ATTRIBUTE, None)
            if identity is not None and str(identity).strip():
                document[IDENTITY_ATTRIBUTE] = str(identity)

            try:
                if self._upsert_strategy is UpsertStrategy.MERGE:
                    stored = await self._merge_upsert(collection, entity, document)
                else:
                    document.setdefault(IDENTITY_ATTRIBUTE, str(ObjectId()))
                    stored = await self._client.upsert_document(collection, document)
            except Exception:
                self._log(
                    "add_or_update", start, success=False, id=document.get(IDENTITY_ATTRIBUTE)
                )
                raise

            self._log("add_or_update", start, id=stored.get(IDENTITY_ATTRIBUTE))
            return self._descriptor.from_document(stored)

    async def _merge_upsert(
        self, collection: CollectionHandle, entity: T, document: dict[str, Any]
    ) -> dict[str, Any]:
        identity = document.get(IDENTITY_ATTRIBUTE)
        existing = None
        if identity is not None:
            existing = await self._client.read_document(collection, identity)

        if existing is None:
            return await self._client.create_document(collection, document)

        target = self._descriptor.from_document(existing)
        merge_fields(entity, target, identity_field=self._identity_field)
        merged = self._descriptor.to_document(target)
        merged[IDENTITY_ATTRIBUTE] = identity
        return await self._client.replace_document(collection, merged)

    @timed_operation("repository.remove")
    async def remove(self, id: str) -> bool:
        document_id = _require_id(id)
        with self._operation("remove"):
            start = time.perf_counter()
            collection = await self._collection()
            deleted = await self._client.delete_document(collection, document_id)
            self._log("remove", start, id=document_id, deleted=deleted)
            return deleted

    @timed_operation("repository.remove_collection")
    async def remove_collection(self) -> bool:
        with self._operation("remove_collection"):
            start = time.perf_counter()
            database = await self._cache.get_or_create_database()
            handle = CollectionHandle(database, self._collection_name)
            try:
                removed = await self._client.delete_collection(handle)
            finally:
                self._cache.invalidate_collection()
            self._log("remove_collection", start, level=logging.INFO, removed=removed)
            return removed

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @timed_operation("repository.get_by_id")
    async def get_by_id(self, id: str) -> Optional[T]:
        document_id = _require_id(id)
        with self._operation("get_by_id"):
            start = time.perf_counter()
            collection = await self._collection()
            document = await self._client.read_document(collection, document_id)
            self._log("get_by_id", start, id=document_id, found=document is not None)
        if document is None:
            return None
        return self._descriptor.from_document(document)

    @timed_operation("repository.count")
    async def count(self, predicate: Optional[Predicate] = None) -> int:
        query = self.query() if predicate is None else self.where(predicate)
        with self._operation("count"):
            return await query.count()

    def get_all(self) -> Queryable[T]:
        return self.query()

    def where(self, predicate: Predicate) -> Queryable[T]:
        return self.query().where(ensure_predicate(predicate))

    @timed_operation("repository.first_or_default")
    async def first_or_default(self, predicate: Optional[Predicate] = None) -> Optional[T]:
        query = self.query() if predicate is None else self.where(predicate)
        with self._operation("first_or_default"):
            return await query.first()

    def query(self) -> Queryable[T]:
        return Queryable(
            self._client,
            self._collection,
            self._descriptor.from_document,
            self._fields,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _collection(self) -> CollectionHandle:
        return await self._cache.get_or_create_collection()

    def _operation(self, operation: str):
        return operation_context(
            database=self._database_name,
            collection=self._collection_name,
            entity_type=self._descriptor.type_name,
            repository_operation=operation,
        )

    def _log(
        self,
        operation: str,
        start: float,
        success: bool = True,
        level: int = logging.DEBUG,
        **fields: Any,
    ) -> None:
        log_operation(
            logger,
            f"repository.{operation}",
            level=level if success else logging.WARNING,
            success=success,
            duration_ms=(time.perf_counter() - start) * 1000,
            **fields,
        )
