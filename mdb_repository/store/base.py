"""
Store Client Contract

Defines the narrow interface the repository uses to reach the document store.
Implementations translate these calls to a concrete backend and report
failures as StoreError subclasses.

Documents crossing this boundary are plain dicts whose identity lives under
the reserved ``id`` key; mapping to the backend's own key is the
implementation's job.
"""

import abc
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

from ..constants import COLLECTION_LINK_SEGMENT, DATABASE_LINK_PREFIX


@dataclass(frozen=True)
class DatabaseHandle:
    """A provisioned database."""

    name: str

    @property
    def link(self) -> str:
        return f"{DATABASE_LINK_PREFIX}/{self.name}"


@dataclass(frozen=True)
class CollectionHandle:
    """A provisioned collection inside a database."""

    database: DatabaseHandle
    name: str

    @property
    def link(self) -> str:
        return f"{self.database.link}/{COLLECTION_LINK_SEGMENT}/{self.name}"


class StoreClient(abc.ABC):
    """
    Abstract document store client.

    Every method may raise StoreTransientError (safe to retry) or
    StoreFatalError (not safe to retry). Absence is reported as None/False,
    never as an exception.
    """

    # --- Databases -----------------------------------------------------------

    @abc.abstractmethod
    async def query_databases(self, name: str) -> DatabaseHandle | None:
        """Return the database called ``name`` if it exists."""

    @abc.abstractmethod
    async def create_database(self, name: str) -> DatabaseHandle:
        """
        Create a database.

        Raises:
            ResourceExistsError: If the name is already taken
        """

    # --- Collections ---------------------------------------------------------

    @abc.abstractmethod
    async def query_collections(
        self, database: DatabaseHandle, name: str
    ) -> CollectionHandle | None:
        """Return the collection called ``name`` in ``database`` if it exists."""

    @abc.abstractmethod
    async def create_collection(self, database: DatabaseHandle, name: str) -> CollectionHandle:
        """
        Create a collection.

        Raises:
            ResourceExistsError: If the name is already taken
        """

    @abc.abstractmethod
    async def delete_collection(self, collection: CollectionHandle) -> bool:
        """Drop a collection and all its documents. False if it did not exist."""

    # --- Documents -----------------------------------------------------------

    @abc.abstractmethod
    async def create_document(
        self, collection: CollectionHandle, document: dict[str, Any]
    ) -> dict[str, Any]:
        """
        Insert a new document, assigning an identity when ``id`` is missing.

        Returns:
            The stored document

        Raises:
            StoreFatalError: If a document with the same identity exists
        """

    @abc.abstractmethod
    async def upsert_document(
        self, collection: CollectionHandle, document: dict[str, Any]
    ) -> dict[str, Any]:
        """Create or replace the document with ``document["id"]``."""

    @abc.abstractmethod
    async def replace_document(
        self, collection: CollectionHandle, document: dict[str, Any]
    ) -> dict[str, Any]:
        """Replace the existing document with ``document["id"]``."""

    @abc.abstractmethod
    async def read_document(
        self, collection: CollectionHandle, document_id: str
    ) -> dict[str, Any] | None:
        """Return the document with the given identity, or None."""

    @abc.abstractmethod
    async def delete_document(self, collection: CollectionHandle, document_id: str) -> bool:
        """Delete the document with the given identity. False if none matched."""

    # --- Queries -------------------------------------------------------------

    @abc.abstractmethod
    def query_documents(
        self, collection: CollectionHandle, pipeline: list[dict[str, Any]]
    ) -> AsyncIterator[dict[str, Any]]:
        """Run an aggregation pipeline and stream the resulting documents."""

    @abc.abstractmethod
    async def count_documents(
        self, collection: CollectionHandle, filter: dict[str, Any] | None = None
    ) -> int:
        """Count documents matching ``filter``."""

    async def close(self) -> None:
        """Release client resources."""
