"""
Retry wrapper for store clients.

ResilientStoreClient decorates any StoreClient and retries calls that fail
with StoreTransientError, using exponential backoff whose first retry comes
quickly. StoreFatalError and every other exception pass straight through.
When attempts run out the last StoreTransientError is re-raised.
"""

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..constants import (
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_RETRY_INITIAL_WAIT,
    DEFAULT_RETRY_MAX_WAIT,
)
from ..exceptions import StoreTransientError
from ..observability import get_logger
from ..store.base import CollectionHandle, DatabaseHandle, StoreClient

logger = get_logger(__name__)

R = TypeVar("R")

_EXHAUSTED = object()


class ResilientStoreClient(StoreClient):
    """
    StoreClient that retries transient failures of an inner client.

    Example:
        store = ResilientStoreClient(MotorStoreClient(motor_client), attempts=5)
    """

    def __init__(
        self,
        inner: StoreClient,
        attempts: int = DEFAULT_RETRY_ATTEMPTS,
        initial_wait: float = DEFAULT_RETRY_INITIAL_WAIT,
        max_wait: float = DEFAULT_RETRY_MAX_WAIT,
    ):
        """
        Args:
            inner: Client whose calls are retried
            attempts: Total attempts per call, first one included
            initial_wait: Seconds before the first retry; doubles afterwards
            max_wait: Cap on a single wait, in seconds
        """
        if attempts < 1:
            raise ValueError(f"attempts must be >= 1, got {attempts}")
        self._inner = inner
        self.attempts = attempts
        self.initial_wait = initial_wait
        self.max_wait = max_wait

    @property
    def inner(self) -> StoreClient:
        return self._inner

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_exponential(multiplier=self.initial_wait, max=self.max_wait),
            retry=retry_if_exception_type(StoreTransientError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    async def _call(self, func: Callable[..., Awaitable[R]], *args: Any) -> R:
        result: Any = _EXHAUSTED
        async for attempt in self._retrying():
            with attempt:
                result = await func(*args)
        return result

    async def query_databases(self, name: str) -> DatabaseHandle | None:
        return await self._call(self._inner.query_databases, name)

    async def create_database(self, name: str) -> DatabaseHandle:
        return await self._call(self._inner.create_database, name)

    async def query_collections(
        self, database: DatabaseHandle, name: str
    ) -> CollectionHandle | None:
        return await self._call(self._inner.query_collections, database, name)

    async def create_collection(self, database: DatabaseHandle, name: str) -> CollectionHandle:
        return await self._call(self._inner.create_collection, database, name)

    async def delete_collection(self, collection: CollectionHandle) -> bool:
        return await self._call(self._inner.delete_collection, collection)

    async def create_document(
        self, collection: CollectionHandle, document: dict[str, Any]
    ) -> dict[str, Any]:
        return await self._call(self._inner.create_document, collection, document)

    async def upsert_document(
        self, collection: CollectionHandle, document: dict[str, Any]
    ) -> dict[str, Any]:
        return await self._call(self._inner.upsert_document, collection, document)

    async def replace_document(
        self, collection: CollectionHandle, document: dict[str, Any]
    ) -> dict[str, Any]:
        return await self._call(self._inner.replace_document, collection, document)

    async def read_document(
        self, collection: CollectionHandle, document_id: str
    ) -> dict[str, Any] | None:
        return await self._call(self._inner.read_document, collection, document_id)

    async def delete_document(self, collection: CollectionHandle, document_id: str) -> bool:
        return await self._call(self._inner.delete_document, collection, document_id)

    async def count_documents(
        self, collection: CollectionHandle, filter: dict[str, Any] | None = None
    ) -> int:
        return await self._call(self._inner.count_documents, collection, filter)

    async def query_documents(
        self, collection: CollectionHandle, pipeline: list[dict[str, Any]]
    ) -> AsyncIterator[dict[str, Any]]:
        # Only opening the stream, up to the first document, is retried.
        iterator = None
        first: Any = _EXHAUSTED
        async for attempt in self._retrying():
            with attempt:
                iterator = self._inner.query_documents(collection, pipeline).__aiter__()
                try:
                    first = await iterator.__anext__()
                except StopAsyncIteration:
                    first = _EXHAUSTED
                except Exception:
                    await _aclose(iterator)
                    raise

        try:
            if first is _EXHAUSTED:
                return
            yield first
            async for document in iterator:
                yield document
        finally:
            await _aclose(iterator)

    async def close(self) -> None:
        await self._inner.close()


async def _aclose(iterator: Any) -> None:
    aclose = getattr(iterator, "aclose", None)
    if aclose is not None:
        await aclose()
