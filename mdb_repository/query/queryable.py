"""
Composable, lazily executed queries over one collection.

A Queryable is an immutable builder: every method returns a new Queryable
and nothing touches the store until it is iterated, counted or listed. Each
iteration re-runs the query, so a Queryable can be consumed any number of
times.

Usage:
    smiths = repo.where(F("last_name") == "Smith")
    async for person in smiths:
        ...

    phone_types = await repo.query().select_many("phone_numbers").select("type").to_list()
"""

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, Generic, TypeVar

from ..exceptions import QueryTranslationError
from ..store.base import CollectionHandle, StoreClient
from .fields import FieldResolver
from .predicates import F, Predicate, ensure_predicate
from .validator import QueryValidator

logger = logging.getLogger(__name__)

T = TypeVar("T")

_default_validator = QueryValidator()


class Queryable(Generic[T]):
    """
    Query over the documents of one collection.

    Until ``select`` or ``select_many`` is applied, results are entities and
    field names are checked against the entity type. After a projection,
    results are plain dicts and filtering/ordering is no longer allowed.
    """

    def __init__(
        self,
        client: StoreClient,
        collection_provider: Callable[[], Awaitable[CollectionHandle]],
        entity_factory: Callable[[dict[str, Any]], T],
        fields: FieldResolver,
        *,
        stages: tuple[dict[str, Any], ...] = (),
        projected: bool = False,
        validator: QueryValidator | None = None,
    ):
        """
        Args:
            client: Store client used to run the query
            collection_provider: Coroutine function returning the collection handle
            entity_factory: Builds an entity from a stored document
            fields: Translates entity field paths to stored paths
            stages: Pipeline stages built so far
            projected: Whether a projection has been applied
            validator: Pipeline limits (defaults to the module validator)
        """
        self._client = client
        self._collection_provider = collection_provider
        self._entity_factory = entity_factory
        self._fields = fields
        self._stages = stages
        self._projected = projected
        self._validator = validator or _default_validator

    def __repr__(self) -> str:
        return f"Queryable(pipeline={list(self._stages)!r})"

    @property
    def pipeline(self) -> list[dict[str, Any]]:
        """The pipeline this query runs."""
        return [dict(stage) for stage in self._stages]

    # ------------------------------------------------------------------
    # Builders
    # ------------------------------------------------------------------

    def where(self, predicate: Predicate) -> "Queryable[T]":
        """Keep only documents matching ``predicate``."""
        predicate = ensure_predicate(predicate)
        self._require_unprojected("where")
        stored = predicate.resolve_fields(self._fields)
        return self._with_stage({"$match": stored.to_filter()})

    def order_by(self, field: str, descending: bool = False) -> "Queryable[T]":
        """Sort by ``field``; repeated calls add secondary sort keys."""
        self._require_unprojected("order_by")
        path = self._stored_path(field)
        direction = -1 if descending else 1

        if self._stages and "$sort" in self._stages[-1]:
            sort = {**self._stages[-1]["$sort"], path: direction}
            return self._replace(self._stages[:-1] + ({"$sort": sort},), self._projected)
        return self._with_stage({"$sort": {path: direction}})

    def skip(self, count: int) -> "Queryable[T]":
        return self._with_stage({"$skip": self._check_count("skip", count)})

    def limit(self, count: int) -> "Queryable[T]":
        return self._with_stage({"$limit": self._check_count("limit", count)})

    def select(self, *fields: str) -> "Queryable[dict[str, Any]]":
        """Project each result onto ``fields``. Results become dicts."""
        if not fields:
            raise QueryTranslationError("select() needs at least one field")
        paths = [self._stored_path(f) if not self._projected else F(f).path for f in fields]
        return self._with_stage({"$project": {path: 1 for path in paths}}, projected=True)

    def select_many(self, field: str) -> "Queryable[dict[str, Any]]":
        """Flatten a nested sequence of sub-documents into individual results."""
        path = self._stored_path(field) if not self._projected else F(field).path
        stages = self._stages + (
            {"$unwind": f"${path}"},
            {"$replaceRoot": {"newRoot": f"${path}"}},
        )
        self._validator.validate_pipeline(list(stages))
        return self._replace(stages, projected=True)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def __aiter__(self) -> AsyncIterator[T]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[T]:
        collection = await self._collection_provider()
        pipeline = self.pipeline
        logger.debug(f"Querying {collection.link} with {len(pipeline)} stage(s)")
        async for document in self._client.query_documents(collection, pipeline):
            yield self._convert(document)

    async def to_list(self) -> list[T]:
        return [item async for item in self]

    async def first(self) -> T | None:
        """Return the first result, or None when there is none."""
        items = await self.limit(1).to_list()
        return items[0] if items else None

    async def count(self) -> int:
        """Count the results without materializing them."""
        collection = await self._collection_provider()

        if all("$match" in stage for stage in self._stages):
            filters = [stage["$match"] for stage in self._stages]
            filter = filters[0] if len(filters) == 1 else ({"$and": filters} if filters else {})
            return await self._client.count_documents(collection, filter)

        pipeline = self.pipeline + [{"$count": "count"}]
        results = [doc async for doc in self._client.query_documents(collection, pipeline)]
        return int(results[0]["count"]) if results else 0

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _convert(self, document: dict[str, Any]) -> Any:
        if self._projected:
            return document
        return self._entity_factory(document)

    def _stored_path(self, field: str) -> str:
        return self._fields.stored_path(F(field).path)

    def _require_unprojected(self, operation: str) -> None:
        if self._projected:
            raise QueryTranslationError(
                f"{operation}() must be applied before select() or select_many()"
            )

    @staticmethod
    def _check_count(operation: str, count: int) -> int:
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            raise QueryTranslationError(
                f"{operation}() needs a non-negative integer, got {count!r}"
            )
        return count

    def _with_stage(self, stage: dict[str, Any], projected: bool | None = None) -> "Queryable":
        stages = self._stages + (stage,)
        self._validator.validate_pipeline(list(stages))
        return self._replace(stages, self._projected if projected is None else projected)

    def _replace(self, stages: tuple[dict[str, Any], ...], projected: bool) -> "Queryable":
        return Queryable(
            self._client,
            self._collection_provider,
            self._entity_factory,
            self._fields,
            stages=stages,
            projected=projected,
            validator=self._validator,
        )
