"""
Abstract Repository Pattern

Defines the repository interface that abstracts data access operations.
Application code depends on this interface; DocumentRepository implements it
on top of any StoreClient.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterable
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict

from ..query.predicates import Predicate
from ..query.queryable import Queryable

T = TypeVar("T")


class Entity(BaseModel):
    """
    Convenience base class for pydantic entities.

    Carries the ``id`` identity field; ``None`` until first persisted.

    Example:
        class Person(Entity):
            first_name: str
            last_name: str
    """

    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None


class Repository(ABC, Generic[T]):
    """
    Abstract repository interface for data access.

    Type parameter T is the entity type: a pydantic model or a dataclass
    with an identity field.

    Example:
        class PersonRepository(Repository[Person]):
            ...
    """

    @abstractmethod
    async def add_or_update(self, entity: T) -> T:
        """
        Create the entity, or replace the stored one with the same identity.

        Args:
            entity: Entity to persist (not modified)

        Returns:
            The persisted entity, identity populated
        """
        pass

    @abstractmethod
    async def get_by_id(self, id: str) -> Optional[T]:
        """
        Get a single entity by identity.

        Returns:
            Entity if found, None otherwise
        """
        pass

    @abstractmethod
    async def remove(self, id: str) -> bool:
        """
        Delete an entity by identity.

        Returns:
            True if deleted, False if not found
        """
        pass

    @abstractmethod
    async def remove_collection(self) -> bool:
        """
        Drop the backing collection with all its entities.

        Returns:
            True if the collection existed
        """
        pass

    @abstractmethod
    async def count(self, predicate: Optional[Predicate] = None) -> int:
        """Count entities, optionally only those matching ``predicate``."""
        pass

    @abstractmethod
    def get_all(self) -> AsyncIterable[T]:
        """Every entity; can be iterated any number of times."""
        pass

    @abstractmethod
    def where(self, predicate: Predicate) -> Queryable[T]:
        """Entities matching ``predicate``, as a composable query."""
        pass

    @abstractmethod
    async def first_or_default(self, predicate: Optional[Predicate] = None) -> Optional[T]:
        """First entity (matching ``predicate`` when given), or None."""
        pass

    @abstractmethod
    def query(self) -> Queryable[T]:
        """A composable query over all entities."""
        pass
