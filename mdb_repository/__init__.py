"""
MDB_REPOSITORY - Typed repositories over MongoDB

Generic async repositories for pydantic models and dataclasses, with lazy
database/collection provisioning, a single upsert operation and typed
predicates translated to MongoDB queries.
"""

# Errors
from .exceptions import (
    ConfigurationError,
    IdentityResolutionError,
    QueryTranslationError,
    RepositoryError,
    ResourceExistsError,
    StoreError,
    StoreFatalError,
    StoreTransientError,
)
# Entities
from .entities import EntityDescriptor, EntityField, describe, merge_fields, resolve_identity_field
# Queries
from .query import F, Predicate, Queryable
# Store clients
from .store import (
    CollectionHandle,
    DatabaseHandle,
    InMemoryStoreClient,
    MotorStoreClient,
    StoreClient,
    create_client,
    create_mongo_client,
)
from .resilience import ResilientStoreClient
from .provisioning import AsyncLazy, LazyState, ProvisioningCache
# Repositories
from .repositories import DocumentRepository, Entity, Repository, UpsertStrategy
# Configuration
from .config import RepositorySettings

__version__ = "0.1.0"

__all__ = [
    # Errors
    "RepositoryError",
    "ConfigurationError",
    "IdentityResolutionError",
    "QueryTranslationError",
    "StoreError",
    "StoreTransientError",
    "StoreFatalError",
    "ResourceExistsError",
    # Entities
    "EntityDescriptor",
    "EntityField",
    "describe",
    "resolve_identity_field",
    "merge_fields",
    # Queries
    "F",
    "Predicate",
    "Queryable",
    # Store
    "StoreClient",
    "DatabaseHandle",
    "CollectionHandle",
    "MotorStoreClient",
    "InMemoryStoreClient",
    "ResilientStoreClient",
    "create_client",
    "create_mongo_client",
    # Provisioning
    "AsyncLazy",
    "LazyState",
    "ProvisioningCache",
    # Repositories
    "Repository",
    "DocumentRepository",
    "Entity",
    "UpsertStrategy",
    # Configuration
    "RepositorySettings",
]
