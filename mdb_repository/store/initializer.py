"""
Client construction from settings.

Validates the endpoint before any connection attempt and builds the Motor
client, the MongoDB StoreClient on top of it, and the retry wrapper.

Usage:
    from mdb_repository import RepositorySettings, create_client

    client = create_client(RepositorySettings())
    people = DocumentRepository(client, settings.database_name, Person)
"""

import logging
from typing import TYPE_CHECKING, Optional

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import (
    ConfigurationError as PyMongoConfigurationError,
    ConnectionFailure,
    InvalidOperation,
    OperationFailure,
    ServerSelectionTimeoutError,
)

from ..constants import (
    DEFAULT_APP_NAME,
    DEFAULT_MAX_IDLE_TIME_MS,
    DEFAULT_MAX_POOL_SIZE,
    DEFAULT_MIN_POOL_SIZE,
    DEFAULT_SERVER_SELECTION_TIMEOUT_MS,
)
from ..exceptions import ConfigurationError
from ..resilience.retry import ResilientStoreClient
from .motor_client import MotorStoreClient

if TYPE_CHECKING:
    from ..config import RepositorySettings

logger = logging.getLogger(__name__)

_URI_SCHEMES = ("mongodb://", "mongodb+srv://")


def create_mongo_client(
    mongo_uri: Optional[str],
    max_pool_size: int = DEFAULT_MAX_POOL_SIZE,
    min_pool_size: int = DEFAULT_MIN_POOL_SIZE,
    server_selection_timeout_ms: int = DEFAULT_SERVER_SELECTION_TIMEOUT_MS,
    max_idle_time_ms: int = DEFAULT_MAX_IDLE_TIME_MS,
    app_name: str = DEFAULT_APP_NAME,
) -> AsyncIOMotorClient:
    """
    Build a Motor client for ``mongo_uri``.

    No connection is made here; the driver connects on first use.

    Raises:
        ConfigurationError: If the URI is blank or malformed
    """
    if mongo_uri is None or not mongo_uri.strip():
        raise ConfigurationError(
            "mongo_uri is required (set MDB_REPOSITORY_MONGO_URI or pass it directly)",
            config_key="mongo_uri",
        )
    if not mongo_uri.startswith(_URI_SCHEMES):
        raise ConfigurationError(
            f"mongo_uri must start with one of: {', '.join(_URI_SCHEMES)}",
            config_key="mongo_uri",
        )

    try:
        client = AsyncIOMotorClient(
            mongo_uri,
            serverSelectionTimeoutMS=server_selection_timeout_ms,
            appname=app_name,
            maxPoolSize=max_pool_size,
            minPoolSize=min_pool_size,
            maxIdleTimeMS=max_idle_time_ms,
            retryWrites=True,
            retryReads=True,
        )
    except (PyMongoConfigurationError, ValueError, TypeError) as e:
        # The URI itself is left out of the error: it may carry credentials.
        raise ConfigurationError(f"Invalid MongoDB client configuration: {e}") from e

    logger.info(
        f"MongoDB client created (max_pool_size={max_pool_size}, "
        f"min_pool_size={min_pool_size})"
    )
    return client


def create_client(settings: "RepositorySettings") -> ResilientStoreClient:
    """
    Build the retrying MongoDB StoreClient described by ``settings``.

    Raises:
        ConfigurationError: If the URI is blank or malformed
    """
    motor_client = create_mongo_client(
        settings.mongo_uri,
        max_pool_size=settings.max_pool_size,
        min_pool_size=settings.min_pool_size,
        server_selection_timeout_ms=settings.server_selection_timeout_ms,
    )
    return ResilientStoreClient(
        MotorStoreClient(motor_client),
        attempts=settings.retry_attempts,
        initial_wait=settings.retry_initial_wait,
        max_wait=settings.retry_max_wait,
    )


async def verify_connection(client: AsyncIOMotorClient) -> bool:
    """
    Ping the server.

    Returns:
        True if the server answered, False otherwise
    """
    try:
        await client.admin.command("ping")
        logger.debug("MongoDB connection verification successful")
        return True
    except (
        ConnectionFailure,
        ServerSelectionTimeoutError,
        OperationFailure,
        InvalidOperation,
    ) as e:
        logger.warning(f"MongoDB connection verification failed: {e}")
        return False
