"""
Constants for MDB_REPOSITORY.

This module contains all shared constants used across the codebase to avoid
magic numbers and improve maintainability.
"""

from typing import Final

# ============================================================================
# IDENTITY CONSTANTS
# ============================================================================

IDENTITY_ATTRIBUTE: Final[str] = "id"
"""Reserved document attribute that carries the entity identity."""

NATIVE_IDENTITY_KEY: Final[str] = "_id"
"""MongoDB's own primary key. Only the store client ever sees this key."""

ALIAS_METADATA_KEY: Final[str] = "alias"
"""dataclasses.field(metadata=...) key holding a field's serialized name."""

# ============================================================================
# RESOURCE LINKS
# ============================================================================

DATABASE_LINK_PREFIX: Final[str] = "dbs"
"""Prefix of database resource links (dbs/<database>)."""

COLLECTION_LINK_SEGMENT: Final[str] = "colls"
"""Segment of collection resource links (dbs/<database>/colls/<collection>)."""

# ============================================================================
# DATABASE CONSTANTS
# ============================================================================

DEFAULT_MAX_POOL_SIZE: Final[int] = 50
"""Default maximum MongoDB connection pool size."""

DEFAULT_MIN_POOL_SIZE: Final[int] = 10
"""Default minimum MongoDB connection pool size."""

DEFAULT_SERVER_SELECTION_TIMEOUT_MS: Final[int] = 5000
"""Default server selection timeout in milliseconds."""

DEFAULT_MAX_IDLE_TIME_MS: Final[int] = 45000
"""Default maximum idle time before closing connections (milliseconds)."""

DEFAULT_APP_NAME: Final[str] = "MDB_REPOSITORY"
"""Application name reported to the MongoDB server."""

# Collection name constraints
MAX_COLLECTION_NAME_LENGTH: Final[int] = 255
"""Maximum length for MongoDB collection names."""

RESERVED_COLLECTION_PREFIXES: Final[tuple[str, ...]] = ("system.",)
"""Collection name prefixes reserved by MongoDB."""

# Server error codes worth retrying (failover, shutdown, timeouts, throttling)
TRANSIENT_ERROR_CODES: Final[frozenset[int]] = frozenset(
    {
        6,  # HostUnreachable
        7,  # HostNotFound
        50,  # MaxTimeMSExpired
        89,  # NetworkTimeout
        91,  # ShutdownInProgress
        189,  # PrimarySteppedDown
        262,  # ExceededTimeLimit
        9001,  # SocketException
        10107,  # NotWritablePrimary
        11600,  # InterruptedAtShutdown
        11602,  # InterruptedDueToReplStateChange
        13435,  # NotPrimaryNoSecondaryOk
        13436,  # NotPrimaryOrSecondary
        16500,  # RequestRateTooLarge (Cosmos DB API for MongoDB)
    }
)
"""MongoDB server error codes classified as transient."""

TRANSIENT_ERROR_LABELS: Final[tuple[str, ...]] = (
    "RetryableWriteError",
    "TransientTransactionError",
)
"""Server error labels classified as transient."""

# ============================================================================
# RETRY CONSTANTS
# ============================================================================

DEFAULT_RETRY_ATTEMPTS: Final[int] = 5
"""Total attempts (first call included) for transient store failures."""

DEFAULT_RETRY_INITIAL_WAIT: Final[float] = 0.1
"""Seconds to wait before the second attempt; the first retry is fast."""

DEFAULT_RETRY_MAX_WAIT: Final[float] = 10.0
"""Upper bound in seconds for a single backoff sleep."""

# ============================================================================
# QUERY LIMITS
# ============================================================================

MAX_PIPELINE_STAGES: Final[int] = 50
"""Maximum number of stages allowed in a compiled query pipeline."""

MAX_SORT_FIELDS: Final[int] = 10
"""Maximum number of fields that can be sorted in a single query."""

MAX_QUERY_DEPTH: Final[int] = 10
"""Maximum nesting depth for query filters (prevents deeply nested queries)."""
